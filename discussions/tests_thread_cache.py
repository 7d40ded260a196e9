"""
Tests for local reconciliation of cached threads.
"""

from datetime import datetime, timezone as dt_timezone

from django.db import OperationalError
from django.test import SimpleTestCase

from .assembler import POLICY_PLACEHOLDER, POLICY_PRUNE
from .contracts import AssembledNode, LikeResult
from .exceptions import NotFound, ThreadStateError, ThreadValidationError, Unauthorized
from .thread_cache import (
    ThreadCache, apply_deletion, apply_like_toggle, apply_new_reply, find_node,
    find_path, recompute_total_count,
)

CREATED = datetime(2024, 5, 1, 12, 0, tzinfo=dt_timezone.utc)


def node(node_id, parent_id=None, children=(), **kwargs):
    children = tuple(children)
    return AssembledNode(
        id=node_id,
        parent_id=parent_id,
        author_id=1,
        author_name='alice',
        body=f'node {node_id}',
        created_at=CREATED,
        reply_count=len(children),
        children=children,
        **kwargs
    )


def sample_tree():
    """
    1
    +-- 3
    |   +-- 5
    +-- 2
        +-- 4
    """
    return node(1, children=[
        node(3, 1, children=[node(5, 3)]),
        node(2, 1, children=[node(4, 2)]),
    ], title='Root', visibility='public')


class FakeAssembler:
    def __init__(self, tree=None, error=None, deleted_policy=POLICY_PRUNE):
        self.tree = tree
        self.error = error
        self.deleted_policy = deleted_policy
        self.placeholder = '[deleted]'
        self.calls = 0

    def assemble(self, root_id, viewer=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.tree


class FakeService:
    """Stands in for ThreadMutationService; ``errors`` are raised in order before succeeding"""

    def __init__(self, errors=()):
        self.errors = list(errors)
        self.next_id = 100
        self.likes = {}
        self.deleted = []
        self.during_call = None

    def _maybe_fail(self):
        if self.during_call is not None:
            self.during_call()
        if self.errors:
            raise self.errors.pop(0)

    def add_node(self, parent_id, body):
        self._maybe_fail()
        self.next_id += 1
        return AssembledNode(
            id=self.next_id,
            parent_id=int(parent_id),
            author_id=2,
            author_name='bob',
            body=body,
            created_at=CREATED,
        )

    def toggle_like(self, node_id):
        self._maybe_fail()
        liked = not self.likes.get(node_id, False)
        self.likes[node_id] = liked
        return LikeResult(like_count=1 if liked else 0, viewer_liked=liked)

    def soft_delete(self, node_id):
        self._maybe_fail()
        self.deleted.append(node_id)


class TreeReconciliationTestCase(SimpleTestCase):
    """Pure path-copying helpers."""

    def setUp(self):
        self.tree = sample_tree()
        self.new_node = AssembledNode(
            id=9, parent_id=4, author_id=2, author_name='bob', body='new', created_at=CREATED
        )

    def test_find_path(self):
        path = find_path(self.tree, 4)
        self.assertEqual([item.id for item in path], [1, 2, 4])
        self.assertIsNone(find_path(self.tree, 42))
        self.assertEqual(find_node(self.tree, 5).body, 'node 5')
        self.assertIsNone(find_node(None, 1))

    def test_apply_new_reply_prepends_and_counts(self):
        updated = apply_new_reply(self.tree, 4, self.new_node)

        target = find_node(updated, 4)
        self.assertIs(target.children[0], self.new_node)
        self.assertEqual(target.reply_count, 1)
        self.assertEqual(find_node(self.tree, 4).reply_count, 0)

    def test_apply_new_reply_shares_untouched_subtrees(self):
        updated = apply_new_reply(self.tree, 4, self.new_node)

        self.assertIsNot(updated, self.tree)
        self.assertIs(updated.children[0], self.tree.children[0])
        self.assertIsNot(updated.children[1], self.tree.children[1])
        self.assertEqual(updated.reply_count, self.tree.reply_count)
        self.assertEqual(updated.title, 'Root')

    def test_apply_new_reply_keeps_existing_children_order(self):
        reply = AssembledNode(id=9, parent_id=1, author_id=2, author_name='bob', body='new', created_at=CREATED)

        updated = apply_new_reply(self.tree, 1, reply)

        self.assertEqual([child.id for child in updated.children], [9, 3, 2])
        self.assertEqual(updated.reply_count, 3)

    def test_apply_new_reply_unknown_parent_is_noop(self):
        self.assertIs(apply_new_reply(self.tree, 42, self.new_node), self.tree)

    def test_total_count_grows_by_one_at_any_depth(self):
        before = recompute_total_count(self.tree)
        self.assertEqual(before, 5)
        for parent_id in (1, 2, 3, 4, 5):
            reply = AssembledNode(
                id=50 + parent_id, parent_id=parent_id, author_id=2, author_name='bob',
                body='new', created_at=CREATED,
            )
            self.assertEqual(recompute_total_count(apply_new_reply(self.tree, parent_id, reply)), before + 1)

    def test_total_count_differs_from_reply_count(self):
        self.assertEqual(self.tree.reply_count, 2)
        self.assertEqual(recompute_total_count(self.tree), 5)
        self.assertEqual(recompute_total_count(None), 0)

    def test_apply_like_toggle(self):
        updated = apply_like_toggle(self.tree, 5, LikeResult(like_count=3, viewer_liked=True))

        target = find_node(updated, 5)
        self.assertEqual(target.like_count, 3)
        self.assertTrue(target.viewer_liked)
        self.assertEqual(target.body, 'node 5')
        self.assertIs(updated.children[1], self.tree.children[1])
        self.assertIs(apply_like_toggle(self.tree, 42, LikeResult(1, True)), self.tree)

    def test_apply_deletion_prunes_subtree(self):
        updated = apply_deletion(self.tree, 3)

        self.assertEqual([child.id for child in updated.children], [2])
        self.assertEqual(updated.reply_count, 1)
        self.assertEqual(recompute_total_count(updated), 3)
        self.assertIs(updated.children[0], self.tree.children[1])

    def test_apply_deletion_with_placeholder(self):
        updated = apply_deletion(self.tree, 3, placeholder='[deleted]')

        shell = find_node(updated, 3)
        self.assertTrue(shell.deleted)
        self.assertEqual(shell.body, '[deleted]')
        self.assertIs(shell.children[0], self.tree.children[0].children[0])
        self.assertEqual(recompute_total_count(updated), 5)

    def test_apply_deletion_drops_emptied_placeholders(self):
        shelled = apply_deletion(self.tree, 3, placeholder='[deleted]')

        updated = apply_deletion(shelled, 5, placeholder='[deleted]')

        self.assertIsNone(find_node(updated, 3))
        self.assertEqual(updated.reply_count, 1)
        self.assertEqual(recompute_total_count(updated), 3)

    def test_apply_deletion_of_root(self):
        self.assertIsNone(apply_deletion(self.tree, 1))
        self.assertIs(apply_deletion(self.tree, 42), self.tree)

    def test_deep_tree_helpers(self):
        depth = 5000
        tree = node(depth + 1, depth)
        for node_id in range(depth, 0, -1):
            tree = node(node_id, node_id - 1 if node_id > 1 else None, children=[tree])

        reply = AssembledNode(
            id=99999, parent_id=depth + 1, author_id=2, author_name='bob', body='deep', created_at=CREATED
        )
        updated = apply_new_reply(tree, depth + 1, reply)

        self.assertEqual(recompute_total_count(updated), depth + 2)
        self.assertEqual(len(find_path(updated, 99999)), depth + 2)
        rebuilt = AssembledNode.from_dict(updated.to_dict())
        self.assertEqual(recompute_total_count(rebuilt), depth + 2)


class ThreadCacheTestCase(SimpleTestCase):
    """State transitions of one displayed thread."""

    def setUp(self):
        self.assembler = FakeAssembler(sample_tree())
        self.service = FakeService()
        self.cache = ThreadCache(1, assembler=self.assembler, service=self.service)

    def test_load(self):
        self.assertEqual(self.cache.state, ThreadCache.UNLOADED)

        tree = self.cache.load()

        self.assertIs(tree, self.assembler.tree)
        self.assertEqual(self.cache.state, ThreadCache.LOADED)
        self.assertTrue(self.cache.is_loaded)
        self.assertEqual(self.cache.total_count, 5)

    def test_load_failure_moves_to_error(self):
        self.assembler.error = NotFound()

        with self.assertRaises(NotFound):
            self.cache.load()
        self.assertEqual(self.cache.state, ThreadCache.ERROR)
        self.assertIsInstance(self.cache.last_error, NotFound)

        self.assembler.error = None
        self.cache.load()
        self.assertEqual(self.cache.state, ThreadCache.LOADED)
        self.assertIsNone(self.cache.last_error)

    def test_mutation_requires_loaded_thread(self):
        with self.assertRaises(ThreadStateError):
            self.cache.add_reply(1, 'Hello')

    def test_add_reply_reconciles_locally(self):
        self.cache.load()
        original = self.cache.tree

        new_node = self.cache.add_reply(4, 'Hello')

        self.assertEqual(self.cache.state, ThreadCache.LOADED)
        self.assertIs(find_node(self.cache.tree, 4).children[0], new_node)
        self.assertEqual(self.cache.total_count, 6)
        self.assertIs(self.cache.tree.children[0], original.children[0])
        self.assertEqual(self.assembler.calls, 1)
        self.assertFalse(self.cache.needs_reload)

    def test_add_reply_to_parent_missing_locally(self):
        self.cache.load()
        original = self.cache.tree

        self.cache.add_reply(77, 'Hello')

        self.assertEqual(self.cache.state, ThreadCache.LOADED)
        self.assertTrue(self.cache.needs_reload)
        self.assertIs(self.cache.tree, original)
        self.assertEqual(self.cache.total_count, 5)

        self.cache.load()
        self.assertFalse(self.cache.needs_reload)

    def test_not_found_forces_error(self):
        self.cache.load()
        self.service.errors = [NotFound()]

        with self.assertRaises(NotFound):
            self.cache.add_reply(4, 'Hello')
        self.assertEqual(self.cache.state, ThreadCache.ERROR)

        with self.assertRaises(ThreadStateError):
            self.cache.toggle_like(4)
        self.cache.load()
        self.assertEqual(self.cache.state, ThreadCache.LOADED)

    def test_validation_and_permission_errors_return_to_loaded(self):
        self.cache.load()
        original = self.cache.tree

        for error in (ThreadValidationError('Comment cannot be empty'), Unauthorized()):
            self.service.errors = [error]
            with self.assertRaises(type(error)):
                self.cache.add_reply(4, '')
            self.assertEqual(self.cache.state, ThreadCache.LOADED)
            self.assertIs(self.cache.last_error, error)
            self.assertIs(self.cache.tree, original)

    def test_transient_error_allows_retry(self):
        self.cache.load()
        self.service.errors = [OperationalError('connection lost')]

        with self.assertRaises(OperationalError):
            self.cache.toggle_like(5)
        self.assertEqual(self.cache.state, ThreadCache.LOADED)
        self.assertEqual(find_node(self.cache.tree, 5).like_count, 0)

        result = self.cache.toggle_like(5)
        self.assertTrue(result.viewer_liked)
        self.assertEqual(find_node(self.cache.tree, 5).like_count, 1)
        self.assertIsNone(self.cache.last_error)

    def test_unexpected_error_is_logged_and_forces_error(self):
        self.cache.load()
        self.service.errors = [RuntimeError('boom')]

        with self.assertLogs('discussions.activity', level='ERROR') as logs:
            with self.assertRaises(RuntimeError):
                self.cache.add_reply(4, 'Hello')

        self.assertEqual(self.cache.state, ThreadCache.ERROR)
        self.assertIn('Thread mutation failed', logs.output[0])
        self.assertIn('"exception_type": "RuntimeError"', logs.output[0])
        self.assertIn('"root_id": 1', logs.output[0])

    def test_one_outstanding_mutation(self):
        self.cache.load()
        nested_errors = []

        def second_mutation():
            self.service.during_call = None
            try:
                self.cache.toggle_like(5)
            except ThreadStateError as e:
                nested_errors.append(e)

        self.service.during_call = second_mutation
        self.cache.add_reply(4, 'Hello')

        self.assertEqual(len(nested_errors), 1)
        self.assertEqual(self.cache.state, ThreadCache.LOADED)
        self.assertEqual(self.service.likes, {})

    def test_toggle_like_twice(self):
        self.cache.load()

        self.cache.toggle_like(2)
        self.cache.toggle_like(2)

        target = find_node(self.cache.tree, 2)
        self.assertEqual(target.like_count, 0)
        self.assertFalse(target.viewer_liked)

    def test_delete_reply(self):
        self.cache.load()

        self.cache.delete(3)

        self.assertEqual(self.service.deleted, [3])
        self.assertIsNone(find_node(self.cache.tree, 3))
        self.assertEqual(self.cache.total_count, 3)
        self.assertEqual(self.cache.state, ThreadCache.LOADED)

    def test_delete_reply_with_placeholder_policy(self):
        self.assembler.deleted_policy = POLICY_PLACEHOLDER
        self.cache.load()

        self.cache.delete(2)

        self.assertTrue(find_node(self.cache.tree, 2).deleted)
        self.assertEqual(self.cache.total_count, 5)

    def test_delete_root_unloads(self):
        self.cache.load()

        self.cache.delete(1)

        self.assertEqual(self.cache.state, ThreadCache.UNLOADED)
        self.assertIsNone(self.cache.tree)
        self.assertEqual(self.cache.total_count, 0)

    def test_reply_scenario(self):
        """Root with one comment, a reply to it and a like on the reply."""
        self.assembler.tree = node(1, children=[node(2, 1)], title='Root', visibility='public')
        self.cache.load()
        self.assertEqual(self.cache.total_count, 2)

        reply = self.cache.add_reply(2, 'Agreed')
        self.cache.toggle_like(reply.id)

        comment = find_node(self.cache.tree, 2)
        self.assertEqual(comment.reply_count, 1)
        self.assertEqual(comment.children[0].id, reply.id)
        self.assertEqual(comment.children[0].like_count, 1)
        self.assertEqual(self.cache.tree.reply_count, 1)
        self.assertEqual(self.cache.total_count, 3)
