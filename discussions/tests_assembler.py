"""
Tests for assembling flat thread records into nested trees.
"""

from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from django.test import TestCase, override_settings

from .assembler import POLICY_PLACEHOLDER, TreeAssembler, assemble
from .exceptions import NotFound, ThreadValidationError
from .models import NodeLike, ThreadNode
from .thread_cache import recompute_total_count

User = get_user_model()


def make_root(author, title='Welcome', body='First post', **kwargs):
    return ThreadNode.objects.create(
        author=author, author_name=author.username, title=title, body=body, **kwargs
    )


def make_reply(parent, author, body='A reply'):
    return ThreadNode.objects.create(
        parent=parent,
        root_id=parent.thread_root_id,
        author=author,
        author_name=author.username,
        body=body,
    )


class TreeAssemblerTestCase(TestCase):
    """Shape, ordering and aggregates of assembled threads."""

    def setUp(self):
        self.alice = User.objects.create_user(username='alice', password='testpass123')
        self.bob = User.objects.create_user(username='bob', password='testpass123')
        self.root = make_root(self.alice, tags='python, django', resource_links='https://example.com')
        self.first = make_reply(self.root, self.bob, 'first comment')
        self.second = make_reply(self.root, self.alice, 'second comment')
        self.nested = make_reply(self.first, self.alice, 'reply to first')

    def test_children_are_nested_newest_first(self):
        tree = assemble(self.root.id, self.alice)

        self.assertEqual(tree.id, self.root.id)
        self.assertIsNone(tree.parent_id)
        self.assertEqual([child.id for child in tree.children], [self.second.id, self.first.id])
        self.assertEqual(tree.reply_count, 2)

        first = tree.children[1]
        self.assertEqual(first.parent_id, self.root.id)
        self.assertEqual([child.id for child in first.children], [self.nested.id])
        self.assertEqual(first.reply_count, 1)
        self.assertEqual(first.children[0].reply_count, 0)

    def test_root_only_fields(self):
        tree = assemble(self.root.id, self.alice)

        self.assertEqual(tree.title, 'Welcome')
        self.assertEqual(tree.tags, ('python', 'django'))
        self.assertEqual(tree.resource_links, ('https://example.com',))
        self.assertEqual(tree.visibility, ThreadNode.VISIBILITY_PUBLIC)
        self.assertEqual(tree.children[0].title, '')
        self.assertIsNone(tree.children[0].visibility)

    def test_constant_number_of_queries(self):
        with self.assertNumQueries(3):
            assemble(self.root.id, self.alice)

        for _ in range(5):
            make_reply(self.nested, self.bob)
        with self.assertNumQueries(3):
            assemble(self.root.id, self.alice)

    def test_assemble_is_deterministic(self):
        self.assertEqual(assemble(self.root.id, self.bob), assemble(self.root.id, self.bob))

    def test_like_counts_follow_liked_records(self):
        NodeLike.objects.create(node=self.first, user=self.alice, liked=True)
        NodeLike.objects.create(node=self.first, user=self.bob, liked=True)
        NodeLike.objects.create(node=self.root, user=self.bob, liked=False)
        NodeLike.objects.create(node=self.root, user=self.alice, liked=True)

        tree = assemble(self.root.id, self.bob)
        first = tree.children[1]

        self.assertEqual(tree.like_count, 1)
        self.assertFalse(tree.viewer_liked)
        self.assertEqual(first.like_count, 2)
        self.assertTrue(first.viewer_liked)
        self.assertEqual(tree.children[0].like_count, 0)

    def test_anonymous_viewer_never_liked(self):
        NodeLike.objects.create(node=self.root, user=self.alice, liked=True)

        tree = assemble(self.root.id, AnonymousUser())

        self.assertEqual(tree.like_count, 1)
        self.assertFalse(tree.viewer_liked)

    def test_missing_root(self):
        with self.assertRaises(NotFound):
            assemble(self.root.id + 1000, self.alice)

    def test_reply_id_is_not_a_root(self):
        with self.assertRaises(NotFound):
            assemble(self.first.id, self.alice)

    def test_deleted_root(self):
        self.root.mark_deleted()
        with self.assertRaises(NotFound):
            assemble(self.root.id, self.alice)

    def test_malformed_root_id(self):
        with self.assertRaises(ThreadValidationError):
            assemble('abc', self.alice)
        with self.assertRaises(ThreadValidationError):
            assemble(0, self.alice)

    def test_private_thread_only_visible_to_author(self):
        self.root.visibility = ThreadNode.VISIBILITY_PRIVATE
        self.root.save()

        self.assertEqual(assemble(self.root.id, self.alice).id, self.root.id)
        with self.assertRaises(NotFound):
            assemble(self.root.id, self.bob)
        with self.assertRaises(NotFound):
            assemble(self.root.id, AnonymousUser())

    def test_deleted_reply_prunes_its_subtree(self):
        self.first.mark_deleted()

        tree = assemble(self.root.id, self.alice)

        self.assertEqual([child.id for child in tree.children], [self.second.id])
        self.assertEqual(tree.reply_count, 1)
        self.assertEqual(recompute_total_count(tree), 2)

    def test_placeholder_policy_keeps_anchor_of_live_replies(self):
        self.first.mark_deleted()
        self.second.mark_deleted()

        tree = TreeAssembler(deleted_policy=POLICY_PLACEHOLDER).assemble(self.root.id, self.alice)

        self.assertEqual(len(tree.children), 1)
        shell = tree.children[0]
        self.assertEqual(shell.id, self.first.id)
        self.assertTrue(shell.deleted)
        self.assertEqual(shell.body, '[deleted]')
        self.assertEqual(shell.author_name, '')
        self.assertEqual([child.id for child in shell.children], [self.nested.id])
        self.assertTrue(shell.to_dict()['deleted'])

    @override_settings(DISCUSSIONS_DELETED_NODE_POLICY='placeholder', DISCUSSIONS_DELETED_PLACEHOLDER='(removed)')
    def test_policy_from_settings(self):
        self.first.mark_deleted()

        tree = assemble(self.root.id, self.alice)

        self.assertEqual(tree.children[1].body, '(removed)')

    def test_unknown_policy(self):
        with self.assertRaises(ValueError):
            TreeAssembler(deleted_policy='archive')

    def test_deep_chain_without_recursion(self):
        depth = 1500
        parent = self.second
        for index in range(depth):
            parent = make_reply(parent, self.bob, f'level {index}')

        tree = assemble(self.root.id, self.alice)

        self.assertEqual(recompute_total_count(tree), 4 + depth)
        node = tree.children[0]
        levels = 0
        while node.children:
            node = node.children[0]
            levels += 1
        self.assertEqual(levels, depth)
        self.assertEqual(node.id, parent.id)

        data = tree.to_dict()
        self.assertEqual(data['children'][0]['id'], str(self.second.id))

    def test_deep_chain_is_deterministic(self):
        parent = self.second
        for index in range(3000):
            parent = make_reply(parent, self.bob, f'level {index}')

        first = assemble(self.root.id, self.alice)
        second = assemble(self.root.id, self.alice)

        self.assertIsNot(first, second)
        self.assertTrue(first == second)
        self.assertEqual(hash(first), hash(second))
        self.assertIn(f'id={self.root.id}', repr(first))

    def test_assemble_logs_structured_debug_line(self):
        with self.assertLogs('discussions.activity', level='DEBUG') as logs:
            assemble(self.root.id, self.alice)

        self.assertIn('Discussion assembled', logs.output[0])
        self.assertIn(f'"root_id": {self.root.id}', logs.output[0])
        self.assertIn('"stored_replies": 3', logs.output[0])

    def test_wire_format(self):
        data = assemble(self.root.id, self.alice).to_dict()

        self.assertEqual(data['id'], str(self.root.id))
        self.assertIsNone(data['parentId'])
        self.assertEqual(data['authorId'], str(self.alice.id))
        self.assertEqual(data['authorName'], 'alice')
        self.assertEqual(data['tags'], ['python', 'django'])
        self.assertEqual(data['resourceLinks'], ['https://example.com'])
        reply = data['children'][1]
        self.assertEqual(reply['parentId'], str(self.root.id))
        self.assertNotIn('title', reply)
        self.assertNotIn('deleted', reply)
        self.assertEqual(reply['children'][0]['body'], 'reply to first')


class VisibleCountsTestCase(TestCase):
    """Listing counts agree with what assemble() shows."""

    def setUp(self):
        self.alice = User.objects.create_user(username='alice', password='testpass123')
        self.root = make_root(self.alice)
        self.empty_root = make_root(self.alice, title='Quiet')
        self.first = make_reply(self.root, self.alice)
        self.second = make_reply(self.root, self.alice)
        self.nested = make_reply(self.first, self.alice)

    def test_counts_match_assembled_tree(self):
        counts = TreeAssembler().visible_counts([self.root.id, self.empty_root.id])

        self.assertEqual(counts[self.root.id], (2, 4))
        self.assertEqual(counts[self.empty_root.id], (0, 1))

    def test_counts_skip_pruned_subtrees(self):
        self.first.mark_deleted()

        counts = TreeAssembler().visible_counts([self.root.id])
        tree = assemble(self.root.id, self.alice)

        self.assertEqual(counts[self.root.id], (1, 2))
        self.assertEqual(counts[self.root.id][1], recompute_total_count(tree))

    def test_counts_under_placeholder_policy(self):
        self.first.mark_deleted()
        self.second.mark_deleted()
        assembler = TreeAssembler(deleted_policy=POLICY_PLACEHOLDER)

        counts = assembler.visible_counts([self.root.id])
        tree = assembler.assemble(self.root.id, self.alice)

        self.assertEqual(counts[self.root.id], (1, 3))
        self.assertEqual(counts[self.root.id][1], recompute_total_count(tree))

    def test_no_roots(self):
        with self.assertNumQueries(0):
            self.assertEqual(TreeAssembler().visible_counts([]), {})
