"""
Tests for thread mutations and discussion listings.
"""

from unittest import mock

from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from django.test import TestCase, override_settings

from .assembler import POLICY_PLACEHOLDER, TreeAssembler, assemble
from .exceptions import AuthenticationRequired, NotFound, ThreadValidationError, Unauthorized
from .models import NodeLike, ThreadNode
from .services import DiscussionListingService, ThreadMutationService
from .thread_cache import apply_new_reply, recompute_total_count

User = get_user_model()


class ThreadMutationServiceTestCase(TestCase):
    """Replies, likes and soft deletes."""

    def setUp(self):
        self.alice = User.objects.create_user(
            username='alice', password='testpass123', first_name='Alice', last_name='Smith'
        )
        self.bob = User.objects.create_user(username='bob', password='testpass123')
        self.alice_service = ThreadMutationService(self.alice)
        self.bob_service = ThreadMutationService(self.bob)
        self.root = self.alice_service.create_discussion('Welcome', 'Say hello')

    def test_add_node_under_root(self):
        node = self.bob_service.add_node(self.root.id, '  Hello there  ')

        self.assertEqual(node.parent_id, self.root.id)
        self.assertEqual(node.author_id, self.bob.id)
        self.assertEqual(node.author_name, 'bob')
        self.assertEqual(node.body, 'Hello there')
        self.assertEqual(node.like_count, 0)
        self.assertFalse(node.viewer_liked)
        self.assertEqual(node.reply_count, 0)
        self.assertEqual(node.children, ())
        self.assertIsNotNone(node.created_at)

    def test_add_node_records_thread_root_at_any_depth(self):
        comment = self.bob_service.add_node(self.root.id, 'comment')
        reply = self.alice_service.add_node(comment.id, 'reply')

        self.assertEqual(ThreadNode.objects.get(pk=reply.id).root_id, self.root.id)
        self.assertEqual(ThreadNode.objects.get(pk=comment.id).root_id, self.root.id)
        self.assertEqual(reply.author_name, 'Alice Smith')

    def test_add_node_accepts_string_parent_id(self):
        node = self.bob_service.add_node(str(self.root.id), 'Hello')
        self.assertEqual(node.parent_id, self.root.id)

    def test_add_node_rejects_empty_body(self):
        for body in ('', '   ', None):
            with self.assertRaises(ThreadValidationError):
                self.bob_service.add_node(self.root.id, body)
        self.assertFalse(ThreadNode.objects.filter(parent_id=self.root.id).exists())

    @override_settings(DISCUSSIONS_MAX_BODY_LENGTH=10)
    def test_add_node_rejects_oversized_body(self):
        with self.assertRaises(ThreadValidationError):
            self.bob_service.add_node(self.root.id, 'x' * 11)

    def test_add_node_rejects_malformed_parent(self):
        for parent_id in ('abc', -3, 0, None, True):
            with self.assertRaises(ThreadValidationError):
                self.bob_service.add_node(parent_id, 'Hello')

    def test_add_node_requires_authentication(self):
        with self.assertRaises(AuthenticationRequired):
            ThreadMutationService(AnonymousUser()).add_node(self.root.id, 'Hello')
        with self.assertRaises(AuthenticationRequired):
            ThreadMutationService(None).add_node(self.root.id, 'Hello')

    def test_add_node_missing_parent(self):
        with self.assertRaises(NotFound):
            self.bob_service.add_node(self.root.id + 1000, 'Hello')

    def test_add_node_under_deleted_parent(self):
        comment = self.bob_service.add_node(self.root.id, 'comment')
        self.bob_service.soft_delete(comment.id)

        with self.assertRaises(NotFound):
            self.alice_service.add_node(comment.id, 'reply')

    def test_add_node_in_deleted_thread(self):
        comment = self.bob_service.add_node(self.root.id, 'comment')
        self.alice_service.soft_delete(self.root.id)

        with self.assertRaises(NotFound):
            self.bob_service.add_node(comment.id, 'reply')

    def test_add_node_below_pruned_reply(self):
        comment = self.bob_service.add_node(self.root.id, 'comment')
        reply = self.alice_service.add_node(comment.id, 'reply')
        self.bob_service.soft_delete(comment.id)

        with self.assertRaises(NotFound):
            self.alice_service.add_node(reply.id, 'orphaned')

        placeholder_service = ThreadMutationService(
            self.alice, assembler=TreeAssembler(deleted_policy=POLICY_PLACEHOLDER)
        )
        node = placeholder_service.add_node(reply.id, 'still visible')
        self.assertEqual(node.parent_id, reply.id)

    def test_add_node_in_private_thread(self):
        private = self.alice_service.create_discussion('Notes', 'Mine', visibility='private')

        with self.assertRaises(NotFound):
            self.bob_service.add_node(private.id, 'Hello')
        node = self.alice_service.add_node(private.id, 'Note to self')
        self.assertEqual(node.parent_id, private.id)

    def test_new_reply_total_count_matches_reassembly(self):
        comment = self.bob_service.add_node(self.root.id, 'comment')
        tree = assemble(self.root.id, self.alice)

        reply = self.alice_service.add_node(comment.id, 'reply')
        local = apply_new_reply(tree, comment.id, reply)

        self.assertEqual(recompute_total_count(local), recompute_total_count(tree) + 1)
        self.assertEqual(recompute_total_count(local), recompute_total_count(assemble(self.root.id, self.alice)))

    def test_toggle_like_twice_restores_state(self):
        before = assemble(self.root.id, self.bob)

        first = self.bob_service.toggle_like(self.root.id)
        self.assertEqual(first.like_count, 1)
        self.assertTrue(first.viewer_liked)

        second = self.bob_service.toggle_like(self.root.id)
        self.assertEqual(second.like_count, before.like_count)
        self.assertEqual(second.viewer_liked, before.viewer_liked)
        self.assertEqual(NodeLike.objects.filter(node_id=self.root.id, user=self.bob).count(), 1)

    def test_toggle_like_counts_distinct_users(self):
        self.alice_service.toggle_like(self.root.id)
        result = self.bob_service.toggle_like(self.root.id)

        self.assertEqual(result.like_count, 2)
        self.assertEqual(result.to_dict(), {'likeCount': 2, 'viewerLiked': True})

        result = self.alice_service.toggle_like(self.root.id)
        self.assertEqual(result.like_count, 1)
        self.assertFalse(result.viewer_liked)

    def test_toggle_like_on_deleted_node(self):
        comment = self.bob_service.add_node(self.root.id, 'comment')
        self.bob_service.soft_delete(comment.id)

        with self.assertRaises(NotFound):
            self.alice_service.toggle_like(comment.id)

    def test_toggle_like_in_private_thread(self):
        private = self.alice_service.create_discussion('Notes', 'Mine', visibility='private')

        with self.assertRaises(NotFound):
            self.bob_service.toggle_like(private.id)

    def test_toggle_like_requires_authentication(self):
        with self.assertRaises(AuthenticationRequired):
            ThreadMutationService(AnonymousUser()).toggle_like(self.root.id)

    def test_soft_delete_by_author(self):
        comment = self.bob_service.add_node(self.root.id, 'comment')
        reply = self.alice_service.add_node(comment.id, 'reply')

        self.bob_service.soft_delete(comment.id)

        stored = ThreadNode.objects.get(pk=comment.id)
        self.assertTrue(stored.deleted)
        self.assertIsNotNone(stored.deleted_at)
        self.assertFalse(ThreadNode.objects.get(pk=reply.id).deleted)

    def test_soft_delete_by_non_author(self):
        comment = self.bob_service.add_node(self.root.id, 'comment')

        with self.assertRaises(Unauthorized):
            self.alice_service.soft_delete(comment.id)
        self.assertFalse(ThreadNode.objects.get(pk=comment.id).deleted)

    def test_soft_delete_twice(self):
        comment = self.bob_service.add_node(self.root.id, 'comment')
        self.bob_service.soft_delete(comment.id)

        with self.assertRaises(NotFound):
            self.bob_service.soft_delete(comment.id)

    def test_soft_delete_requires_authentication(self):
        with self.assertRaises(AuthenticationRequired):
            ThreadMutationService(AnonymousUser()).soft_delete(self.root.id)

    def test_soft_delete_in_private_thread_by_outsider(self):
        private = self.alice_service.create_discussion('Notes', 'Mine', visibility='private')
        note = self.alice_service.add_node(private.id, 'Note to self')

        for node_id in (private.id, note.id):
            with self.assertRaises(NotFound):
                self.bob_service.soft_delete(node_id)
        self.assertFalse(ThreadNode.objects.filter(pk__in=[private.id, note.id], deleted=True).exists())

        self.alice_service.soft_delete(note.id)
        self.assertTrue(ThreadNode.objects.get(pk=note.id).deleted)

    def test_toggle_like_when_concurrent_request_created_the_row(self):
        # the other request commits its row between our lookup and our insert
        NodeLike.objects.create(node_id=self.root.id, user=self.bob, liked=True)
        real_select_for_update = NodeLike.objects.select_for_update
        lookups = []

        def racing_select_for_update():
            queryset = real_select_for_update()
            if not lookups:
                lookups.append(queryset)
                return queryset.none()
            return queryset

        with mock.patch.object(NodeLike.objects, 'select_for_update', side_effect=racing_select_for_update):
            result = self.bob_service.toggle_like(self.root.id)

        self.assertEqual(len(lookups), 1)
        self.assertFalse(result.viewer_liked)
        self.assertEqual(result.like_count, 0)
        like = NodeLike.objects.get(node_id=self.root.id, user=self.bob)
        self.assertFalse(like.liked)
        self.assertEqual(NodeLike.objects.filter(node_id=self.root.id).count(), 1)


class DiscussionAuthoringTestCase(TestCase):
    """Creating and editing top-level discussions."""

    def setUp(self):
        self.alice = User.objects.create_user(username='alice', password='testpass123')
        self.bob = User.objects.create_user(username='bob', password='testpass123')
        self.service = ThreadMutationService(self.alice)

    def test_create_discussion(self):
        root = self.service.create_discussion(
            '  Study group ',
            'Who is in?',
            tags=['python', ' ', 'django '],
            resource_links='https://a.example, https://b.example',
            visibility='PRIVATE',
        )

        self.assertTrue(root.is_root)
        self.assertEqual(root.title, 'Study group')
        self.assertEqual(root.tags, ('python', 'django'))
        self.assertEqual(root.resource_links, ('https://a.example', 'https://b.example'))
        self.assertEqual(root.visibility, ThreadNode.VISIBILITY_PRIVATE)
        stored = ThreadNode.objects.get(pk=root.id)
        self.assertEqual(stored.tags, 'python,django')
        self.assertIsNone(stored.root_id)

    def test_create_discussion_defaults_to_public(self):
        root = self.service.create_discussion('Title', 'Body')
        self.assertEqual(root.visibility, ThreadNode.VISIBILITY_PUBLIC)

    def test_create_discussion_requires_title_and_body(self):
        with self.assertRaises(ThreadValidationError):
            self.service.create_discussion('', 'Body')
        with self.assertRaises(ThreadValidationError):
            self.service.create_discussion('Title', '   ')

    def test_create_discussion_rejects_unknown_visibility(self):
        with self.assertRaises(ThreadValidationError):
            self.service.create_discussion('Title', 'Body', visibility='friends')

    def test_update_discussion(self):
        root = self.service.create_discussion('Title', 'Body')

        updated = self.service.update_discussion(root.id, 'New title', 'New body', tags='a,b', visibility='private')

        self.assertEqual(updated.title, 'New title')
        self.assertEqual(updated.tags, ('a', 'b'))
        stored = ThreadNode.objects.get(pk=root.id)
        self.assertEqual(stored.body, 'New body')
        self.assertEqual(stored.visibility, ThreadNode.VISIBILITY_PRIVATE)

    def test_update_discussion_by_non_author(self):
        root = self.service.create_discussion('Title', 'Body')

        with self.assertRaises(Unauthorized):
            ThreadMutationService(self.bob).update_discussion(root.id, 'Mine now', 'Body')
        self.assertEqual(ThreadNode.objects.get(pk=root.id).title, 'Title')

    def test_update_deleted_discussion(self):
        root = self.service.create_discussion('Title', 'Body')
        self.service.soft_delete(root.id)

        with self.assertRaises(NotFound):
            self.service.update_discussion(root.id, 'Title', 'Body')

    def test_update_reply_is_not_found(self):
        root = self.service.create_discussion('Title', 'Body')
        reply = self.service.add_node(root.id, 'reply')

        with self.assertRaises(NotFound):
            self.service.update_discussion(reply.id, 'Title', 'Body')


class DiscussionListingServiceTestCase(TestCase):
    """Root listings and their aggregates."""

    def setUp(self):
        self.alice = User.objects.create_user(username='alice', password='testpass123')
        self.bob = User.objects.create_user(username='bob', password='testpass123')
        alice_service = ThreadMutationService(self.alice)
        bob_service = ThreadMutationService(self.bob)

        self.public = alice_service.create_discussion('Public', 'Open to all')
        self.private = alice_service.create_discussion('Private', 'Just me', visibility='private')
        self.bobs = bob_service.create_discussion('Bob', 'Hi')
        self.removed = bob_service.create_discussion('Gone', 'Bye')
        bob_service.soft_delete(self.removed.id)

        comment = bob_service.add_node(self.public.id, 'comment')
        alice_service.add_node(comment.id, 'reply')
        alice_service.add_node(self.public.id, 'another comment')
        bob_service.toggle_like(self.public.id)
        alice_service.toggle_like(self.public.id)

    def ids(self, summaries):
        return [summary.node.id for summary in summaries]

    def test_list_for_author_includes_own_private(self):
        summaries, page_obj = DiscussionListingService(self.alice).list_discussions()

        self.assertEqual(self.ids(summaries), [self.bobs.id, self.private.id, self.public.id])
        self.assertEqual(page_obj.paginator.count, 3)

    def test_list_for_others_hides_private(self):
        summaries, _page = DiscussionListingService(self.bob).list_discussions()
        self.assertEqual(self.ids(summaries), [self.bobs.id, self.public.id])

        summaries, _page = DiscussionListingService(AnonymousUser()).list_discussions()
        self.assertEqual(self.ids(summaries), [self.bobs.id, self.public.id])

    def test_summary_aggregates(self):
        summaries, _page = DiscussionListingService(self.bob).list_discussions()
        summary = summaries[-1]

        self.assertEqual(summary.node.like_count, 2)
        self.assertTrue(summary.node.viewer_liked)
        self.assertEqual(summary.comment_count, 2)
        self.assertEqual(summary.total_count, 4)

        data = summary.to_dict()
        self.assertEqual(data['commentCount'], 2)
        self.assertEqual(data['totalCount'], 4)
        self.assertNotIn('children', data)

    def test_summary_total_matches_assembled_thread(self):
        summaries, _page = DiscussionListingService(self.alice).list_discussions()
        for summary in summaries:
            tree = assemble(summary.node.id, self.alice)
            self.assertEqual(summary.total_count, recompute_total_count(tree))
            self.assertEqual(summary.comment_count, tree.reply_count)

    @override_settings(DISCUSSIONS_PAGE_SIZE=2)
    def test_pagination(self):
        service = DiscussionListingService(self.alice)

        summaries, page_obj = service.list_discussions(page=2)
        self.assertEqual(self.ids(summaries), [self.public.id])
        self.assertEqual(page_obj.paginator.num_pages, 2)

        summaries, page_obj = service.list_discussions(page='not-a-number')
        self.assertEqual(page_obj.number, 1)

    def test_discussions_by_user(self):
        summaries, _page = DiscussionListingService(self.alice).discussions_by_user(self.alice.id)
        self.assertEqual(self.ids(summaries), [self.private.id, self.public.id])

        summaries, _page = DiscussionListingService(self.bob).discussions_by_user(self.alice.id)
        self.assertEqual(self.ids(summaries), [self.public.id])

        summaries, _page = DiscussionListingService(self.alice).discussions_by_user(self.bob.id)
        self.assertEqual(self.ids(summaries), [self.bobs.id])
