"""
Tests for the discussion JSON endpoints.
"""

import json
from unittest import mock

from django.contrib.auth import get_user_model
from django.db import OperationalError
from django.test import Client, TestCase
from django.urls import reverse

from .assembler import TreeAssembler
from .models import NodeLike, ThreadNode
from .services import ThreadMutationService

User = get_user_model()


class DiscussionViewsTestCase(TestCase):

    def setUp(self):
        self.client = Client()
        self.alice = User.objects.create_user(username='alice', password='testpass123')
        self.bob = User.objects.create_user(username='bob', password='testpass123')
        self.root = ThreadMutationService(self.alice).create_discussion('Welcome', 'Say hello', tags='intro')
        self.comment = ThreadMutationService(self.bob).add_node(self.root.id, 'Hello')

    def post_json(self, url, data):
        return self.client.post(url, data=json.dumps(data), content_type='application/json')

    def test_thread_detail(self):
        response = self.client.get(reverse('discussions:thread_detail', args=[self.root.id]))

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['id'], str(self.root.id))
        self.assertEqual(data['title'], 'Welcome')
        self.assertEqual(data['tags'], ['intro'])
        self.assertEqual(data['totalCount'], 2)
        self.assertEqual(data['children'][0]['id'], str(self.comment.id))
        self.assertEqual(data['children'][0]['children'], [])

    def test_thread_detail_missing(self):
        response = self.client.get(reverse('discussions:thread_detail', args=[self.root.id + 1000]))

        self.assertEqual(response.status_code, 404)
        data = response.json()
        self.assertFalse(data['success'])
        self.assertEqual(data['type'], 'not_found')

    def test_thread_detail_private(self):
        ThreadNode.objects.filter(pk=self.root.id).update(visibility=ThreadNode.VISIBILITY_PRIVATE)
        url = reverse('discussions:thread_detail', args=[self.root.id])

        self.client.force_login(self.bob)
        self.assertEqual(self.client.get(url).status_code, 404)
        self.client.force_login(self.alice)
        self.assertEqual(self.client.get(url).status_code, 200)

    def test_thread_detail_rejects_post(self):
        response = self.client.post(reverse('discussions:thread_detail', args=[self.root.id]))
        self.assertEqual(response.status_code, 405)

    def test_add_comment(self):
        self.client.force_login(self.alice)

        response = self.post_json(reverse('discussions:add_comment'), {
            'parentId': str(self.comment.id),
            'body': 'Nested reply',
        })

        self.assertEqual(response.status_code, 201)
        data = response.json()
        self.assertEqual(data['parentId'], str(self.comment.id))
        self.assertEqual(data['authorName'], 'alice')
        self.assertEqual(data['replyCount'], 0)
        self.assertEqual(data['likeCount'], 0)
        self.assertFalse(data['viewerLiked'])
        self.assertEqual(data['children'], [])

        thread = self.client.get(reverse('discussions:thread_detail', args=[self.root.id])).json()
        self.assertEqual(thread['totalCount'], 3)

    def test_add_comment_form_encoded(self):
        self.client.force_login(self.alice)

        response = self.client.post(reverse('discussions:add_comment'), {
            'parentId': self.root.id,
            'body': 'From a form',
        })

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['body'], 'From a form')

    def test_add_comment_anonymous(self):
        response = self.post_json(reverse('discussions:add_comment'), {
            'parentId': self.root.id,
            'body': 'Hello',
        })

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()['type'], 'authentication_required')

    def test_add_comment_validation(self):
        self.client.force_login(self.alice)

        response = self.post_json(reverse('discussions:add_comment'), {'parentId': self.root.id, 'body': '  '})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['type'], 'validation_error')

        response = self.post_json(reverse('discussions:add_comment'), {'parentId': 'abc', 'body': 'Hello'})
        self.assertEqual(response.status_code, 400)

    def test_add_comment_invalid_json(self):
        self.client.force_login(self.alice)

        response = self.client.post(
            reverse('discussions:add_comment'), data='{not json', content_type='application/json'
        )
        self.assertEqual(response.status_code, 400)

        response = self.post_json(reverse('discussions:add_comment'), ['a', 'list'])
        self.assertEqual(response.status_code, 400)

    def test_add_comment_missing_parent(self):
        self.client.force_login(self.alice)

        response = self.post_json(reverse('discussions:add_comment'), {
            'parentId': self.root.id + 1000,
            'body': 'Hello',
        })

        self.assertEqual(response.status_code, 404)

    def test_toggle_like(self):
        self.client.force_login(self.alice)
        url = reverse('discussions:toggle_like')

        response = self.post_json(url, {'nodeId': self.comment.id})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'likeCount': 1, 'viewerLiked': True})

        response = self.post_json(url, {'nodeId': self.comment.id})
        self.assertEqual(response.json(), {'likeCount': 0, 'viewerLiked': False})
        self.assertEqual(NodeLike.objects.filter(node_id=self.comment.id).count(), 1)

    def test_toggle_like_anonymous(self):
        response = self.post_json(reverse('discussions:toggle_like'), {'nodeId': self.comment.id})
        self.assertEqual(response.status_code, 401)

    def test_delete_node(self):
        self.client.force_login(self.bob)

        response = self.post_json(reverse('discussions:delete_node'), {'nodeId': self.comment.id})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'ok': True})
        thread = self.client.get(reverse('discussions:thread_detail', args=[self.root.id])).json()
        self.assertEqual(thread['children'], [])
        self.assertEqual(thread['totalCount'], 1)

    def test_delete_node_by_non_author(self):
        self.client.force_login(self.alice)

        response = self.post_json(reverse('discussions:delete_node'), {'nodeId': self.comment.id})

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()['type'], 'permission_error')
        self.assertFalse(ThreadNode.objects.get(pk=self.comment.id).deleted)

    def test_discussion_list(self):
        ThreadMutationService(self.alice).create_discussion('Hidden', 'Private', visibility='private')

        response = self.client.get(reverse('discussions:discussion_list'))

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertTrue(data['success'])
        self.assertEqual([item['id'] for item in data['discussions']], [str(self.root.id)])
        self.assertEqual(data['discussions'][0]['commentCount'], 1)
        self.assertEqual(data['discussions'][0]['totalCount'], 2)
        self.assertEqual(data['page'], 1)
        self.assertFalse(data['hasNext'])

        self.client.force_login(self.alice)
        data = self.client.get(reverse('discussions:discussion_list')).json()
        self.assertEqual(data['totalItems'], 2)

    def test_discussions_by_user(self):
        response = self.client.get(reverse('discussions:discussions_by_user', args=[self.bob.id]))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['discussions'], [])

    def test_new_discussion(self):
        self.client.force_login(self.bob)

        response = self.post_json(reverse('discussions:new_discussion'), {
            'title': 'Study group',
            'body': 'Who is in?',
            'tags': ['python', 'django'],
            'resourceLinks': 'https://example.com',
            'visibility': 'Public',
        })

        self.assertEqual(response.status_code, 201)
        data = response.json()
        self.assertIsNone(data['parentId'])
        self.assertEqual(data['tags'], ['python', 'django'])
        self.assertEqual(data['resourceLinks'], ['https://example.com'])
        self.assertEqual(data['visibility'], 'public')

    def test_new_discussion_requires_title(self):
        self.client.force_login(self.bob)

        response = self.post_json(reverse('discussions:new_discussion'), {'title': '', 'body': 'Body'})

        self.assertEqual(response.status_code, 400)

    def test_edit_discussion(self):
        self.client.force_login(self.alice)

        response = self.post_json(reverse('discussions:edit_discussion', args=[self.root.id]), {
            'title': 'Welcome back',
            'body': 'Say hello again',
        })

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['title'], 'Welcome back')
        self.assertEqual(data['totalCount'], 2)

    def test_edit_discussion_by_non_author(self):
        self.client.force_login(self.bob)

        response = self.post_json(reverse('discussions:edit_discussion', args=[self.root.id]), {
            'title': 'Mine',
            'body': 'Now',
        })

        self.assertEqual(response.status_code, 403)

    def test_thread_detail_deep_chain(self):
        depth = 3000
        parent = ThreadNode.objects.get(pk=self.comment.id)
        for index in range(depth):
            parent = ThreadNode.objects.create(
                parent=parent,
                root_id=self.root.id,
                author=self.bob,
                author_name='bob',
                body=f'level {index}',
            )

        response = self.client.get(reverse('discussions:thread_detail', args=[self.root.id]))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response['Content-Type'], 'application/json')
        content = response.content.decode()
        # the decoder recurses per level as well, so the body is checked as text
        self.assertTrue(content.startswith(f'{{"id": "{self.root.id}"'))
        self.assertIn(f'"totalCount": {depth + 2}', content)
        self.assertEqual(content.count('"authorId": '), depth + 2)
        self.assertIn(f'"id": "{parent.id}"', content)
        self.assertTrue(content.endswith(']}' * (depth + 2)))

    def test_thread_detail_json_matches_wire_format(self):
        response = self.client.get(reverse('discussions:thread_detail', args=[self.root.id]))

        tree = TreeAssembler().assemble(self.root.id, None)
        expected = tree.to_dict()
        expected['totalCount'] = 2
        self.assertEqual(json.loads(response.content), expected)

    def test_transient_database_error(self):
        with mock.patch('discussions.views.TreeAssembler.assemble', side_effect=OperationalError('gone away')):
            response = self.client.get(reverse('discussions:thread_detail', args=[self.root.id]))

        self.assertEqual(response.status_code, 503)
        data = response.json()
        self.assertEqual(data['type'], 'transient_error')
        self.assertTrue(data['retryable'])


class HealthCheckTestCase(TestCase):

    def test_health_check(self):
        response = Client().get(reverse('health_check'))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'healthy')
