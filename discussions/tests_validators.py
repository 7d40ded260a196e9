"""
Tests for discussion input validation.
"""

from datetime import datetime, timezone as dt_timezone
from dataclasses import replace
import json

from django.test import SimpleTestCase, override_settings

from .contracts import AssembledNode, DiscussionSummary
from .exceptions import ThreadValidationError
from .models import join_list_field, split_list_field
from .validators import (
    validate_body, validate_list_field, validate_node_id,
    validate_title, validate_visibility,
)


class ValidatorsTestCase(SimpleTestCase):

    def test_validate_node_id(self):
        self.assertEqual(validate_node_id(5), 5)
        self.assertEqual(validate_node_id(' 12 '), 12)
        for bad in (None, True, 'abc', '1.5', 0, -1, [], {}):
            with self.assertRaises(ThreadValidationError):
                validate_node_id(bad)

    def test_validate_node_id_message(self):
        with self.assertRaises(ThreadValidationError) as cm:
            validate_node_id(None, 'Parent ID')
        self.assertEqual(cm.exception.message, 'Parent ID is required')
        self.assertEqual(cm.exception.status_code, 400)
        self.assertEqual(cm.exception.error_type, 'validation_error')

    def test_validate_body(self):
        self.assertEqual(validate_body('  <p>Hi</p> \n'), '<p>Hi</p>')
        for bad in (None, '', ' \t\n', 42):
            with self.assertRaises(ThreadValidationError):
                validate_body(bad)

    @override_settings(DISCUSSIONS_MAX_BODY_LENGTH=5)
    def test_validate_body_length(self):
        self.assertEqual(validate_body('12345'), '12345')
        with self.assertRaises(ThreadValidationError):
            validate_body('123456')

    def test_validate_title(self):
        self.assertEqual(validate_title(' Hello '), 'Hello')
        with self.assertRaises(ThreadValidationError):
            validate_title('   ')
        with self.assertRaises(ThreadValidationError):
            validate_title('x' * 501)

    def test_validate_visibility(self):
        self.assertEqual(validate_visibility(None), 'public')
        self.assertEqual(validate_visibility(''), 'public')
        self.assertEqual(validate_visibility('PRIVATE'), 'private')
        self.assertEqual(validate_visibility(' Public '), 'public')
        with self.assertRaises(ThreadValidationError):
            validate_visibility('hidden')

    def test_list_fields(self):
        self.assertEqual(validate_list_field(None), '')
        self.assertEqual(validate_list_field(['a', ' b ', '']), 'a,b')
        self.assertEqual(validate_list_field('a, ,b'), 'a,b')
        self.assertEqual(split_list_field(' x , y ,'), ['x', 'y'])
        self.assertEqual(join_list_field(('p', 'q')), 'p,q')
        with self.assertRaises(ThreadValidationError):
            validate_list_field(7)


class ContractsTestCase(SimpleTestCase):

    def setUp(self):
        created = datetime(2024, 5, 1, 12, 0, tzinfo=dt_timezone.utc)
        reply = AssembledNode(
            id=2, parent_id=1, author_id=8, author_name='bob', body='reply', created_at=created,
            like_count=1, viewer_liked=True,
        )
        self.tree = AssembledNode(
            id=1, parent_id=None, author_id=7, author_name='alice', body='root', created_at=created,
            reply_count=1, children=(reply,), title='Root', tags=('a',), visibility='public',
        )

    def test_from_dict_restores_tree(self):
        self.assertEqual(AssembledNode.from_dict(self.tree.to_dict()), self.tree)

    def test_wire_ids_are_strings(self):
        data = self.tree.to_dict()
        self.assertEqual(data['id'], '1')
        self.assertEqual(data['children'][0]['parentId'], '1')
        self.assertEqual(data['createdAt'], '2024-05-01T12:00:00+00:00')

    def test_from_dict_accepts_zero_parent(self):
        data = self.tree.to_dict()
        data['parentId'] = '0'
        self.assertTrue(AssembledNode.from_dict(data).is_root)

    def test_summary(self):
        data = DiscussionSummary(node=self.tree, comment_count=1, total_count=2).to_dict()
        self.assertEqual(data['title'], 'Root')
        self.assertEqual(data['commentCount'], 1)
        self.assertEqual(data['totalCount'], 2)

    def test_to_json_matches_wire_format(self):
        data = json.loads(self.tree.to_json(extra={'totalCount': 2}))

        expected = self.tree.to_dict()
        expected['totalCount'] = 2
        self.assertEqual(data, expected)

    def test_equality_compares_whole_tree(self):
        copy = AssembledNode.from_dict(self.tree.to_dict())
        liked = replace(copy, children=(replace(copy.children[0], like_count=5),))

        self.assertTrue(copy == self.tree)
        self.assertFalse(liked == self.tree)
        self.assertFalse(replace(copy, children=()) == self.tree)
        self.assertEqual(hash(copy), hash(self.tree))

    def deep_chain(self, depth):
        created = datetime(2024, 5, 1, 12, 0, tzinfo=dt_timezone.utc)
        tree = AssembledNode(id=depth + 1, parent_id=depth, author_id=7, author_name='alice', body='leaf', created_at=created)
        for node_id in range(depth, 0, -1):
            tree = AssembledNode(
                id=node_id, parent_id=node_id - 1 or None, author_id=7, author_name='alice',
                body=f'level {node_id}', created_at=created, reply_count=1, children=(tree,),
            )
        return tree

    def test_deep_tree_equality_repr_and_json(self):
        first = self.deep_chain(4000)
        second = self.deep_chain(4000)

        self.assertTrue(first == second)
        self.assertIsInstance(hash(first), int)
        self.assertEqual(repr(first), 'AssembledNode(id=1, parent_id=None, like_count=0, reply_count=1, children=<1 nodes>)')

        content = first.to_json()
        self.assertTrue(content.startswith('{"id": "1"'))
        self.assertEqual(content.count('"id": '), 4001)
        self.assertTrue(content.endswith(']}' * 4001))
