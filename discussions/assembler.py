"""
Tree Assembler

Turns the flat, self-referencing ThreadNode relation into a nested
AssembledNode tree for one discussion. The whole thread is read with a
constant number of queries (root, replies, likes) and grouped by parent in
memory; materialization walks an explicit stack so arbitrarily deep threads
never hit the interpreter recursion limit.
"""

from collections import defaultdict
from dataclasses import replace
import logging

from django.conf import settings
from django.db.models import Q

from core.structured_logging import discussion_logger

from .contracts import AssembledNode
from .exceptions import NotFound
from .models import NodeLike, ThreadNode
from .validators import validate_node_id

logger = logging.getLogger(__name__)

POLICY_PRUNE = 'prune'
POLICY_PLACEHOLDER = 'placeholder'
DELETED_NODE_POLICIES = (POLICY_PRUNE, POLICY_PLACEHOLDER)


def viewer_id_for(viewer):
    """Authenticated user's pk, or None for anonymous/absent viewers"""
    if viewer is None or not getattr(viewer, 'is_authenticated', False):
        return None
    return viewer.pk


def build_node(record, like_count=0, viewer_liked=False, children=()):
    """AssembledNode for one stored record; root-only fields are kept on roots only"""
    children = tuple(children)
    is_root = record.parent_id is None
    return AssembledNode(
        id=record.id,
        parent_id=record.parent_id,
        author_id=record.author_id,
        author_name=record.author_name,
        body=record.body,
        created_at=record.created_at,
        like_count=like_count,
        viewer_liked=viewer_liked,
        reply_count=len(children),
        children=children,
        title=record.title if is_root else '',
        tags=tuple(record.tag_list) if is_root else (),
        resource_links=tuple(record.resource_link_list) if is_root else (),
        visibility=record.visibility if is_root else None,
    )


class TreeAssembler:
    """Builds the nested tree of one discussion as seen by one viewer"""

    def __init__(self, deleted_policy=None, placeholder=None):
        self.deleted_policy = deleted_policy or getattr(settings, 'DISCUSSIONS_DELETED_NODE_POLICY', POLICY_PRUNE)
        if self.deleted_policy not in DELETED_NODE_POLICIES:
            raise ValueError(f"Unknown deleted node policy: {self.deleted_policy!r}")
        self.placeholder = placeholder if placeholder is not None else getattr(
            settings, 'DISCUSSIONS_DELETED_PLACEHOLDER', '[deleted]'
        )

    def assemble(self, root_id, viewer=None):
        root_id = validate_node_id(root_id, 'Discussion ID')
        root = self._load_root(root_id, viewer)

        records = self._load_replies(root)
        like_counts, liked_by_viewer = self._load_likes(root, viewer)

        adjacency = defaultdict(list)
        for record in records:
            adjacency[record.parent_id].append(record)

        tree = self._materialize(root, adjacency, like_counts, liked_by_viewer)
        discussion_logger.debug(
            "Discussion assembled",
            user=viewer,
            extra_data={'root_id': root.id, 'stored_replies': len(records)},
        )
        return tree

    def _load_root(self, root_id, viewer):
        root = ThreadNode.objects.roots().filter(pk=root_id).first()
        if root is None or root.deleted:
            raise NotFound('Discussion not found or already deleted')
        if not root.is_visible_to(viewer):
            # private threads are indistinguishable from missing ones
            raise NotFound('Discussion not found or already deleted')
        return root

    def _load_replies(self, root):
        queryset = ThreadNode.objects.in_thread(root.id)
        if self.deleted_policy == POLICY_PRUNE:
            queryset = queryset.live()
        return list(queryset.order_by('-created_at', '-id'))

    def _load_likes(self, root, viewer):
        """Like tally of every node in the thread, root included, in one query"""
        viewer_pk = viewer_id_for(viewer)
        rows = NodeLike.objects.filter(
            Q(node__root_id=root.id) | Q(node_id=root.id),
            liked=True,
        ).values_list('node_id', 'user_id')

        like_counts = defaultdict(int)
        liked_by_viewer = set()
        for node_id, user_id in rows:
            like_counts[node_id] += 1
            if viewer_pk is not None and user_id == viewer_pk:
                liked_by_viewer.add(node_id)
        return like_counts, liked_by_viewer

    def _materialize(self, root, adjacency, like_counts, liked_by_viewer):
        """
        Post-order walk from the root: a node is built only after all of its
        children are, so each child is attached fully formed. Records whose
        parent is never reached (orphans of a pruned node) are never visited.
        """
        records_by_id = {root.id: root}
        built = {}
        stack = [(root.id, False)]
        while stack:
            node_id, expanded = stack.pop()
            child_records = adjacency.get(node_id, ())
            if not expanded:
                stack.append((node_id, True))
                for child in child_records:
                    records_by_id[child.id] = child
                    stack.append((child.id, False))
                continue

            children = [built.pop(child.id) for child in child_records if child.id in built]
            record = records_by_id.pop(node_id)
            if record.deleted:
                if not children:
                    continue
                built[node_id] = self._placeholder_node(record, children)
                continue
            built[node_id] = build_node(
                record,
                like_count=like_counts.get(node_id, 0),
                viewer_liked=node_id in liked_by_viewer,
                children=children,
            )
        return built[root.id]

    def is_reachable(self, record):
        """Whether assemble() would show this record under the current policy"""
        if record.deleted:
            return False
        if record.parent_id is None or self.deleted_policy == POLICY_PLACEHOLDER:
            return True

        thread = ThreadNode.objects.in_thread(record.root_id)
        if not thread.filter(deleted=True).exists():
            return True

        parents = dict(thread.values_list('id', 'parent_id'))
        deleted_ids = set(thread.filter(deleted=True).values_list('id', flat=True))
        seen = set()
        current = record.parent_id
        while current is not None and current != record.root_id:
            if current in deleted_ids or current in seen:
                return False
            seen.add(current)
            current = parents.get(current)
        return True

    def visible_counts(self, root_ids):
        """
        Reply counts of several discussions without materializing them.

        Returns {root_id: (direct_replies, total_nodes)} where total_nodes
        includes the root, counting exactly the nodes assemble() would show.
        One query for all roots.
        """
        root_ids = list(root_ids)
        if not root_ids:
            return {}
        rows = ThreadNode.objects.filter(root_id__in=root_ids).values_list('id', 'parent_id', 'root_id', 'deleted')
        if self.deleted_policy == POLICY_PRUNE:
            rows = rows.filter(deleted=False)

        adjacency = defaultdict(list)
        deleted_ids = set()
        for node_id, parent_id, _root_id, deleted in rows:
            adjacency[parent_id].append(node_id)
            if deleted:
                deleted_ids.add(node_id)

        counts = {}
        for root_id in root_ids:
            sizes = {}
            direct = 0
            stack = [(root_id, False)]
            while stack:
                node_id, expanded = stack.pop()
                if not expanded:
                    stack.append((node_id, True))
                    stack.extend((child_id, False) for child_id in adjacency.get(node_id, ()))
                    continue
                shown = [child_id for child_id in adjacency.get(node_id, ()) if child_id in sizes]
                below = sum(sizes.pop(child_id) for child_id in shown)
                if node_id == root_id:
                    direct = len(shown)
                elif node_id in deleted_ids and not below:
                    continue
                sizes[node_id] = below + 1
            counts[root_id] = (direct, sizes[root_id])
        return counts

    def _placeholder_node(self, record, children):
        """Deleted reply kept only as the anchor of its live replies"""
        return replace(
            build_node(record, children=children),
            body=self.placeholder,
            author_name='',
            deleted=True,
        )


def assemble(root_id, viewer=None):
    return TreeAssembler().assemble(root_id, viewer)
