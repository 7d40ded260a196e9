"""
Data contracts exchanged between the assembler, the mutation service,
the client thread cache and the JSON transport.

Assembled trees are immutable: a change produces new nodes along the path
from the root to the changed node and shares every other subtree, so
identity checks (``is``) tell a renderer which subtrees are untouched.
"""

from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
import json

from django.core.serializers.json import DjangoJSONEncoder
from django.utils.dateparse import parse_datetime


@dataclass(frozen=True, eq=False, repr=False)
class AssembledNode:
    id: int
    parent_id: Optional[int]
    author_id: int
    author_name: str
    body: str
    created_at: datetime
    like_count: int = 0
    viewer_liked: bool = False
    reply_count: int = 0
    children: Tuple['AssembledNode', ...] = ()
    # Root-only fields
    title: str = ''
    tags: Tuple[str, ...] = ()
    resource_links: Tuple[str, ...] = ()
    visibility: Optional[str] = None
    deleted: bool = False

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    def _own_values(self) -> Tuple[Any, ...]:
        """Every field except ``children``"""
        return tuple(getattr(self, f.name) for f in fields(self) if f.name != 'children')

    def __eq__(self, other):
        # pairwise walk over both trees; the generated __eq__ would recurse per level
        if not isinstance(other, AssembledNode):
            return NotImplemented
        stack = [(self, other)]
        while stack:
            left, right = stack.pop()
            if left is right:
                continue
            if left._own_values() != right._own_values() or len(left.children) != len(right.children):
                return False
            stack.extend(zip(left.children, right.children))
        return True

    def __hash__(self):
        return hash((self.id, self.parent_id, self.like_count, self.reply_count))

    def __repr__(self):
        return (
            f"AssembledNode(id={self.id!r}, parent_id={self.parent_id!r}, "
            f"like_count={self.like_count}, reply_count={self.reply_count}, "
            f"children=<{len(self.children)} nodes>)"
        )

    def _flat_dict(self) -> Dict[str, Any]:
        data = {
            'id': str(self.id),
            'parentId': str(self.parent_id) if self.parent_id is not None else None,
            'authorId': str(self.author_id),
            'authorName': self.author_name,
            'body': self.body,
            'createdAt': self.created_at.isoformat(),
            'likeCount': self.like_count,
            'viewerLiked': self.viewer_liked,
            'replyCount': self.reply_count,
        }
        if self.is_root:
            data.update({
                'title': self.title,
                'tags': list(self.tags),
                'resourceLinks': list(self.resource_links),
                'visibility': self.visibility,
            })
        if self.deleted:
            data['deleted'] = True
        return data

    def to_dict(self) -> Dict[str, Any]:
        """Wire format, children newest first; iterative so depth is unbounded"""
        out = self._flat_dict()
        out['children'] = []
        stack = [(self, out)]
        while stack:
            node, data = stack.pop()
            for child in node.children:
                child_data = child._flat_dict()
                child_data['children'] = []
                data['children'].append(child_data)
                stack.append((child, child_data))
        return out

    def to_json(self, extra: Optional[Dict[str, Any]] = None) -> str:
        """
        Wire format as JSON text, written with an explicit stack.

        json.dumps recurses once per nesting level, so a deep tree is never
        handed to it whole; only each node's own fields are encoded by it.
        ``extra`` keys are added to the top-level object.
        """
        parts = []
        stack: List[Any] = [self]
        while stack:
            item = stack.pop()
            if isinstance(item, str):
                parts.append(item)
                continue
            data = item._flat_dict()
            if item is self and extra:
                data.update(extra)
            head = json.dumps(data, cls=DjangoJSONEncoder)
            parts.append(head[:-1] + ', "children": [')
            stack.append(']}')
            for index in range(len(item.children) - 1, -1, -1):
                stack.append(item.children[index])
                if index:
                    stack.append(', ')
        return ''.join(parts)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AssembledNode':
        """
        Rebuild a tree from its wire format.

        Children are completed before their parent is built, using an
        explicit post-order walk instead of recursion.
        """
        built: Dict[int, AssembledNode] = {}
        stack: List[Tuple[Dict[str, Any], bool]] = [(data, False)]
        while stack:
            item, expanded = stack.pop()
            if not expanded:
                stack.append((item, True))
                for child in item.get('children') or ():
                    stack.append((child, False))
                continue
            children = tuple(built.pop(id(child)) for child in item.get('children') or ())
            built[id(item)] = cls._from_flat_dict(item, children)
        return built[id(data)]

    @classmethod
    def _from_flat_dict(cls, item: Dict[str, Any], children) -> 'AssembledNode':
        parent_id = item.get('parentId')
        created_at = item['createdAt']
        if isinstance(created_at, str):
            created_at = parse_datetime(created_at)
        return cls(
            id=int(item['id']),
            parent_id=int(parent_id) if parent_id not in (None, '', 0, '0') else None,
            author_id=int(item['authorId']),
            author_name=item.get('authorName', ''),
            body=item.get('body', ''),
            created_at=created_at,
            like_count=int(item.get('likeCount', 0)),
            viewer_liked=bool(item.get('viewerLiked', False)),
            reply_count=int(item.get('replyCount', len(children))),
            children=children,
            title=item.get('title', ''),
            tags=tuple(item.get('tags') or ()),
            resource_links=tuple(item.get('resourceLinks') or ()),
            visibility=item.get('visibility'),
            deleted=bool(item.get('deleted', False)),
        )


@dataclass(frozen=True)
class LikeResult:
    like_count: int
    viewer_liked: bool

    def to_dict(self) -> Dict[str, Any]:
        return {'likeCount': self.like_count, 'viewerLiked': self.viewer_liked}


@dataclass(frozen=True)
class DiscussionSummary:
    """One row of a discussion listing: a root without its reply tree"""
    node: AssembledNode
    comment_count: int
    total_count: int

    def to_dict(self) -> Dict[str, Any]:
        data = self.node._flat_dict()
        data['commentCount'] = self.comment_count
        data['totalCount'] = self.total_count
        return data
