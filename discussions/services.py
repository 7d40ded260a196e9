"""
Mutation and listing services for the threaded discussion engine.

ThreadMutationService appends replies, flips likes and soft-deletes nodes
on behalf of one acting user; every write runs in its own transaction so a
mutation is either fully applied or not at all. DiscussionListingService
serves the root-level listings with aggregate counts.
"""

from django.core.paginator import Paginator
from django.db import IntegrityError, transaction
from django.db.models import Count, Q
from django.conf import settings
import logging

from core.structured_logging import discussion_logger
from .assembler import TreeAssembler, build_node, viewer_id_for
from .contracts import DiscussionSummary, LikeResult
from .exceptions import AuthenticationRequired, NotFound, Unauthorized
from .models import NodeLike, ThreadNode
from .validators import (
    validate_body, validate_list_field, validate_node_id, validate_title,
    validate_visibility,
)

logger = logging.getLogger(__name__)


def display_name(user):
    return user.get_full_name() or user.get_username()


class ThreadMutationService:
    """Writes to the thread store on behalf of one user"""

    def __init__(self, user, request=None, assembler=None):
        self.user = user
        self.request = request
        self.assembler = assembler or TreeAssembler()

    def _require_user(self):
        if viewer_id_for(self.user) is None:
            raise AuthenticationRequired()

    def _live_node(self, node_id):
        """
        Load a node that the acting user can currently see: not deleted,
        inside a live thread visible to the user, and not orphaned below a
        deleted reply.
        """
        node = ThreadNode.objects.select_related('root').filter(pk=node_id).first()
        if node is None or node.deleted:
            raise NotFound('Discussion not found or already deleted')

        thread_root = node if node.is_root else node.root
        if thread_root.deleted or not thread_root.is_visible_to(self.user):
            raise NotFound('Discussion not found or already deleted')
        if not self.assembler.is_reachable(node):
            raise NotFound('Discussion not found or already deleted')
        return node

    def add_node(self, parent_id, body):
        """
        Append a reply under ``parent_id`` (a root or any live reply).

        Returns the new node as an AssembledNode with no likes and no children.
        """
        self._require_user()
        parent_id = validate_node_id(parent_id, 'Parent ID')
        body = validate_body(body)

        with transaction.atomic():
            parent = self._live_node(parent_id)
            record = ThreadNode.objects.create(
                parent=parent,
                root_id=parent.thread_root_id,
                author=self.user,
                author_name=display_name(self.user),
                body=body,
            )

        discussion_logger.info(
            "Reply added",
            user=self.user,
            request=self.request,
            extra_data={'node_id': record.id, 'parent_id': parent.id, 'root_id': record.root_id},
        )
        return build_node(record)

    def toggle_like(self, node_id):
        """Flip the acting user's like flag on a node; two calls restore the original state"""
        self._require_user()
        node_id = validate_node_id(node_id)

        with transaction.atomic():
            node = self._live_node(node_id)
            like = NodeLike.objects.select_for_update().filter(node=node, user=self.user).first()
            if like is None:
                try:
                    with transaction.atomic():
                        like = NodeLike.objects.create(node=node, user=self.user, liked=True)
                except IntegrityError:
                    # a concurrent request created the row first; flip it instead
                    like = NodeLike.objects.select_for_update().get(node=node, user=self.user)
                    like.liked = not like.liked
                    like.save(update_fields=['liked', 'updated_at'])
            else:
                like.liked = not like.liked
                like.save(update_fields=['liked', 'updated_at'])
            like_count = NodeLike.objects.filter(node=node, liked=True).count()

        discussion_logger.info(
            "Like toggled",
            user=self.user,
            request=self.request,
            extra_data={'node_id': node.id, 'liked': like.liked, 'like_count': like_count},
        )
        return LikeResult(like_count=like_count, viewer_liked=like.liked)

    def soft_delete(self, node_id):
        """Hide a node the acting user authored; its replies are not touched"""
        self._require_user()
        node_id = validate_node_id(node_id)

        with transaction.atomic():
            node = ThreadNode.objects.select_for_update().filter(pk=node_id).first()
            if node is None or node.deleted:
                raise NotFound('Discussion not found or already deleted')
            thread_root = node if node.is_root else ThreadNode.objects.get(pk=node.root_id)
            if not thread_root.is_visible_to(self.user):
                # private threads are indistinguishable from missing ones
                raise NotFound('Discussion not found or already deleted')
            if node.author_id != self.user.pk:
                discussion_logger.warning(
                    "Delete refused for non-author",
                    user=self.user,
                    request=self.request,
                    extra_data={'node_id': node.id, 'author_id': node.author_id},
                )
                raise Unauthorized('Only the author can delete this post')
            node.mark_deleted()

        discussion_logger.info(
            "Node deleted",
            user=self.user,
            request=self.request,
            extra_data={'node_id': node.id, 'is_root': node.is_root},
        )

    def create_discussion(self, title, body, tags=None, resource_links=None, visibility=None):
        """Author a new top-level discussion"""
        self._require_user()
        title = validate_title(title)
        body = validate_body(body, 'Content')
        record = ThreadNode.objects.create(
            author=self.user,
            author_name=display_name(self.user),
            title=title,
            body=body,
            tags=validate_list_field(tags),
            resource_links=validate_list_field(resource_links),
            visibility=validate_visibility(visibility),
        )

        discussion_logger.info(
            "Discussion created",
            user=self.user,
            request=self.request,
            extra_data={'node_id': record.id, 'visibility': record.visibility},
        )
        return build_node(record)

    def update_discussion(self, root_id, title, body, tags=None, resource_links=None, visibility=None):
        """Edit a live top-level discussion; only its author may do so"""
        self._require_user()
        root_id = validate_node_id(root_id, 'Discussion ID')
        title = validate_title(title)
        body = validate_body(body, 'Content')
        tags = validate_list_field(tags)
        resource_links = validate_list_field(resource_links)
        visibility = validate_visibility(visibility)

        with transaction.atomic():
            record = ThreadNode.objects.roots().select_for_update().filter(pk=root_id).first()
            if record is None or record.deleted:
                raise NotFound('Discussion not found or already deleted')
            if record.author_id != self.user.pk:
                raise Unauthorized("Discussion not found or you don't have permission")

            record.title = title
            record.body = body
            record.tags = tags
            record.resource_links = resource_links
            record.visibility = visibility
            record.save(update_fields=['title', 'body', 'tags', 'resource_links', 'visibility', 'updated_at'])

        discussion_logger.info(
            "Discussion updated",
            user=self.user,
            request=self.request,
            extra_data={'node_id': record.id},
        )
        return build_node(record)


class DiscussionListingService:
    """Root-level listings as seen by one viewer (may be anonymous)"""

    def __init__(self, viewer=None, assembler=None):
        self.viewer = viewer
        self.viewer_pk = viewer_id_for(viewer)
        self.assembler = assembler or TreeAssembler()

    def _visible_roots(self):
        queryset = ThreadNode.objects.roots().live()
        if self.viewer_pk is None:
            return queryset.public()
        return queryset.filter(
            Q(visibility=ThreadNode.VISIBILITY_PUBLIC) | Q(author_id=self.viewer_pk)
        )

    def list_discussions(self, page=1):
        """Public discussions plus the viewer's own private ones, newest first"""
        return self._summaries(self._visible_roots(), page)

    def discussions_by_user(self, user_id, page=1):
        """One author's live discussions; private ones only for the author"""
        user_id = validate_node_id(user_id, 'User ID')
        queryset = ThreadNode.objects.roots().live().filter(author_id=user_id)
        if self.viewer_pk != user_id:
            queryset = queryset.public()
        return self._summaries(queryset, page)

    def _summaries(self, queryset, page):
        queryset = queryset.annotate(
            like_total=Count('like_records', filter=Q(like_records__liked=True), distinct=True),
            viewer_like_total=Count(
                'like_records',
                filter=Q(like_records__liked=True, like_records__user_id=self.viewer_pk),
                distinct=True,
            ),
        ).order_by('-created_at', '-id')

        page_size = getattr(settings, 'DISCUSSIONS_PAGE_SIZE', 20)
        page_obj = Paginator(queryset, page_size).get_page(page)
        records = list(page_obj.object_list)
        counts = self.assembler.visible_counts(record.id for record in records)

        summaries = []
        for record in records:
            direct, total = counts.get(record.id, (0, 1))
            summaries.append(DiscussionSummary(
                node=build_node(
                    record,
                    like_count=record.like_total,
                    viewer_liked=record.viewer_like_total > 0,
                ),
                comment_count=direct,
                total_count=total,
            ))
        return summaries, page_obj
