from django.db import models
from django.conf import settings
from django.utils import timezone


def split_list_field(value):
    """Comma-joined column value to a list, blanks dropped"""
    if not value:
        return []
    return [item.strip() for item in value.split(',') if item.strip()]


def join_list_field(values):
    """List (or comma-joined string) to the stored comma-joined form"""
    if values is None:
        return ''
    if isinstance(values, str):
        values = values.split(',')
    return ','.join(str(item).strip() for item in values if str(item).strip())


class ThreadNodeQuerySet(models.QuerySet):
    def live(self):
        return self.filter(deleted=False)

    def roots(self):
        return self.filter(parent__isnull=True)

    def public(self):
        return self.filter(visibility=ThreadNode.VISIBILITY_PUBLIC)

    def in_thread(self, root_id):
        """Every reply of a thread, whatever its depth"""
        return self.filter(root_id=root_id)


class ThreadNode(models.Model):
    """
    One record of the flat discussion relation.

    A node without parent is a top-level discussion (root); every other node
    is a comment or a reply to a comment. ``root`` is denormalized on replies
    so a whole thread is read back with a single query.
    """
    VISIBILITY_PUBLIC = 'public'
    VISIBILITY_PRIVATE = 'private'
    VISIBILITY_CHOICES = (
        (VISIBILITY_PUBLIC, 'Public'),
        (VISIBILITY_PRIVATE, 'Private'),
    )

    parent = models.ForeignKey(
        'self',
        null=True,
        blank=True,
        on_delete=models.CASCADE,
        related_name='replies',
        help_text="Enclosing node; empty for a top-level discussion"
    )
    root = models.ForeignKey(
        'self',
        null=True,
        blank=True,
        on_delete=models.CASCADE,
        related_name='thread_nodes',
        help_text="Top-level discussion this reply belongs to; empty on roots"
    )
    author = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='thread_nodes')
    author_name = models.CharField(max_length=255, blank=True)

    # Root-only fields
    title = models.CharField(max_length=500, blank=True)
    tags = models.TextField(blank=True)
    resource_links = models.TextField(blank=True)
    visibility = models.CharField(max_length=10, choices=VISIBILITY_CHOICES, default=VISIBILITY_PUBLIC)

    body = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    deleted = models.BooleanField(default=False)
    deleted_at = models.DateTimeField(null=True, blank=True)

    objects = ThreadNodeQuerySet.as_manager()

    class Meta:
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['root', 'deleted'], name='thread_root_deleted_idx'),
            models.Index(fields=['parent', 'deleted'], name='thread_parent_deleted_idx'),
            models.Index(fields=['author', '-created_at'], name='thread_author_created_idx'),
        ]

    @property
    def is_root(self):
        return self.parent_id is None

    @property
    def thread_root_id(self):
        return self.id if self.parent_id is None else self.root_id

    @property
    def tag_list(self):
        return split_list_field(self.tags)

    @property
    def resource_link_list(self):
        return split_list_field(self.resource_links)

    def is_visible_to(self, user):
        """Private roots are only readable by their author"""
        if self.visibility != self.VISIBILITY_PRIVATE:
            return True
        return user is not None and user.is_authenticated and user.pk == self.author_id

    def mark_deleted(self):
        self.deleted = True
        self.deleted_at = timezone.now()
        self.save(update_fields=['deleted', 'deleted_at', 'updated_at'])

    def __str__(self):
        if self.is_root:
            return self.title or f"Discussion {self.pk}"
        return f"Reply {self.pk} by {self.author_name} on {self.root_id}"


class NodeLike(models.Model):
    """
    Like state of one user on one node.

    ``liked`` is flipped in place rather than rows being added and removed,
    so a toggle only ever touches a single row.
    """
    node = models.ForeignKey(ThreadNode, on_delete=models.CASCADE, related_name='like_records')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='node_likes')
    liked = models.BooleanField(default=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['node', 'user'], name='discussions_nodelike_one_per_user'),
        ]
        indexes = [
            models.Index(fields=['node', 'liked'], name='nodelike_node_liked_idx'),
        ]

    def __str__(self):
        state = 'likes' if self.liked else 'does not like'
        return f"User {self.user_id} {state} node {self.node_id}"
