from django.contrib import admin
from .models import NodeLike, ThreadNode


@admin.register(ThreadNode)
class ThreadNodeAdmin(admin.ModelAdmin):
    list_display = ('id', 'title', 'author_name', 'parent', 'root', 'visibility', 'deleted', 'created_at')
    list_filter = ('visibility', 'deleted', 'created_at')
    search_fields = ('title', 'body', 'author_name', 'author__username')
    raw_id_fields = ('parent', 'root', 'author')
    readonly_fields = ('created_at', 'updated_at', 'deleted_at')
    date_hierarchy = 'created_at'

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('author')


@admin.register(NodeLike)
class NodeLikeAdmin(admin.ModelAdmin):
    list_display = ('node', 'user', 'liked', 'updated_at')
    list_filter = ('liked',)
    search_fields = ('user__username',)
    raw_id_fields = ('node', 'user')
