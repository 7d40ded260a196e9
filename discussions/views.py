"""
JSON endpoints of the threaded discussion engine.

Every view is wrapped by api_error_handler, so engine errors leave here as
``{success: false, error, message, type}`` payloads with their own status.
Mutations do not redirect anonymous users to a login page; the mutation
service rejects them and the client receives a 401.
"""

from django.http import HttpResponse, JsonResponse
from django.views.decorators.http import require_GET, require_POST
import json
import logging

from core.decorators.error_handling import api_error_handler
from .assembler import TreeAssembler
from .exceptions import ThreadValidationError
from .services import DiscussionListingService, ThreadMutationService
from .thread_cache import recompute_total_count

logger = logging.getLogger(__name__)


def request_data(request):
    """Request body as a dict; JSON and form-encoded bodies are both accepted"""
    if request.content_type == 'application/json':
        if not request.body:
            return {}
        try:
            data = json.loads(request.body)
        except (ValueError, UnicodeDecodeError):
            raise ThreadValidationError('Request body is not valid JSON')
        if not isinstance(data, dict):
            raise ThreadValidationError('Request body must be a JSON object')
        return data
    return request.POST


def thread_response(tree):
    """Whole thread plus its badge count, as JSON text"""
    content = tree.to_json(extra={'totalCount': recompute_total_count(tree)})
    return HttpResponse(content, content_type='application/json')


def listing_payload(summaries, page_obj):
    return {
        'success': True,
        'discussions': [summary.to_dict() for summary in summaries],
        'page': page_obj.number,
        'numPages': page_obj.paginator.num_pages,
        'totalItems': page_obj.paginator.count,
        'hasNext': page_obj.has_next(),
        'hasPrevious': page_obj.has_previous(),
    }


@require_GET
@api_error_handler
def thread_detail(request, root_id):
    """The whole nested thread as seen by the requesting user"""
    tree = TreeAssembler().assemble(root_id, request.user)
    return thread_response(tree)


@require_POST
@api_error_handler
def add_comment(request):
    data = request_data(request)
    service = ThreadMutationService(request.user, request=request)
    node = service.add_node(data.get('parentId'), data.get('body'))
    return JsonResponse(node.to_dict(), status=201)


@require_POST
@api_error_handler
def toggle_like(request):
    data = request_data(request)
    service = ThreadMutationService(request.user, request=request)
    result = service.toggle_like(data.get('nodeId'))
    return JsonResponse(result.to_dict())


@require_POST
@api_error_handler
def delete_node(request):
    data = request_data(request)
    ThreadMutationService(request.user, request=request).soft_delete(data.get('nodeId'))
    return JsonResponse({'ok': True})


@require_GET
@api_error_handler
def discussion_list(request):
    """Public discussions plus the viewer's private ones"""
    service = DiscussionListingService(request.user)
    summaries, page_obj = service.list_discussions(request.GET.get('page', 1))
    return JsonResponse(listing_payload(summaries, page_obj))


@require_GET
@api_error_handler
def discussions_by_user(request, user_id):
    service = DiscussionListingService(request.user)
    summaries, page_obj = service.discussions_by_user(user_id, request.GET.get('page', 1))
    return JsonResponse(listing_payload(summaries, page_obj))


@require_POST
@api_error_handler
def new_discussion(request):
    data = request_data(request)
    service = ThreadMutationService(request.user, request=request)
    node = service.create_discussion(
        title=data.get('title'),
        body=data.get('body'),
        tags=data.get('tags'),
        resource_links=data.get('resourceLinks'),
        visibility=data.get('visibility'),
    )
    return JsonResponse(node.to_dict(), status=201)


@require_POST
@api_error_handler
def edit_discussion(request, root_id):
    """Update a root the requester authored and return the refreshed thread"""
    data = request_data(request)
    service = ThreadMutationService(request.user, request=request)
    node = service.update_discussion(
        root_id,
        title=data.get('title'),
        body=data.get('body'),
        tags=data.get('tags'),
        resource_links=data.get('resourceLinks'),
        visibility=data.get('visibility'),
    )
    tree = service.assembler.assemble(node.id, request.user)
    return thread_response(tree)
