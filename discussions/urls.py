from django.urls import path
from . import views

app_name = 'discussions'

urlpatterns = [
    path('', views.discussion_list, name='discussion_list'),
    path('create/', views.new_discussion, name='new_discussion'),
    path('<int:root_id>/update/', views.edit_discussion, name='edit_discussion'),
    path('threads/<int:root_id>/', views.thread_detail, name='thread_detail'),
    path('comments/add/', views.add_comment, name='add_comment'),
    path('likes/toggle/', views.toggle_like, name='toggle_like'),
    path('nodes/delete/', views.delete_node, name='delete_node'),
    path('users/<int:user_id>/', views.discussions_by_user, name='discussions_by_user'),
]
