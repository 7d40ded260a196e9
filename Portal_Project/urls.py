"""
Portal Project Main URL Configuration

Root URL configuration for the community portal. Authentication, the
admin interface and health monitoring live here; the threaded discussion
engine is mounted under /discussions/.

URL Structure:
- /admin/ : Django admin interface (also provides login)
- /discussions/ : Discussion threads, comments, likes
- /health/ : System health check
"""

from django.contrib import admin
from django.urls import path, include
from core.health_views import health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path('discussions/', include('discussions.urls', namespace='discussions')),
    path('health/', health_check, name='health_check'),
]
