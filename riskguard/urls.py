"""
URL configuration for riskguard project.
"""
from django.contrib import admin
from django.urls import path, include

from riskguard.core.views.health import health_check


urlpatterns = [
    path('health/', health_check, name='health_check'),

    path('admin/', admin.site.urls),

    path('api/v1/core/', include('riskguard.core.urls')),
]
