"""
URL configuration for the clinical transaction engine.

The `urlpatterns` list routes URLs to views.  This module includes
both the Django admin and the API routes provided by the clinical app.
OpenAPI documentation is exposed at ``/swagger/`` and ``/redoc/``.
"""
from django.contrib import admin
from django.urls import path, include

from rest_framework import permissions
from drf_yasg.views import get_schema_view
from drf_yasg import openapi

# API metadata for Swagger/OpenAPI documentation
api_info = openapi.Info(
    title="Clinical Transaction Engine API",
    default_version='v1',
    description="Scheduling, bed allocation, pharmacy inventory, dispensing and billing.",
)

schema_view = get_schema_view(
    api_info,
    public=True,
    permission_classes=(permissions.AllowAny,),
)

urlpatterns = [
    # Django admin site
    path('admin/', admin.site.urls),
    # API routes from the clinical app
    path('', include('clinical.routers')),
    # Swagger and ReDoc
    path('swagger/', schema_view.with_ui('swagger', cache_timeout=0), name='schema-swagger-ui'),
    path('redoc/', schema_view.with_ui('redoc', cache_timeout=0), name='schema-redoc'),
]
