"""
URL configuration for the gym promotions service
"""

from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/promotions/", include("apps.api.promotions.urls")),
]
