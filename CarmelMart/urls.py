"""
Main URL configuration for CarmelMart project.
"""
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),
    path('vendors/', include(('apps.vendors.urls', 'vendors'), namespace='vendors')),
    path('accounts/', include('allauth.urls')),
]
