"""
URL patterns for the Azure AD authentication endpoints.
"""

from django.urls import path
from . import views


app_name = 'aad'

urlpatterns = [
    path('me/', views.CurrentPrincipalView.as_view(), name='current-principal'),
    path('health/', views.aad_health, name='health'),
]
