"""
URL configuration for the sample_backend project.
"""
from django.urls import path, include
from django.http import JsonResponse


def api_root(request):
    """
    API root endpoint providing information about available endpoints.
    """
    return JsonResponse({
        'message': 'Azure AD protected sample API',
        'authentication': 'Azure AD JWT',
        'endpoints': {
            'aad': '/api/aad/',
        },
        'status': 'online'
    })


urlpatterns = [
    path('api/', api_root, name='api-root'),
    path('api/aad/', include('azure_autoconfigure.aad.urls')),
]
