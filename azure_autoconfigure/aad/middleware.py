"""
Middleware placing the Azure AD authentication filter in the request pipeline.

Add ``azure_autoconfigure.aad.middleware.AADAuthenticationMiddleware`` to
``MIDDLEWARE`` after ``AuthenticationMiddleware``. Django builds middleware
only when a WSGI or ASGI request handler is loaded, so the filter is
autoconfigured there and never for management commands. When no filter is
registered in the application context, requests pass through untouched.
"""

import logging

from django.http import JsonResponse
from rest_framework import exceptions

from ..context import application_context
from .autoconfig import autoconfigure
from .filter import AADAuthenticationFilter


logger = logging.getLogger(__name__)


class AADAuthenticationMiddleware:

    def __init__(self, get_response):
        self.get_response = get_response
        autoconfigure(application_context)

    def __call__(self, request):
        token_filter = application_context.get_bean(AADAuthenticationFilter, default=None)

        if token_filter is not None:
            try:
                token_filter.do_filter(request)
            except exceptions.APIException as e:
                logger.info(f"Azure AD authentication rejected {request.path}: {e.detail}")
                return self.error_response(e)

        return self.get_response(request)

    def error_response(self, exc):
        response = JsonResponse({'detail': str(exc.detail)}, status=exc.status_code)
        if exc.status_code == 401:
            response['WWW-Authenticate'] = 'Bearer realm="Azure AD"'
        return response
