"""
Django REST Framework integration of the Azure AD authentication filter.
"""

from rest_framework import authentication


class AADFilterAuthentication(authentication.BaseAuthentication):
    """
    Exposes the principal established by ``AADAuthenticationMiddleware``.

    Returns ``(user, principal)`` when the underlying request was
    authenticated by the filter, None otherwise.
    """

    def authenticate(self, request):
        django_request = getattr(request, '_request', request)
        principal = getattr(django_request, 'aad_principal', None)
        if principal is None:
            return None
        return django_request.user, principal

    def authenticate_header(self, request):
        return 'Bearer realm="Azure AD"'
