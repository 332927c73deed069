"""
Azure AD authentication filter.

The filter validates Bearer tokens issued by Azure AD, resolves the
caller's group memberships through Microsoft Graph and attaches the
resulting principal and Django user to the request. It is registered in
the application context by the autoconfiguration and driven by
``AADAuthenticationMiddleware``.
"""

import hashlib
import logging
import time
from typing import Optional

from django.contrib.auth import get_user_model
from django.utils import timezone as django_timezone
from rest_framework import exceptions

from .graph import AzureADGraphClient
from .principal import UserPrincipal, UserPrincipalManager


User = get_user_model()
logger = logging.getLogger(__name__)

CURRENT_USER_PRINCIPAL = 'CURRENT_USER_PRINCIPAL'
TOKEN_HEADER_PREFIX = 'Bearer '


class AADAuthenticationFilter:
    """
    Per-request Azure AD authentication.

    Args:
        aad_properties: ``AADAuthenticationProperties``
        endpoints: ``ServiceEndpoints`` of the configured environment
    """

    def __init__(self, aad_properties, endpoints):
        self.aad_properties = aad_properties
        self.endpoints = endpoints
        self.principal_manager = UserPrincipalManager(endpoints, aad_properties)
        self.graph_client = AzureADGraphClient(aad_properties, endpoints)

    def do_filter(self, request) -> Optional[UserPrincipal]:
        """
        Authenticate the request if it carries a Bearer token.

        Sets ``request.aad_principal``, ``request.aad_roles`` and
        ``request.user`` on success.

        Returns:
            The principal, or None when the request has no Bearer token

        Raises:
            AuthenticationFailed: If the token is invalid or expired
            ServiceUnavailable: If Azure AD or Microsoft Graph cannot be reached
        """
        auth_header = request.META.get('HTTP_AUTHORIZATION', '')
        if not auth_header.startswith(TOKEN_HEADER_PREFIX):
            return None

        token = auth_header[len(TOKEN_HEADER_PREFIX):].strip()
        if not token:
            raise exceptions.AuthenticationFailed('Invalid token header. No credentials provided.')
        if ' ' in token:
            raise exceptions.AuthenticationFailed(
                'Invalid token header. Token string should not contain spaces.'
            )

        principal = self._get_session_principal(request, token)
        if principal is None:
            principal = self.principal_manager.build_user_principal(token)
            if self.aad_properties.active_directory_groups:
                graph_token = self.graph_client.acquire_token_for_graph_api(token, principal.tenant_id)
                principal.groups = self.graph_client.get_groups(graph_token)
            self._set_session_principal(request, token, principal)

        request.aad_principal = principal
        request.aad_roles = principal.roles(self.aad_properties.active_directory_groups)
        request.user = self.get_or_create_user(principal)

        logger.debug(f"Request authenticated for {principal.upn} with roles {request.aad_roles}")
        return principal

    def _get_session_principal(self, request, token):
        session = self._session(request)
        if session is None:
            return None

        cached = session.get(CURRENT_USER_PRINCIPAL)
        if not cached or cached.get('token') != _token_digest(token):
            return None

        principal = UserPrincipal.from_dict(cached['principal'])
        if principal.claims.get('exp', 0) <= time.time():
            del session[CURRENT_USER_PRINCIPAL]
            return None
        return principal

    def _set_session_principal(self, request, token, principal):
        session = self._session(request)
        if session is not None:
            session[CURRENT_USER_PRINCIPAL] = {
                'token': _token_digest(token),
                'principal': principal.to_dict(),
            }

    def _session(self, request):
        if self.aad_properties.session_stateless:
            return None
        return getattr(request, 'session', None)

    def get_or_create_user(self, principal: UserPrincipal):
        """
        Get or create the Django user for a principal.

        Users are keyed by Azure AD Object ID, stored in the username field.
        Changed email or name claims are written back.

        Raises:
            AuthenticationFailed: If the token carries no Object ID
        """
        object_id = principal.object_id
        if not object_id:
            logger.error("Token missing required 'oid' claim")
            raise exceptions.AuthenticationFailed('Invalid token: missing user ID')

        email = principal.email or ''
        given_name = principal.claims.get('given_name', '')
        family_name = principal.claims.get('family_name', '')
        if not given_name and not family_name and principal.name:
            name_parts = principal.name.split(' ', 1)
            given_name = name_parts[0]
            family_name = name_parts[1] if len(name_parts) > 1 else ''

        try:
            user = User.objects.get(username=object_id)
        except User.DoesNotExist:
            logger.info(f"Creating new user for: {email} (oid: {object_id})")
            user = User.objects.create_user(
                username=object_id,
                email=email,
                first_name=given_name,
                last_name=family_name,
            )
        else:
            updated_fields = []
            for field, value in (('email', email), ('first_name', given_name), ('last_name', family_name)):
                if value and getattr(user, field) != value:
                    setattr(user, field, value)
                    updated_fields.append(field)
            if updated_fields:
                user.save(update_fields=updated_fields)
                logger.info(f"Updated user information for: {email}")

        user.last_login = django_timezone.now()
        user.save(update_fields=['last_login'])
        return user


def _token_digest(token):
    return hashlib.sha256(token.encode('utf-8')).hexdigest()
