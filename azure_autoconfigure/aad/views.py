"""
API views for the Azure AD authentication filter.
"""

import logging

from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from ..context import application_context
from .authentication import AADFilterAuthentication
from .filter import AADAuthenticationFilter


logger = logging.getLogger(__name__)


class CurrentPrincipalView(APIView):
    """
    API endpoint returning the Azure AD principal of the current request.
    """

    authentication_classes = [AADFilterAuthentication]
    permission_classes = [IsAuthenticated]

    def get(self, request):
        principal = request.auth
        logger.info(f"Principal accessed: {principal.upn}")

        return Response({
            'name': principal.name,
            'subject': principal.subject,
            'upn': principal.upn,
            'object_id': principal.object_id,
            'tenant_id': principal.tenant_id,
            'groups': [group.display_name for group in principal.groups],
            'roles': request._request.aad_roles,
        }, status=status.HTTP_200_OK)


@api_view(['GET'])
@authentication_classes([])
@permission_classes([AllowAny])
def aad_health(request):
    """Report whether the Azure AD authentication filter is registered."""
    token_filter = application_context.get_bean(AADAuthenticationFilter, default=None)

    return Response({
        'filter_registered': token_filter is not None,
        'environment': token_filter.aad_properties.environment if token_filter else None,
    }, status=status.HTTP_200_OK)
