"""
Microsoft Graph client resolving a user's Azure AD group memberships.

The caller's access token is exchanged for a Graph token through the
OAuth 2.0 on-behalf-of flow, then the membership endpoint is paged through.
"""

import logging
from typing import List

import requests

from .exceptions import ServiceUnavailable
from .principal import UserGroup


logger = logging.getLogger(__name__)

OBO_GRANT_TYPE = 'urn:ietf:params:oauth:grant-type:jwt-bearer'
GRAPH_GROUP_TYPES = ('#microsoft.graph.group', 'Group')

# Bound on @odata.nextLink pages followed for one user.
MAX_MEMBERSHIP_PAGES = 50


class AzureADGraphClient:
    """
    Args:
        aad_properties: ``AADAuthenticationProperties``
        endpoints: ``ServiceEndpoints`` of the configured environment
    """

    def __init__(self, aad_properties, endpoints):
        self.aad_properties = aad_properties
        self.endpoints = endpoints

    def acquire_token_for_graph_api(self, id_token: str, tenant_id: str) -> str:
        """
        Exchange the caller's token for a Microsoft Graph access token.

        Raises:
            ServiceUnavailable: If the token endpoint fails or refuses the exchange
        """
        tenant = self.aad_properties.tenant_id or tenant_id or 'common'
        token_uri = f'{self.endpoints.aad_signin_uri}{tenant}/oauth2/v2.0/token'

        try:
            response = requests.post(
                token_uri,
                data={
                    'grant_type': OBO_GRANT_TYPE,
                    'client_id': self.aad_properties.client_id,
                    'client_secret': self.aad_properties.client_secret,
                    'assertion': id_token,
                    'scope': self.endpoints.graph_scope,
                    'requested_token_use': 'on_behalf_of',
                },
                timeout=self.aad_properties.jwt_timeout,
            )
            response.raise_for_status()
            access_token = response.json()['access_token']
        except (requests.RequestException, ValueError, KeyError) as e:
            logger.error(f"On-behalf-of token exchange failed: {str(e)}")
            raise ServiceUnavailable('Unable to acquire a Microsoft Graph token')

        logger.debug("Acquired Microsoft Graph token on behalf of user")
        return access_token

    def get_groups(self, graph_token: str) -> List[UserGroup]:
        """
        Return the groups the token's user is a direct member of.

        Raises:
            ServiceUnavailable: If the membership endpoint fails
        """
        groups = []
        url = self.endpoints.aad_membership_rest_uri
        headers = {
            'Authorization': f'Bearer {graph_token}',
            'Accept': 'application/json',
        }

        for _ in range(MAX_MEMBERSHIP_PAGES):
            try:
                response = requests.get(url, headers=headers, timeout=self.aad_properties.jwt_timeout)
                response.raise_for_status()
                payload = response.json()
            except (requests.RequestException, ValueError) as e:
                logger.error(f"Failed to load group memberships: {str(e)}")
                raise ServiceUnavailable('Unable to load Azure AD group memberships')

            for entry in payload.get('value', []):
                if self._is_group(entry):
                    groups.append(UserGroup(
                        entry.get('id') or entry.get('objectId'),
                        entry.get('displayName'),
                    ))

            url = payload.get('@odata.nextLink') or payload.get('odata.nextLink')
            if not url:
                break
            if not url.startswith('https://'):
                # Azure AD Graph returns relative links without the api-version
                logger.warning(f"Cannot follow relative membership link: {url}")
                break
        else:
            logger.warning(f"Stopped reading group memberships after {MAX_MEMBERSHIP_PAGES} pages")

        return groups

    @staticmethod
    def _is_group(entry):
        return (
            entry.get('@odata.type') in GRAPH_GROUP_TYPES or
            entry.get('objectType') in GRAPH_GROUP_TYPES
        )
