"""
Azure AD JWT validation and the principal built from a validated token.

Security Features:
- JWT signature verification using the Azure AD JWKS
- Token expiration, audience and issuer validation
- JWKS caching to reduce calls to the key discovery endpoint
- Token size limit
"""

import base64
import logging
from typing import Any, Dict, List, Optional

import jwt
import requests
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from django.core.cache import cache
from rest_framework import exceptions

from .exceptions import ServiceUnavailable


logger = logging.getLogger(__name__)

JWKS_CACHE_TIMEOUT = 300

# Minimum seconds between refetches forced by an unknown key ID.
JWKS_REFRESH_INTERVAL = 60

TRUSTED_ISSUER_PREFIXES = (
    'https://sts.windows.net/',
    'https://sts.chinacloudapi.cn/',
    'https://login.microsoftonline.com/',
    'https://login.partner.microsoftonline.cn/',
    'https://login.microsoftonline.us/',
)


class UserGroup:
    """An Azure AD group the user is a member of."""

    def __init__(self, object_id, display_name):
        self.object_id = object_id
        self.display_name = display_name

    def __eq__(self, other):
        return (
            isinstance(other, UserGroup) and
            self.object_id == other.object_id and
            self.display_name == other.display_name
        )

    def __hash__(self):
        return hash((self.object_id, self.display_name))

    def __repr__(self):
        return f'UserGroup({self.object_id!r}, {self.display_name!r})'


class UserPrincipal:
    """
    Identity established from a validated Azure AD token.

    Args:
        kid: Key ID the token was signed with
        claims: Verified token claims
        groups: Group memberships resolved through Microsoft Graph
    """

    def __init__(self, kid: str, claims: Dict[str, Any], groups: Optional[List[UserGroup]] = None):
        self.kid = kid
        self.claims = claims
        self.groups = list(groups or [])

    @property
    def subject(self):
        return self.claims.get('sub')

    @property
    def object_id(self):
        return self.claims.get('oid')

    @property
    def tenant_id(self):
        return self.claims.get('tid')

    @property
    def upn(self):
        return (
            self.claims.get('upn') or
            self.claims.get('preferred_username') or
            self.claims.get('unique_name')
        )

    @property
    def name(self):
        return self.claims.get('name', '')

    @property
    def email(self):
        return self.claims.get('email') or self.claims.get('preferred_username', '')

    def is_member_of(self, group_name: str) -> bool:
        return any(group.display_name == group_name for group in self.groups)

    def roles(self, allowed_groups: List[str]) -> List[str]:
        """
        Map allowed group memberships to role names.

        Returns ``ROLE_<group>`` for every group the user belongs to that is
        listed in ``allowed_groups``, or ``['ROLE_USER']`` when none is.
        """
        roles = []
        for group in self.groups:
            role = f'ROLE_{group.display_name}'
            if group.display_name in allowed_groups and role not in roles:
                roles.append(role)
        return roles or ['ROLE_USER']

    def to_dict(self):
        return {
            'kid': self.kid,
            'claims': self.claims,
            'groups': [
                {'object_id': group.object_id, 'display_name': group.display_name}
                for group in self.groups
            ],
        }

    @classmethod
    def from_dict(cls, data):
        groups = [UserGroup(item['object_id'], item['display_name']) for item in data.get('groups', [])]
        return cls(data['kid'], data['claims'], groups)


class UserPrincipalManager:
    """
    Validates Azure AD tokens against the keys of the key discovery endpoint.

    Args:
        endpoints: ``ServiceEndpoints`` of the configured environment
        aad_properties: ``AADAuthenticationProperties``
    """

    def __init__(self, endpoints, aad_properties):
        self.endpoints = endpoints
        self.aad_properties = aad_properties
        self.cache_key = f'azure_ad_jwks_keys:{endpoints.aad_key_discovery_uri}'
        self.refresh_cache_key = f'{self.cache_key}:forced_refresh'

    def build_user_principal(self, token: str) -> UserPrincipal:
        """
        Validate a token and return its principal without group memberships.

        Raises:
            AuthenticationFailed: If the token is invalid or expired
            ServiceUnavailable: If the signing keys cannot be fetched
        """
        if len(token.encode('utf-8')) > self.aad_properties.jwt_size_limit:
            logger.warning("JWT token exceeds the configured size limit")
            raise exceptions.AuthenticationFailed('Invalid token: too large')

        try:
            unverified_header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as e:
            logger.warning(f"Malformed JWT token: {str(e)}")
            raise exceptions.AuthenticationFailed('Invalid token')

        kid = unverified_header.get('kid')
        if not kid:
            logger.warning("JWT token missing 'kid' in header")
            raise exceptions.AuthenticationFailed('Invalid token: missing key ID')

        signing_key = self._find_signing_key(self._get_jwks_keys(), kid)
        if not signing_key and cache.add(self.refresh_cache_key, True, JWKS_REFRESH_INTERVAL):
            # Keys rotate; refetch at most once per interval before giving up.
            cache.delete(self.cache_key)
            signing_key = self._find_signing_key(self._get_jwks_keys(), kid)

        if not signing_key:
            logger.warning(f"No matching key found for kid: {kid}")
            raise exceptions.AuthenticationFailed('Invalid token: key not found')

        try:
            claims = jwt.decode(
                token,
                signing_key,
                algorithms=['RS256'],
                audience=self.aad_properties.allowed_audiences,
                options={
                    'verify_signature': True,
                    'verify_exp': True,
                    'verify_aud': True,
                    'require': ['exp', 'aud', 'iss']
                }
            )
        except jwt.ExpiredSignatureError:
            logger.warning("JWT token has expired")
            raise exceptions.AuthenticationFailed('Token has expired')
        except jwt.InvalidAudienceError:
            logger.warning("JWT token has invalid audience")
            raise exceptions.AuthenticationFailed('Invalid token audience')
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid JWT token: {str(e)}")
            raise exceptions.AuthenticationFailed('Invalid token')

        self._validate_issuer(claims)
        return UserPrincipal(kid, claims)

    def _validate_issuer(self, claims):
        issuer = claims.get('iss', '')
        if not issuer.startswith(TRUSTED_ISSUER_PREFIXES):
            logger.warning(f"JWT token has untrusted issuer: {issuer}")
            raise exceptions.AuthenticationFailed('Invalid token issuer')

        tenant_id = self.aad_properties.tenant_id
        if tenant_id and claims.get('tid') != tenant_id and tenant_id not in issuer:
            logger.warning(f"JWT token issued for another tenant: {issuer}")
            raise exceptions.AuthenticationFailed('Invalid token issuer')

    def _get_jwks_keys(self) -> Dict[str, Any]:
        cached_keys = cache.get(self.cache_key)
        if cached_keys:
            return cached_keys

        try:
            logger.info("Fetching JWKS keys from Azure AD")
            response = requests.get(
                self.endpoints.aad_key_discovery_uri,
                timeout=self.aad_properties.jwt_timeout,
            )
            response.raise_for_status()
            jwks_data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Failed to fetch JWKS keys: {str(e)}")
            raise ServiceUnavailable('Unable to fetch Azure AD signing keys')

        cache.set(self.cache_key, jwks_data, JWKS_CACHE_TIMEOUT)
        return jwks_data

    def _find_signing_key(self, jwks_keys: Dict[str, Any], kid: str) -> Optional[str]:
        """Return the PEM public key matching ``kid``, or None."""
        for key in jwks_keys.get('keys', []):
            if key.get('kid') != kid or key.get('kty') != 'RSA':
                continue
            try:
                n = int.from_bytes(base64.urlsafe_b64decode(_add_padding(key['n'])), 'big')
                e = int.from_bytes(base64.urlsafe_b64decode(_add_padding(key['e'])), 'big')
                public_key = rsa.RSAPublicNumbers(e, n).public_key()
                return public_key.public_bytes(
                    encoding=serialization.Encoding.PEM,
                    format=serialization.PublicFormat.SubjectPublicKeyInfo
                ).decode('utf-8')
            except (KeyError, ValueError) as e:
                logger.error(f"Error processing signing key {kid}: {str(e)}")

        return None


def _add_padding(base64_string: str) -> str:
    missing_padding = len(base64_string) % 4
    if missing_padding:
        base64_string += '=' * (4 - missing_padding)
    return base64_string
