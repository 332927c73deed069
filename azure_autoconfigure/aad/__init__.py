"""
Azure AD (Microsoft Entra ID) authentication filter autoconfiguration.

When the client id and client secret are configured, the app registers an
``AADAuthenticationFilter`` that validates Bearer tokens issued by Azure AD
and resolves the caller's group memberships.
"""
