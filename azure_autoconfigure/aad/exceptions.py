"""
Exceptions raised by the Azure AD authentication filter.
"""

from rest_framework import exceptions, status


class ServiceUnavailable(exceptions.APIException):
    """Azure AD key discovery or Microsoft Graph could not be reached."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = 'Azure AD is temporarily unavailable, try again later.'
    default_code = 'service_unavailable'
