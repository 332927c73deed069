from django.apps import AppConfig


class AadConfig(AppConfig):
    name = 'azure_autoconfigure.aad'
    label = 'aad'
    verbose_name = 'Azure AD Authentication'
