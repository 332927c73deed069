"""
Management command printing the Azure AD autoconfiguration report.

Conditions are evaluated against the current settings without registering
anything, so the report shows what a web process would decide.
"""

from django.core.management.base import BaseCommand

from azure_autoconfigure.aad.autoconfig import evaluate_conditions
from azure_autoconfigure.context import ApplicationContext


class Command(BaseCommand):
    help = 'Show which Azure AD autoconfiguration conditions matched'

    def handle(self, *args, **options):
        context = ApplicationContext()
        matched = evaluate_conditions(context)

        for config_name, outcomes in context.condition_report().items():
            self.stdout.write(config_name)
            for condition, outcome in outcomes:
                style = self.style.SUCCESS if outcome.match else self.style.WARNING
                label = 'matched' if outcome.match else 'did not match'
                self.stdout.write(style(f'  {condition}: {label} ({outcome.message})'))

        if matched:
            self.stdout.write(self.style.SUCCESS('AADAuthenticationFilter will be registered'))
        else:
            self.stdout.write(self.style.WARNING('AADAuthenticationFilter will not be registered'))
