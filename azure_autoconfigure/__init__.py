"""
Autoconfiguration helpers for Azure services in Django projects.

Components are registered into a process-wide application context when
their configuration conditions match at startup.
"""

__version__ = '1.0.0'
