"""
SmartFlow API client with single-flight token refresh and retry/backoff.
"""

from smartflow_client.services.client import ClientName, ServiceClient
from smartflow_client.settings import Settings, load_settings

__all__ = ["ClientName", "ServiceClient", "Settings", "load_settings"]
