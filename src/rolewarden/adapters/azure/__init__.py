"""Azure Resource Manager and Microsoft Graph adapters."""

from .credentials import ARM_SCOPE, GRAPH_SCOPE, CredentialTokenProvider
from .directory import GraphDirectory
from .groups import GraphGroupService
from .http import AzureHttpClient
from .resources import AzureResourceService

__all__ = [
    "ARM_SCOPE",
    "GRAPH_SCOPE",
    "AzureHttpClient",
    "AzureResourceService",
    "CredentialTokenProvider",
    "GraphDirectory",
    "GraphGroupService",
]
