"""
Platform adapters: one per hosting provider plus a CLI-backed Vercel variant.
"""

from .aws import AmplifyAdapter
from .azure import AzureStaticWebAppsAdapter
from .base import HttpAdapter, PlatformAdapter
from .cli import VercelCliAdapter
from .cloudflare import CloudflareAdapter
from .gcp import CloudRunAdapter
from .netlify import NetlifyAdapter
from .registry import AdapterRegistry, build_registry
from .vercel import VercelAdapter

__all__ = [
    "AdapterRegistry",
    "AmplifyAdapter",
    "AzureStaticWebAppsAdapter",
    "CloudRunAdapter",
    "CloudflareAdapter",
    "HttpAdapter",
    "NetlifyAdapter",
    "PlatformAdapter",
    "VercelAdapter",
    "VercelCliAdapter",
    "build_registry",
]
