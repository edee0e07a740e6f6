"""
OmniConnect - omnichannel messaging core.

Provider-resilient WhatsApp (Z-API) client, webhook normalization and a
realtime fan-out hub for agent dashboards.
"""

from .core.app import create_app
from .core.config.settings import settings

__version__ = settings.version

__all__ = ["create_app"]
