"""Z-API WhatsApp provider integration."""

from .client import ZapiClient, digits_only
from .models import ChannelCredential, EndpointHypothesis, ProviderResponse
from .registry import ZapiClientRegistry
from .resolver import EndpointResolver

__all__ = [
    "ChannelCredential",
    "EndpointHypothesis",
    "EndpointResolver",
    "ProviderResponse",
    "ZapiClient",
    "ZapiClientRegistry",
    "digits_only",
]
