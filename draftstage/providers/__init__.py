"""Generation provider implementations."""

from .base import HttpProvider, ProviderGateway
from .gateway import RoutingGateway, build_default_gateway
from .runway import RunwayVideoProvider
from .together import TogetherImageProvider

__all__ = [
    "HttpProvider",
    "ProviderGateway",
    "RoutingGateway",
    "RunwayVideoProvider",
    "TogetherImageProvider",
    "build_default_gateway",
]
