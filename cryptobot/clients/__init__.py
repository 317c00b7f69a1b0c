from .base import UpstreamServiceError
from .conversation import ConversationClient
from .discovery import DiscoveryClient
from .price_feed import PriceFeedClient

__all__ = ["ConversationClient", "DiscoveryClient", "PriceFeedClient", "UpstreamServiceError"]
