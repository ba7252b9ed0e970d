# socialflow/services/oauth/registry.py
import os
from typing import Dict, Optional

from socialflow.infrastructure.handshake_store import PendingHandshakeStore
from socialflow.models.connected_account import ConnectVia, Provider
from socialflow.services.oauth.base import OAuthExchanger
from socialflow.services.oauth.errors import OAuthFlowError
from socialflow.services.oauth.facebook import FacebookExchanger
from socialflow.services.oauth.instagram import InstagramExchanger, InstagramPageExchanger
from socialflow.services.oauth.tiktok import TikTokExchanger
from socialflow.services.oauth.twitter import TwitterExchanger

INSTAGRAM_CONNECT_VIA = os.getenv("INSTAGRAM_CONNECT_VIA", ConnectVia.INSTAGRAM_LOGIN.value).lower()


class ExchangerRegistry:
    def __init__(self, exchangers: Dict[Provider, OAuthExchanger]):
        self.exchangers = exchangers

    @classmethod
    def default(cls, handshakes: PendingHandshakeStore, instagram_via: Optional[str] = None) -> "ExchangerRegistry":
        via = (instagram_via or INSTAGRAM_CONNECT_VIA).lower()
        instagram = InstagramPageExchanger(handshakes) if via == ConnectVia.FACEBOOK_PAGE.value else InstagramExchanger(handshakes)
        return cls(
            {
                Provider.TWITTER: TwitterExchanger(handshakes),
                Provider.INSTAGRAM: instagram,
                Provider.FACEBOOK: FacebookExchanger(handshakes),
                Provider.TIKTOK: TikTokExchanger(handshakes),
            }
        )

    def get(self, provider: Provider) -> OAuthExchanger:
        exchanger = self.exchangers.get(provider)
        if exchanger is None:
            raise OAuthFlowError("unsupported_provider", f"Provider {provider.value} cannot be connected.", provider=provider.value)
        return exchanger
