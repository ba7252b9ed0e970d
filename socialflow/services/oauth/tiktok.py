# socialflow/services/oauth/tiktok.py
import os
from typing import Optional

from socialflow.infrastructure.handshake_store import PendingHandshakeStore
from socialflow.infrastructure.provider_client import ProviderAPIError
from socialflow.infrastructure.providers.tiktok import AUTHORIZE_URL, TikTokClient
from socialflow.models.connected_account import Provider
from socialflow.services.oauth.base import FlowState, OAuth2Exchanger, ProviderCredential, expires_at

TIKTOK_REDIRECT_URI = os.getenv("TIKTOK_REDIRECT_URI")


class TikTokExchanger(OAuth2Exchanger):
    provider = Provider.TIKTOK
    authorize_url = AUTHORIZE_URL
    scopes = ("user.info.basic", "user.info.profile", "user.info.stats", "video.publish")
    client_id_param = "client_key"

    def __init__(
        self,
        handshakes: PendingHandshakeStore,
        client: Optional[TikTokClient] = None,
        redirect_uri: Optional[str] = None,
    ):
        self.client = client or TikTokClient()
        super().__init__(handshakes, self.client.client_key, self.client.client_secret, redirect_uri or TIKTOK_REDIRECT_URI)

    async def exchange(self, user_id, code: str) -> ProviderCredential:
        tokens = await self.client.exchange_code(code, self.redirect_uri)
        access_token = tokens.get("access_token")
        if not access_token:
            # TikTok reports some failures in a 200 body
            raise ProviderAPIError(
                self.provider.value,
                tokens.get("error_description") or "code exchange returned no access token",
                status_code=400,
                body=str(tokens),
            )
        self.log_state(FlowState.EXCHANGED, user_id)

        user = await self.client.user_info(access_token)
        open_id = user.get("open_id")
        if not open_id:
            raise self.fail("tiktok_invalid_profile", "TikTok did not return the required account data.")

        username = user.get("username")
        return ProviderCredential(
            provider=self.provider,
            provider_account_id=str(open_id),
            access_token=access_token,
            refresh_token=tokens.get("refresh_token"),
            oauth_version=self.oauth_version,
            token_expires_at=expires_at(tokens.get("expires_in")),
            scope=tokens.get("scope") or ",".join(self.scopes),
            username=username,
            display_name=user.get("display_name") or username,
            profile_image_url=user.get("avatar_url"),
            profile_url=user.get("profile_deep_link"),
            followers_count=user.get("follower_count"),
            posts_count=user.get("video_count"),
            meta={"refresh_expires_in": tokens.get("refresh_expires_in")},
        )
