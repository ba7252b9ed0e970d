# socialflow/services/oauth/facebook.py
import os
from typing import Optional

from socialflow.infrastructure.handshake_store import PendingHandshakeStore
from socialflow.infrastructure.provider_client import ProviderAPIError
from socialflow.infrastructure.providers.facebook import AUTHORIZE_URL, FacebookClient
from socialflow.models.connected_account import Provider
from socialflow.services.oauth.base import FlowState, OAuth2Exchanger, ProviderCredential, expires_at

FACEBOOK_REDIRECT_URI = os.getenv("FACEBOOK_REDIRECT_URI")


class FacebookExchanger(OAuth2Exchanger):
    provider = Provider.FACEBOOK
    authorize_url = AUTHORIZE_URL
    scopes = (
        "pages_show_list",
        "pages_read_engagement",
        "pages_manage_posts",
        "pages_manage_metadata",
        "public_profile",
        "email",
    )

    def __init__(
        self,
        handshakes: PendingHandshakeStore,
        client: Optional[FacebookClient] = None,
        redirect_uri: Optional[str] = None,
    ):
        self.client = client or FacebookClient()
        super().__init__(handshakes, self.client.app_id, self.client.app_secret, redirect_uri or FACEBOOK_REDIRECT_URI)

    async def exchange(self, user_id, code: str) -> ProviderCredential:
        short = await self.client.exchange_code(code, self.redirect_uri)
        if not short.get("access_token"):
            raise ProviderAPIError(self.provider.value, "code exchange returned no access token")
        long_lived = await self.client.exchange_long_lived(short["access_token"])
        access_token = long_lived.get("access_token")
        if not access_token:
            raise ProviderAPIError(self.provider.value, "long-lived exchange returned no access token")
        self.log_state(FlowState.EXCHANGED, user_id)

        profile = await self.client.me(access_token)
        if not profile.get("id"):
            raise self.fail("facebook_invalid_profile", "Facebook did not return the account id.")

        pages = await self.client.pages(access_token)
        if not pages:
            raise self.fail("facebook_no_pages", "Your Facebook account has no Pages to publish to.")

        mirrored = []
        for page in pages:
            ig_id = await self.client.page_instagram_account_id(page["id"], access_token)
            mirrored.append({"id": page["id"], "name": page.get("name"), "instagram_business_account_id": ig_id})

        picture = ((profile.get("picture") or {}).get("data") or {}).get("url")
        return ProviderCredential(
            provider=self.provider,
            provider_account_id=str(profile["id"]),
            access_token=access_token,
            oauth_version=self.oauth_version,
            token_expires_at=expires_at(long_lived.get("expires_in")),
            scope=",".join(self.scopes),
            username=profile.get("name"),
            display_name=profile.get("name"),
            profile_image_url=picture,
            profile_url=f"https://www.facebook.com/{profile['id']}",
            meta={"pages": mirrored},
        )
