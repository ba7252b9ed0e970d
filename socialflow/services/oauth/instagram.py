# socialflow/services/oauth/instagram.py
import os
from typing import Optional

from socialflow.infrastructure.handshake_store import PendingHandshakeStore
from socialflow.infrastructure.provider_client import ProviderAPIError
from socialflow.infrastructure.providers import facebook as fb
from socialflow.infrastructure.providers.facebook import FacebookClient
from socialflow.infrastructure.providers.instagram import AUTHORIZE_URL, InstagramClient
from socialflow.models.connected_account import ConnectVia, Provider
from socialflow.services.oauth.base import FlowState, OAuth2Exchanger, ProviderCredential, expires_at

INSTAGRAM_REDIRECT_URI = os.getenv("INSTAGRAM_REDIRECT_URI")

PUBLISHABLE_ACCOUNT_TYPES = {"BUSINESS", "CREATOR", "MEDIA_CREATOR", "MEDIA_BUSINESS"}


class InstagramExchanger(OAuth2Exchanger):
    """Instagram Login: code -> short-lived token -> long-lived token -> business profile."""

    provider = Provider.INSTAGRAM
    authorize_url = AUTHORIZE_URL
    scopes = (
        "instagram_business_basic",
        "instagram_business_content_publish",
        "instagram_business_manage_insights",
    )

    def __init__(
        self,
        handshakes: PendingHandshakeStore,
        client: Optional[InstagramClient] = None,
        redirect_uri: Optional[str] = None,
    ):
        self.client = client or InstagramClient()
        super().__init__(handshakes, self.client.app_id, self.client.app_secret, redirect_uri or INSTAGRAM_REDIRECT_URI)

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
        account_type = (profile.get("account_type") or "UNKNOWN").upper()
        if account_type not in PUBLISHABLE_ACCOUNT_TYPES:
            self.log_state(FlowState.FAILED, user_id, reason="account_type", account_type=account_type)
            raise self.fail(
                "instagram_account_type",
                f"Your Instagram account must be a business or creator account. Current account type: {account_type}",
            )
        if not profile.get("id"):
            raise self.fail("instagram_invalid_profile", "Instagram did not return the account id.")

        username = profile.get("username")
        return ProviderCredential(
            provider=self.provider,
            provider_account_id=str(profile["id"]),
            access_token=access_token,
            oauth_version=self.oauth_version,
            token_expires_at=expires_at(long_lived.get("expires_in")),
            scope=",".join(self.scopes),
            username=username,
            display_name=profile.get("name") or username,
            profile_image_url=profile.get("profile_picture_url"),
            profile_url=f"https://www.instagram.com/{username}" if username else None,
            followers_count=profile.get("followers_count"),
            posts_count=profile.get("media_count"),
            meta={"via": ConnectVia.INSTAGRAM_LOGIN.value, "account_type": account_type},
        )


class InstagramPageExchanger(OAuth2Exchanger):
    """
    Instagram business account reached through Facebook Login: the user's
    Facebook Pages are enumerated and checked for a linked Instagram account.
    """

    provider = Provider.INSTAGRAM
    authorize_url = fb.AUTHORIZE_URL
    scopes = (
        "instagram_basic",
        "instagram_content_publish",
        "pages_show_list",
        "pages_read_engagement",
        "business_management",
    )

    def __init__(
        self,
        handshakes: PendingHandshakeStore,
        client: Optional[FacebookClient] = None,
        redirect_uri: Optional[str] = None,
    ):
        self.client = client or FacebookClient()
        super().__init__(handshakes, self.client.app_id, self.client.app_secret, redirect_uri or INSTAGRAM_REDIRECT_URI)

    async def exchange(self, user_id, code: str) -> ProviderCredential:
        short = await self.client.exchange_code(code, self.redirect_uri)
        if not short.get("access_token"):
            raise ProviderAPIError(self.provider.value, "code exchange returned no access token")
        long_lived = await self.client.exchange_long_lived(short["access_token"])
        access_token = long_lived.get("access_token")
        if not access_token:
            raise ProviderAPIError(self.provider.value, "long-lived exchange returned no access token")
        self.log_state(FlowState.EXCHANGED, user_id)

        pages = await self.client.pages(access_token)
        linked = None
        for page in pages:
            ig_id = await self.client.page_instagram_account_id(page["id"], access_token)
            if ig_id:
                linked = (page, ig_id)
                break
        if linked is None:
            raise self.fail(
                "instagram_no_business_account",
                "None of your Facebook Pages is linked to an Instagram business account.",
            )

        page, ig_id = linked
        profile = await self.client.instagram_business_profile(ig_id, access_token)
        username = profile.get("username")
        return ProviderCredential(
            provider=self.provider,
            provider_account_id=str(profile.get("id") or ig_id),
            access_token=access_token,
            oauth_version=self.oauth_version,
            token_expires_at=expires_at(long_lived.get("expires_in")),
            scope=",".join(self.scopes),
            username=username,
            display_name=profile.get("name") or username,
            profile_image_url=profile.get("profile_picture_url"),
            profile_url=f"https://www.instagram.com/{username}" if username else None,
            followers_count=profile.get("followers_count"),
            posts_count=profile.get("media_count"),
            meta={
                "via": ConnectVia.FACEBOOK_PAGE.value,
                "facebook_page_id": page["id"],
                "facebook_page_name": page.get("name"),
            },
        )
