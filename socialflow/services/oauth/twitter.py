# socialflow/services/oauth/twitter.py
import os
from typing import Optional

from socialflow.infrastructure.handshake_store import PendingHandshakeStore
from socialflow.infrastructure.provider_client import ProviderAPIError
from socialflow.infrastructure.providers.twitter import AUTHORIZE_URL, TwitterClient
from socialflow.models.connected_account import Provider
from socialflow.services.oauth.base import (
    CallbackParams,
    FlowState,
    InitiationResult,
    OAuth1Exchanger,
    ProviderCredential,
)

TWITTER_REDIRECT_URI = os.getenv("TWITTER_REDIRECT_URI")


class TwitterExchanger(OAuth1Exchanger):
    provider = Provider.TWITTER

    def __init__(
        self,
        handshakes: PendingHandshakeStore,
        client: Optional[TwitterClient] = None,
        redirect_uri: Optional[str] = None,
    ):
        super().__init__(handshakes)
        self.client = client or TwitterClient()
        self.redirect_uri = redirect_uri or TWITTER_REDIRECT_URI

    def check_config(self) -> None:
        self.require_config(
            TWITTER_API_KEY=self.client.api_key,
            TWITTER_API_SECRET=self.client.api_secret,
            TWITTER_REDIRECT_URI=self.redirect_uri,
        )

    async def initiate(self, user_id) -> InitiationResult:
        self.check_config()
        self.log_state(FlowState.INITIATED, user_id)
        params = await self.client.request_token(self.redirect_uri)

        token = params.get("oauth_token")
        secret = params.get("oauth_token_secret")
        if not token or not secret:
            raise ProviderAPIError(self.provider.value, "request_token response is missing oauth_token/oauth_token_secret")
        if params.get("oauth_callback_confirmed") != "true":
            raise self.fail("callback_not_confirmed", "Twitter did not confirm the callback URL. Report this to the administrator.")

        await self.handshakes.put(str(user_id), token, {"provider": self.provider.value, "secret": secret})
        self.log_state(FlowState.AWAITING_PROVIDER_REDIRECT, user_id)
        return InitiationResult(provider=self.provider, auth_url=f"{AUTHORIZE_URL}?oauth_token={token}")

    async def complete(self, user_id, params: CallbackParams) -> ProviderCredential:
        self.check_config()
        token, secret, verifier = await self.claim_request_secret(user_id, params)

        granted = await self.client.access_token(token, secret, verifier)
        access_token = granted.get("oauth_token")
        access_secret = granted.get("oauth_token_secret")
        if not access_token or not access_secret:
            raise ProviderAPIError(self.provider.value, "access_token response is missing credentials")
        self.log_state(FlowState.EXCHANGED, user_id)

        me = await self.client.me(access_token, access_secret)
        account_id = me.get("id") or granted.get("user_id")
        if not account_id:
            raise self.fail("twitter_invalid_profile", "Twitter did not return the account id.")
        username = me.get("username") or granted.get("screen_name") or ""
        avatar = me.get("profile_image_url")
        metrics = me.get("public_metrics") or {}
        self.log_state(FlowState.PROFILE_FETCHED, user_id, provider_account_id=str(account_id))

        return ProviderCredential(
            provider=self.provider,
            provider_account_id=str(account_id),
            access_token=access_token,
            access_token_secret=access_secret,
            oauth_version=self.oauth_version,
            username=username or None,
            display_name=me.get("name") or username or "Twitter User",
            profile_image_url=avatar.replace("_normal", "") if avatar else None,
            profile_url=f"https://twitter.com/{username}" if username else None,
            followers_count=metrics.get("followers_count"),
            posts_count=metrics.get("tweet_count"),
        )
