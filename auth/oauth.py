"""
auth/oauth.py -- OAuth 2.0 authorization-code federation for Google and GitHub.

Provider configuration is built once from Settings into a frozen OAuthConfig
and injected into OAuthClient. Nothing here is a module-level mutable global;
the api/ layer keeps the one OAuthClient instance on app.state.

Flow (the HTTP handshake itself lives in api/routes/oauth.py):
  1. authorization_url()  -- provider authorize URL carrying the state token
  2. exchange_code()      -- server-to-server POST to the token endpoint
  3. fetch_identity()     -- provider profile normalized to ExternalIdentity
  4. resolve_local_user() -- join-or-create against UserStore

Security notes:
  The state token is 32 bytes from secrets.token_urlsafe(), unpadded so the
  cookie value is never quoted.
  It travels in an HttpOnly cookie and is compared in constant time by the
  callback route before any code is exchanged.

  Any transport, HTTP or protocol failure during the exchange is an
  ExchangeError; failures while reading the profile are a ProviderError. The
  provider's own error text is logged, never returned to the browser.

Layer rule: no imports from api/, graph/, or training/.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from typing import Optional

import httpx
from authlib.integrations.httpx_client import AsyncOAuth2Client, OAuthError
from authlib.oauth2.rfc6749.parameters import prepare_grant_uri

from auth.models import ExternalIdentity, User
from auth.store import GITHUB, GOOGLE, UserStore
from core.config import Settings
from core.errors import ConflictError, ExchangeError, ProviderError, ProviderNotConfiguredError, ValidationError

logger = logging.getLogger("codestandoff.auth.oauth")

PROVIDERS = (GOOGLE, GITHUB)

_GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
_GITHUB_API = "https://api.github.com"
_HTTP_TIMEOUT = 10.0

# ---------------------------------------------------------------------------
# Immutable configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OAuthProviderConfig:
    name: str
    client_id: str
    client_secret: str
    redirect_url: str
    authorize_url: str
    token_url: str
    scopes: tuple[str, ...]

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


@dataclass(frozen=True)
class OAuthConfig:
    google: OAuthProviderConfig
    github: OAuthProviderConfig

    def provider(self, name: str) -> OAuthProviderConfig:
        """Return the config for `name`.

        Raises ValidationError for an unknown provider and
        ProviderNotConfiguredError when its client credentials are absent.
        """
        if name not in PROVIDERS:
            raise ValidationError(f"unknown OAuth provider: {name!r}")
        cfg: OAuthProviderConfig = getattr(self, name)
        if not cfg.configured:
            raise ProviderNotConfiguredError(f"{name} login is not configured")
        return cfg


def build_oauth_config(settings: Settings) -> OAuthConfig:
    """Snapshot the provider settings. Called once at startup."""
    google = OAuthProviderConfig(
        name=GOOGLE,
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        redirect_url=settings.google_redirect_url,
        authorize_url="https://accounts.google.com/o/oauth2/auth",
        token_url="https://oauth2.googleapis.com/token",  # noqa: S106 -- URL, not a password
        scopes=(
            "https://www.googleapis.com/auth/userinfo.email",
            "https://www.googleapis.com/auth/userinfo.profile",
        ),
    )
    github = OAuthProviderConfig(
        name=GITHUB,
        client_id=settings.github_client_id,
        client_secret=settings.github_client_secret,
        redirect_url=settings.github_redirect_url,
        authorize_url="https://github.com/login/oauth/authorize",
        token_url="https://github.com/login/oauth/access_token",  # noqa: S106 -- URL, not a password
        scopes=("user:email", "read:user"),
    )
    for cfg in (google, github):
        if cfg.configured:
            logger.info("%s OAuth provider configured", cfg.name)
    return OAuthConfig(google=google, github=github)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def generate_state() -> str:
    """Return a fresh CSRF state token: 32 random bytes, unpadded URL-safe base64."""
    return secrets.token_urlsafe(32)


def split_name(full_name: Optional[str], login: Optional[str] = None) -> tuple[Optional[str], Optional[str]]:
    """Split a display name into (first, last).

    The first whitespace-separated token is the first name; the remaining
    tokens joined by single spaces form the last name. With no display name
    the login handle becomes the first name.
    """
    parts = (full_name or "").split()
    if not parts:
        return (login or None), None
    return parts[0], (" ".join(parts[1:]) or None)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class OAuthClient:
    """Talks to the providers over authlib's httpx integration.

    `transport` is handed to every underlying httpx client; tests pass an
    httpx.MockTransport to fake the providers.
    """

    def __init__(self, config: OAuthConfig, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.config = config
        self._transport = transport

    def _client(self, cfg: OAuthProviderConfig, token: Optional[dict] = None) -> AsyncOAuth2Client:
        kwargs: dict = {"timeout": _HTTP_TIMEOUT}
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return AsyncOAuth2Client(
            client_id=cfg.client_id,
            client_secret=cfg.client_secret,
            scope=" ".join(cfg.scopes),
            redirect_uri=cfg.redirect_url,
            token_endpoint_auth_method="client_secret_post",
            token=token,
            **kwargs,
        )

    def authorization_url(self, provider: str, state: str) -> str:
        """Return the provider authorize URL for `state` (offline access requested)."""
        cfg = self.config.provider(provider)
        return prepare_grant_uri(
            cfg.authorize_url,
            client_id=cfg.client_id,
            response_type="code",
            redirect_uri=cfg.redirect_url,
            scope=" ".join(cfg.scopes),
            state=state,
            access_type="offline",
        )

    async def exchange_code(self, provider: str, code: str) -> dict:
        """Trade an authorization code for a token dict. Raises ExchangeError."""
        cfg = self.config.provider(provider)
        try:
            async with self._client(cfg) as client:
                token = await client.fetch_token(cfg.token_url, code=code, grant_type="authorization_code")
        except (OAuthError, httpx.HTTPError, ValueError) as exc:
            logger.warning("%s code exchange failed: %s", provider, exc)
            raise ExchangeError("failed to exchange authorization code") from exc
        if not token.get("access_token"):
            logger.warning("%s token response carried no access_token", provider)
            raise ExchangeError("failed to exchange authorization code")
        return dict(token)

    async def fetch_identity(self, provider: str, token: dict) -> ExternalIdentity:
        """Read the signed-in user's profile. Raises ProviderError."""
        cfg = self.config.provider(provider)
        async with self._client(cfg, token=token) as client:
            if provider == GOOGLE:
                return await self._google_identity(client)
            return await self._github_identity(client)

    async def _google_identity(self, client: AsyncOAuth2Client) -> ExternalIdentity:
        profile = await _get_json(client, _GOOGLE_USERINFO_URL, GOOGLE)
        external_id = str(profile.get("id") or "")
        email = profile.get("email") or ""
        if not external_id or not email:
            raise ProviderError("google profile is missing id or email")
        return ExternalIdentity(
            provider=GOOGLE,
            external_id=external_id,
            email=email,
            first_name=profile.get("given_name") or None,
            last_name=profile.get("family_name") or None,
        )

    async def _github_identity(self, client: AsyncOAuth2Client) -> ExternalIdentity:
        """GitHub omits private emails from /user, so /user/emails is the fallback.

        The primary entry wins; otherwise the first listed address is used.
        """
        profile = await _get_json(client, f"{_GITHUB_API}/user", GITHUB)
        external_id = str(profile.get("id") or "")
        if not external_id:
            raise ProviderError("github profile is missing id")

        email = profile.get("email") or ""
        if not email:
            email = await _github_fallback_email(client)
        if not email:
            raise ProviderError("github account has no email address")

        first_name, last_name = split_name(profile.get("name"), profile.get("login"))
        return ExternalIdentity(
            provider=GITHUB,
            external_id=external_id,
            email=email,
            first_name=first_name,
            last_name=last_name,
        )


async def _get_json(client: AsyncOAuth2Client, url: str, provider: str):
    try:
        resp = await client.get(url)
        resp.raise_for_status()
        return resp.json()
    except (OAuthError, httpx.HTTPError, ValueError) as exc:
        logger.warning("%s profile request to %s failed: %s", provider, url, exc)
        raise ProviderError(f"failed to fetch {provider} profile") from exc


async def _github_fallback_email(client: AsyncOAuth2Client) -> str:
    try:
        emails = await _get_json(client, f"{_GITHUB_API}/user/emails", GITHUB)
    except ProviderError:
        return ""
    if not isinstance(emails, list) or not emails:
        return ""
    for entry in emails:
        if entry.get("primary") and entry.get("email"):
            return entry["email"]
    return emails[0].get("email") or ""


# ---------------------------------------------------------------------------
# Join-or-create
# ---------------------------------------------------------------------------


def resolve_local_user(store: UserStore, identity: ExternalIdentity) -> User:
    """Map an external identity to a local account.

    Order is fixed:
      1. By email. If that account has no id recorded for this provider yet,
         backfill it; nothing else on the row changes.
      2. By provider id (the user changed their email at the provider).
      3. Create an OAuth-only account.
    A ConflictError on create means a concurrent request made the account
    first; re-read it by email.
    """
    user = store.get_by_email(identity.email)
    if user is not None:
        if getattr(user, f"{identity.provider}_id") is None:
            owner = store.get_by_provider_id(identity.provider, identity.external_id)
            if owner is None:
                store.update_provider_id(user.id, identity.provider, identity.external_id)
                logger.info("Linked %s identity to existing user %s", identity.provider, user.id)
                user = store.get_by_id(user.id) or user
            else:
                # Provider ids are unique; the identity stays on its current account.
                logger.warning(
                    "%s identity already linked to user %s; not linking to %s",
                    identity.provider,
                    owner.id,
                    user.id,
                )
        return user

    user = store.get_by_provider_id(identity.provider, identity.external_id)
    if user is not None:
        return user

    try:
        user = store.create_oauth_user(
            identity.email,
            identity.first_name,
            identity.last_name,
            identity.provider,
            identity.external_id,
        )
    except ConflictError:
        user = store.get_by_email(identity.email)
        if user is None:
            raise
        return user
    logger.info("Created %s user %s", identity.provider, user.id)
    return user
