from __future__ import annotations

import asyncio
import threading
import time
from dataclasses import dataclass
from typing import Any, Sequence

import msal

from device_dna.auth.token_cache import TokenCacheManager
from device_dna.auth.types import AccessToken, AuthMode, TokenProvider
from device_dna.config.settings import Settings
from device_dna.graph.errors import AuthenticationError
from device_dna.utils import get_logger


logger = get_logger(__name__)

# MSAL adds these itself and rejects them when passed explicitly.
_MSAL_RESERVED_SCOPES = frozenset({"profile", "openid", "offline_access"})


@dataclass(slots=True)
class AuthenticatedUser:
    display_name: str | None
    username: str | None
    tenant_id: str | None


class AuthManager:
    """MSAL wrapper handing bearer tokens to the Graph client.

    Interactive mode uses a public client and a persisted token cache, so a
    second run signs in silently. Client-secret mode uses a confidential
    client and the app-only ``.default`` scope.
    """

    def __init__(self) -> None:
        self._cache_manager: TokenCacheManager | None = None
        self._app: msal.ClientApplication | None = None
        self._mode = AuthMode.INTERACTIVE
        self._scopes: list[str] = []
        self._lock = threading.RLock()
        self._user: AuthenticatedUser | None = None

    @property
    def mode(self) -> AuthMode:
        return self._mode

    def configure(self, settings: Settings) -> None:
        if not settings.is_configured:
            raise AuthenticationError(
                "Tenant ID and client ID must be set before signing in "
                "(DEVICE_DNA_TENANT_ID / DEVICE_DNA_CLIENT_ID)"
            )

        authority = settings.derive_authority()
        cache_manager = TokenCacheManager(settings.resolved_token_cache_path())
        try:
            if settings.uses_client_secret:
                app: msal.ClientApplication = msal.ConfidentialClientApplication(
                    client_id=settings.client_id,
                    client_credential=settings.client_secret,
                    authority=authority,
                    token_cache=cache_manager.cache,
                )
                self._mode = AuthMode.CLIENT_SECRET
            else:
                app = msal.PublicClientApplication(
                    client_id=settings.client_id,
                    authority=authority,
                    token_cache=cache_manager.cache,
                )
                self._mode = AuthMode.INTERACTIVE
        except ValueError as exc:
            logger.error("Invalid MSAL configuration", authority=authority, error=str(exc))
            raise AuthenticationError(f"Invalid authority: {exc}") from exc

        self._app = app
        self._cache_manager = cache_manager
        self._scopes = list(settings.configured_scopes())
        self._user = None
        logger.info("Configured MSAL client", authority=authority, mode=self._mode.value)

    def token_provider(self) -> TokenProvider:
        def provider(scopes: Sequence[str]) -> AccessToken:
            return self.acquire_token_sync(scopes)

        return provider

    async def ensure_signed_in(self, scopes: Sequence[str] | None = None) -> AccessToken:
        """Get a token up front, prompting in the browser only if needed."""

        requested = list(scopes or self._scopes)
        return await asyncio.to_thread(self._acquire_token, requested, True)

    async def sign_out(self) -> None:
        await asyncio.to_thread(self._sign_out_sync)

    def acquire_token_sync(self, scopes: Sequence[str] | None = None) -> AccessToken:
        requested = list(scopes or self._scopes)
        return self._acquire_token(requested, False)

    def current_user(self) -> AuthenticatedUser | None:
        return self._user

    # Internal --------------------------------------------------------

    def _filter_scopes(self, scopes: Sequence[str]) -> list[str]:
        if self._mode is AuthMode.CLIENT_SECRET:
            return [scope for scope in scopes if scope.endswith("/.default")]
        filtered = [
            scope
            for scope in scopes
            if scope not in _MSAL_RESERVED_SCOPES and not scope.endswith("/.default")
        ]
        if len(filtered) != len(scopes):
            logger.debug(
                "Filtered reserved scopes",
                removed=sorted(set(scopes) - set(filtered)),
            )
        return filtered

    def _acquire_token(self, scopes: Sequence[str], interactive: bool) -> AccessToken:
        app = self._ensure_app()
        filtered = self._filter_scopes(scopes)
        with self._lock:
            if self._mode is AuthMode.CLIENT_SECRET:
                result = app.acquire_token_for_client(scopes=filtered)
            else:
                result = self._acquire_token_silent(app, filtered)
                if result is None:
                    if not interactive:
                        raise AuthenticationError(
                            "Interactive sign-in required before accessing Microsoft Graph"
                        )
                    logger.info("Starting interactive sign-in")
                    result = app.acquire_token_interactive(
                        scopes=filtered,
                        prompt="select_account",
                    )
            token = self._process_result(result)
            if self._cache_manager is not None:
                self._cache_manager.save()
            return token

    def _acquire_token_silent(
        self,
        app: msal.PublicClientApplication,
        scopes: list[str],
    ) -> dict[str, Any] | None:
        accounts = app.get_accounts()
        if not accounts:
            return None
        account = accounts[0]
        self._user = AuthenticatedUser(
            display_name=account.get("name"),
            username=account.get("username"),
            tenant_id=account.get("realm"),
        )
        return app.acquire_token_silent(scopes, account=account)

    def _sign_out_sync(self) -> None:
        app = self._ensure_app()
        if self._mode is AuthMode.INTERACTIVE:
            for account in app.get_accounts():
                app.remove_account(account)
        if self._cache_manager is not None:
            self._cache_manager.clear()
        self._user = None
        logger.info("Signed out MSAL accounts")

    def _process_result(self, result: dict[str, Any] | None) -> AccessToken:
        if not result:
            raise AuthenticationError("MSAL returned no token")
        if "error" in result:
            error_code = result.get("error")
            description = result.get("error_description") or error_code
            if self._mode is AuthMode.INTERACTIVE and (
                "AADSTS7000218" in str(description)
                or "client_assertion" in str(description).lower()
            ):
                raise AuthenticationError(
                    "The app registration expects a client secret. Register it as "
                    "'Mobile and desktop applications' for interactive sign-in, or "
                    f"set DEVICE_DNA_CLIENT_SECRET. Original error: {description}"
                )
            raise AuthenticationError(f"MSAL error: {description}")

        access_token = result.get("access_token")
        if not isinstance(access_token, str):
            raise AuthenticationError("MSAL response missing access token")
        expires_on = result.get("expires_on")
        expires_in = result.get("expires_in")
        if expires_on is not None:
            expiry = int(expires_on)
        elif expires_in is not None:
            expiry = int(time.time()) + int(expires_in)
        else:
            expiry = int(time.time()) + 3600

        claims = result.get("id_token_claims")
        if isinstance(claims, dict):
            self._user = AuthenticatedUser(
                display_name=claims.get("name"),
                username=claims.get("preferred_username") or claims.get("email"),
                tenant_id=claims.get("tid"),
            )
        return AccessToken(access_token, expiry)

    def _ensure_app(self) -> msal.ClientApplication:
        if self._app is None:
            raise AuthenticationError("Authentication has not been configured")
        return self._app


auth_manager = AuthManager()

__all__ = ["AuthManager", "AuthenticatedUser", "auth_manager"]
