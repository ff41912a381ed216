from __future__ import annotations

import importlib
import time

import pytest

from device_dna.auth.auth_manager import AuthManager
from device_dna.auth.types import AuthMode
from device_dna.graph.errors import AuthenticationError

from tests.factories import configure_auth_manager, make_settings
from tests.stubs import StubConfidentialClientApplication, StubPublicClientApplication


ACCOUNT = {"name": "Adele Vance", "username": "adele@contoso.com", "realm": "tenant-1"}


def _token_result(token: str = "token-1") -> dict[str, object]:
    return {"access_token": token, "expires_in": 3600}


def test_configure_initialises_public_client(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    settings = make_settings(token_cache_path=tmp_path / "cache.bin")
    stub = StubPublicClientApplication()

    manager = configure_auth_manager(settings=settings, stub_app=stub, monkeypatch=monkeypatch)

    assert stub.client_id == settings.client_id
    assert stub.authority == settings.derive_authority()
    assert manager.mode is AuthMode.INTERACTIVE
    assert manager.current_user() is None


def test_configure_requires_tenant_and_client() -> None:
    settings = make_settings(client_id=None)
    with pytest.raises(AuthenticationError):
        AuthManager().configure(settings)


def test_configure_surfaces_msal_value_errors(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    settings = make_settings(token_cache_path=tmp_path / "cache.bin")

    def _raising_factory(**_: object):
        raise ValueError("not https")

    auth_module = importlib.import_module("device_dna.auth.auth_manager")
    monkeypatch.setattr(auth_module.msal, "PublicClientApplication", _raising_factory)

    with pytest.raises(AuthenticationError) as excinfo:
        AuthManager().configure(settings)

    assert "not https" in str(excinfo.value)


def test_silent_token_uses_cached_account(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    settings = make_settings(
        token_cache_path=tmp_path / "cache.bin",
        graph_scopes=["https://graph.microsoft.com/Device.Read.All", "offline_access"],
    )
    stub = StubPublicClientApplication(accounts=[ACCOUNT], silent_results=[_token_result()])
    manager = configure_auth_manager(settings=settings, stub_app=stub, monkeypatch=monkeypatch)

    token = manager.acquire_token_sync()

    assert token.token == "token-1"
    assert token.expires_on > int(time.time())
    scopes, account = stub.acquire_token_silent_calls[0]
    assert scopes == ("https://graph.microsoft.com/Device.Read.All",)
    assert account == ACCOUNT
    assert manager.current_user().username == "adele@contoso.com"


def test_sync_acquisition_never_prompts(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    settings = make_settings(token_cache_path=tmp_path / "cache.bin")
    stub = StubPublicClientApplication(interactive_results=[_token_result()])
    manager = configure_auth_manager(settings=settings, stub_app=stub, monkeypatch=monkeypatch)

    with pytest.raises(AuthenticationError):
        manager.acquire_token_sync()

    assert stub.acquire_token_interactive_calls == []


@pytest.mark.asyncio
async def test_ensure_signed_in_falls_back_to_interactive(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path,
) -> None:
    settings = make_settings(token_cache_path=tmp_path / "cache.bin")
    stub = StubPublicClientApplication(
        interactive_results=[
            {
                **_token_result("interactive"),
                "id_token_claims": {"name": "Adele", "preferred_username": "adele@contoso.com"},
            }
        ]
    )
    manager = configure_auth_manager(settings=settings, stub_app=stub, monkeypatch=monkeypatch)

    token = await manager.ensure_signed_in()

    assert token.token == "interactive"
    assert len(stub.acquire_token_interactive_calls) == 1
    assert manager.current_user().display_name == "Adele"


def test_msal_error_raises_authentication_error(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    settings = make_settings(token_cache_path=tmp_path / "cache.bin")
    stub = StubPublicClientApplication(
        accounts=[ACCOUNT],
        silent_results=[{"error": "invalid_grant", "error_description": "AADSTS7000218: client_assertion"}],
    )
    manager = configure_auth_manager(settings=settings, stub_app=stub, monkeypatch=monkeypatch)

    with pytest.raises(AuthenticationError) as excinfo:
        manager.acquire_token_sync()

    assert "DEVICE_DNA_CLIENT_SECRET" in str(excinfo.value)


def test_client_secret_uses_app_only_scope(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    settings = make_settings(
        token_cache_path=tmp_path / "cache.bin",
        client_secret="s3cret",
    )
    stub = StubConfidentialClientApplication(results=[_token_result("app-only")])
    manager = configure_auth_manager(settings=settings, stub_app=stub, monkeypatch=monkeypatch)

    token = manager.token_provider()(["https://graph.microsoft.com/.default"])

    assert manager.mode is AuthMode.CLIENT_SECRET
    assert stub.client_credential == "s3cret"
    assert token.token == "app-only"
    assert stub.acquire_token_for_client_calls == [("https://graph.microsoft.com/.default",)]


@pytest.mark.asyncio
async def test_sign_out_removes_accounts_and_cache(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    cache_path = tmp_path / "cache.bin"
    cache_path.write_text("{}", encoding="utf-8")
    settings = make_settings(token_cache_path=cache_path)
    stub = StubPublicClientApplication(accounts=[ACCOUNT])
    manager = configure_auth_manager(settings=settings, stub_app=stub, monkeypatch=monkeypatch)

    await manager.sign_out()

    assert stub.remove_account_calls == [ACCOUNT]
    assert not cache_path.exists()
