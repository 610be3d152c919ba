# --------------------------------------------------------------
# File: test_session.py
# Description: Pruebas del guard que resuelve principales a partir de bearer tokens.
# --------------------------------------------------------------

from datetime import timedelta

import pytest

from vault_api.session import SessionGuard, extract_token
from vault_api.tokens import TokenService
from vault_core.errors import SessionRejected
from vault_core.models import AuthFailure


@pytest.fixture
def alice(accounts):
    return accounts.register("alice@example.com", "alice", "Passw0rd1")


def test_extract_token_prefers_header():
    assert extract_token("Bearer abc", {"token": "cookie"}) == "abc"
    assert extract_token(None, {"token": "cookie"}) == "cookie"
    assert extract_token("Basic xyz", {"token": "cookie"}) == "cookie"
    assert extract_token("Bearer ", None) is None
    assert extract_token(None, None) is None


def test_authenticate_with_valid_token(guard, alice):
    """Un access token válido resuelve al principal registrado.

    Returns:
        None: Se compara el principal devuelto con el de la sesión.
    """
    result = guard.authenticate(authorization=f"Bearer {alice.tokens.access_token}")
    assert result.ok
    assert result.principal == alice.principal
    assert result.failure is None


def test_authenticate_from_cookie(guard, alice):
    result = guard.authenticate(cookies={"token": alice.tokens.access_token})
    assert result.principal.email == "alice@example.com"


def test_missing_credential(guard):
    result = guard.authenticate()
    assert not result.ok
    assert result.failure is AuthFailure.NO_CREDENTIAL


def test_expired_token(identities, token_store, alice):
    expired = TokenService(b"test-signing-secret-with-32-bytes!!", token_store, access_ttl=timedelta(seconds=-5))
    guard = SessionGuard(expired, identities)
    token = expired.issue_access_token(alice.principal.subject_id)
    assert guard.authenticate(f"Bearer {token}").failure is AuthFailure.EXPIRED


@pytest.mark.parametrize("token", ["garbage", "a.b.c"])
def test_invalid_token(guard, token):
    assert guard.authenticate(f"Bearer {token}").failure is AuthFailure.INVALID


def test_token_signed_with_other_secret(guard, token_store, alice):
    forged = TokenService(b"attacker-controlled-secret-32-bytes!", token_store)
    token = forged.issue_access_token(alice.principal.subject_id)
    assert guard.authenticate(f"Bearer {token}").failure is AuthFailure.INVALID


def test_principal_not_found(guard, tokens):
    token = tokens.issue_access_token("ghost")
    result = guard.authenticate(f"Bearer {token}")
    assert result.failure is AuthFailure.PRINCIPAL_NOT_FOUND
    assert result.principal is None


def test_require_raises_typed_rejection(guard, alice):
    """`require` devuelve el principal o lanza `SessionRejected` con el motivo.

    Returns:
        None: Se comprueban ambos caminos.
    """
    assert guard.require(f"Bearer {alice.tokens.access_token}") == alice.principal
    with pytest.raises(SessionRejected) as exc_info:
        guard.require()
    assert exc_info.value.failure is AuthFailure.NO_CREDENTIAL
