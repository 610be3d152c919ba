# --------------------------------------------------------------
# File: conftest.py
# Description: Fixtures compartidas con claves fijas y almacenes en memoria.
# --------------------------------------------------------------

from typing import Iterator

import pytest

from vault_api.auth import AccountService
from vault_api.records import RecordPipeline
from vault_api.session import SessionGuard
from vault_api.tokens import RefreshTokenStore, TokenService
from vault_core.crypto_sym import CryptoEngine
from vault_core.integrity import IntegrityVerifier
from vault_core.passwords import CredentialStore
from vault_core.storage import JsonIdentityStore, JsonRecordStore

FIXED_KEY = bytes(range(32))
SIGNING_SECRET = b"test-signing-secret-with-32-bytes!!"


@pytest.fixture(autouse=True)
def _isolate_storage(tmp_path, monkeypatch) -> Iterator[None]:
    """Aísla STORAGE_PATH para que ninguna prueba escriba en ./_data.

    Args:
        tmp_path (Path): Carpeta temporal proporcionada por pytest.
        monkeypatch (pytest.MonkeyPatch): Fixture para ajustar variables de entorno.

    Returns:
        Iterator[None]: Control del fixture autouse durante la ejecución de cada test.
    """
    data_dir = tmp_path / "_data"
    data_dir.mkdir()
    monkeypatch.setenv("STORAGE_PATH", str(data_dir))
    yield
    # tmp_path se limpia automáticamente por pytest


@pytest.fixture
def engine() -> CryptoEngine:
    return CryptoEngine(FIXED_KEY)


@pytest.fixture
def verifier() -> IntegrityVerifier:
    return IntegrityVerifier()


@pytest.fixture
def record_store() -> JsonRecordStore:
    return JsonRecordStore()


@pytest.fixture
def pipeline(engine, verifier, record_store) -> RecordPipeline:
    return RecordPipeline(engine, verifier, record_store)


@pytest.fixture
def credentials() -> CredentialStore:
    # Parámetros mínimos de Argon2id para que las pruebas sean rápidas.
    return CredentialStore(time_cost=1, memory_cost=8, parallelism=1)


@pytest.fixture
def identities() -> JsonIdentityStore:
    return JsonIdentityStore()


@pytest.fixture
def token_store() -> RefreshTokenStore:
    return RefreshTokenStore()


@pytest.fixture
def tokens(token_store) -> TokenService:
    return TokenService(SIGNING_SECRET, token_store)


@pytest.fixture
def accounts(identities, credentials, tokens) -> AccountService:
    return AccountService(identities, credentials, tokens)


@pytest.fixture
def guard(tokens, identities) -> SessionGuard:
    return SessionGuard(tokens, identities)
