# --------------------------------------------------------------
# File: test_integrity.py
# Description: Pruebas del digest SHA-256 de integridad del contenido.
# --------------------------------------------------------------

import hashlib

import pytest

from vault_core.integrity import sha256_hex


def test_digest_is_sha256(verifier):
    assert verifier.digest("buy milk") == hashlib.sha256(b"buy milk").digest()
    assert len(verifier.digest(b"")) == 32


def test_hexdigest_is_lowercase(verifier):
    value = sha256_hex("Buy Milk")
    assert value == value.lower()
    assert verifier.hexdigest("Buy Milk") == value
    assert len(value) == 64


def test_verify_accepts_matching_content(verifier):
    """El digest de un contenido siempre lo verifica.

    Returns:
        None: Se comprueba con texto y con bytes equivalentes.
    """
    digest = verifier.digest("buy milk")
    assert verifier.verify("buy milk", digest)
    assert verifier.verify(b"buy milk", digest)


@pytest.mark.parametrize("other", ["buy milk ", "Buy milk", "", "buy silk"])
def test_verify_rejects_different_content(verifier, other):
    assert verifier.verify(other, verifier.digest("buy milk")) is False


@pytest.mark.parametrize("bad", [b"", b"\x00" * 31, b"\x00" * 33, None, "ab" * 32])
def test_verify_rejects_malformed_digest(verifier, bad):
    """Un digest con tipo o longitud inválidos devuelve False en lugar de lanzar.

    Args:
        bad: Digest inválido proporcionado por el parámetro.

    Returns:
        None: La aserción confirma el rechazo silencioso.
    """
    assert verifier.verify("buy milk", bad) is False
