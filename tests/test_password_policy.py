# --------------------------------------------------------------
# File: test_password_policy.py
# Description: Pruebas para la verificación de robustez de contraseñas.
# --------------------------------------------------------------

import pytest

from vault_core.errors import InvalidUsername
from vault_core.password_policy import (
    check_password_strength,
    is_valid_email,
    normalize_email,
    validate_username,
)


def test_policy_accepts_strong_pass():
    """Valida que una contraseña sólida cumpla la política definida.

    Returns:
        None: Las aserciones revisan la puntuación y las recomendaciones.
    """
    ok, reasons, score = check_password_strength("Str0ng_P@ssw0rd!!", email="user@test.com")
    assert ok
    assert score >= 70
    assert not reasons


def test_policy_accepts_minimum_compliant_password():
    ok, reasons, _ = check_password_strength("Passw0rd1", email="alice@example.com")
    assert ok, reasons


@pytest.mark.parametrize(
    "pw",
    [
        "Sh0rt!",  # menor a 8 caracteres
        "alllowercase1",  # sin mayúsculas
        "ALLUPPERCASE1",  # sin minúsculas
        "NoDigitsHere",  # sin dígitos
        "Passw0rd",  # demasiado común
        "Xuser1234test",  # contiene fragmentos del email
    ],
)
def test_policy_rejects_weak(pw):
    """Comprueba que distintas contraseñas débiles sean rechazadas.

    Args:
        pw (str): Contraseña candidata proporcionada por el parámetro parametrizado.

    Returns:
        None: Las aserciones verifican la presencia de motivos de rechazo.
    """
    ok, reasons, _ = check_password_strength(pw, email="user@test.com")
    assert not ok
    assert reasons


def test_policy_blocks_spaces():
    ok, reasons, _ = check_password_strength("Valid But Space1", email=None)
    assert not ok and any("espacios" in r.lower() for r in reasons)


def test_normalize_email():
    assert normalize_email("  Alice@Example.COM ") == "alice@example.com"
    assert is_valid_email("alice@example.com")
    assert not is_valid_email("alice")


def test_validate_username():
    assert validate_username(" alice_01 ") == "alice_01"
    for bad in ("al", "a" * 51, "alice smith", "alice!"):
        with pytest.raises(InvalidUsername):
            validate_username(bad)
