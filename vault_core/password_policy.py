# --------------------------------------------------------------
# File: password_policy.py
# Description: Reglas de validación de contraseñas y datos de alta de cuentas.
# --------------------------------------------------------------
"""Utilidades para evaluar la robustez de contraseñas y normalizar identificadores."""

from __future__ import annotations

import re
from typing import List, Tuple

from vault_core.errors import InvalidUsername

MIN_LENGTH = 8

COMMON = {
    "123456",
    "123456789",
    "12345678",
    "qwerty",
    "password",
    "111111",
    "123123",
    "000000",
    "abc123",
    "letmein",
    "iloveyou",
    "admin",
    "welcome",
    "monkey",
    "dragon",
    "football",
    "baseball",
    "princess",
    "qwertyuiop",
    "passw0rd",
    "password1",
    "welcome1",
}

LOWER = re.compile(r"[a-z]")
UPPER = re.compile(r"[A-Z]")
DIGIT = re.compile(r"\d")
USERNAME = re.compile(r"^[A-Za-z0-9_-]{3,50}$")
EMAIL = re.compile(r"^\S+@\S+\.\S+$")


def normalize_email(email: str) -> str:
    """Recorta espacios y pasa a minúsculas el identificador de login."""

    return (email or "").strip().lower()


def is_valid_email(email: str) -> bool:
    return bool(EMAIL.match(email or "")) and len(email) <= 255


def validate_username(username: str) -> str:
    """Devuelve el nombre de usuario recortado o lanza `InvalidUsername`."""

    candidate = (username or "").strip()
    if not USERNAME.match(candidate):
        raise InvalidUsername(
            "El nombre de usuario debe tener entre 3 y 50 caracteres: letras, dígitos, '_' o '-'."
        )
    return candidate


def contains_user_info(password: str, email: str | None) -> bool:
    """Comprueba si la contraseña reutiliza partes del identificador del usuario."""

    if not email:
        return False
    local_part = email.split("@")[0].lower()
    tokens = [local_part, *re.split(r"[._+-]", local_part)]
    tokens = [token for token in tokens if len(token) >= 4]
    password_lower = password.lower()
    return any(token in password_lower for token in tokens)


def check_password_strength(
    password: str, *, email: str | None = None
) -> Tuple[bool, List[str], int]:
    """Evalúa la contraseña y devuelve cumplimiento, motivos y puntuación.

    Args:
        password (str): Contraseña propuesta por el usuario.
        email (str | None): Email para evitar reutilizar identificadores.

    Returns:
        Tuple[bool, List[str], int]: Resultado de validación, motivos de rechazo y
        puntuación acumulada entre 0 y 100.

    """

    reasons: List[str] = []
    score = 0

    length = len(password)
    if length < MIN_LENGTH:
        reasons.append(f"Longitud mínima {MIN_LENGTH}.")
    else:
        score += min(40, (length - MIN_LENGTH + 1) * 5)

    if not LOWER.search(password):
        reasons.append("Incluye al menos una minúscula.")
    else:
        score += 10
    if not UPPER.search(password):
        reasons.append("Incluye al menos una mayúscula.")
    else:
        score += 10
    if not DIGIT.search(password):
        reasons.append("Incluye al menos un dígito.")
    else:
        score += 10

    if any(char.isspace() for char in password):
        reasons.append("No se permiten espacios en blanco.")
    else:
        score += 10

    if password.lower() in COMMON:
        reasons.append("Contraseña demasiado común.")
    else:
        score += 10

    if contains_user_info(password, email):
        reasons.append("No incluyas partes de tu email/usuario.")
    else:
        score += 10

    score = max(0, min(100, score))
    return not reasons, reasons, score
