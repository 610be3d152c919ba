# --------------------------------------------------------------
# File: config.py
# Description: Carga y validación de la configuración desde entorno y .env.
# --------------------------------------------------------------
"""Configuración del proceso: clave AES, secreto JWT, vigencias y costes."""

from __future__ import annotations

import base64
import binascii
import os
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

from vault_core.errors import KeyConfigurationError
from vault_core.logger import get_logger

logger = get_logger(__name__)

AES_KEY_LENGTH = 32
MIN_SIGNING_SECRET_LENGTH = 32

_ENV_FIELDS = {
    "ACCESS_TOKEN_TTL_MINUTES": "access_token_ttl_minutes",
    "REFRESH_TOKEN_TTL_DAYS": "refresh_token_ttl_days",
    "ARGON2_TIME_COST": "argon2_time_cost",
    "ARGON2_MEMORY_KIB": "argon2_memory_kib",
    "ARGON2_PARALLELISM": "argon2_parallelism",
    "REVOKE_SESSIONS_ON_REUSE": "revoke_sessions_on_reuse",
    "LOG_LEVEL": "log_level",
}


class Settings(BaseModel):
    """Valores de configuración validados e inmutables tras el arranque."""

    model_config = {"frozen": True}

    aes_key: bytes
    jwt_secret: bytes
    jwt_issuer: Optional[str] = None
    jwt_audience: Optional[str] = None
    access_token_ttl_minutes: int = 60
    refresh_token_ttl_days: int = 7
    argon2_time_cost: int = 3
    argon2_memory_kib: int = 64 * 1024
    argon2_parallelism: int = 1
    revoke_sessions_on_reuse: bool = True
    storage_path: Optional[str] = "./_data"
    log_level: str = "INFO"

    @field_validator("aes_key")
    @classmethod
    def _check_key_length(cls, value: bytes) -> bytes:
        if len(value) != AES_KEY_LENGTH:
            raise ValueError(f"la clave AES debe tener {AES_KEY_LENGTH} bytes")
        return value

    @field_validator("access_token_ttl_minutes", "refresh_token_ttl_days")
    @classmethod
    def _check_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("las vigencias deben ser positivas")
        return value


def decode_key(encoded: Optional[str]) -> bytes:
    """Decodifica la clave AES en Base64 y comprueba que mida 256 bits.

    Args:
        encoded (Optional[str]): Valor de ``AES_KEY`` tal como llega del entorno.

    Returns:
        bytes: Clave simétrica de 32 bytes.

    Raises:
        KeyConfigurationError: Si falta, no es Base64 válido o tiene otra longitud.

    """

    if not encoded:
        raise KeyConfigurationError("AES_KEY no está configurada")
    try:
        key = base64.b64decode(encoded.strip(), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise KeyConfigurationError("AES_KEY no es Base64 válido") from exc
    if len(key) != AES_KEY_LENGTH:
        raise KeyConfigurationError(
            f"AES_KEY debe tener {AES_KEY_LENGTH} bytes (256 bits), tiene {len(key)} bytes"
        )
    return key


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Construye `Settings` a partir del entorno, fallando rápido si faltan secretos.

    Args:
        environ (Optional[Mapping[str, str]]): Entorno explícito; si se omite se
            carga ``.env`` y se usa ``os.environ``.

    Returns:
        Settings: Configuración validada.

    Raises:
        KeyConfigurationError: Si la clave AES o el secreto JWT no son utilizables.

    """

    if environ is None:
        load_dotenv()
        environ = os.environ

    aes_key = decode_key(environ.get("AES_KEY"))

    secret = environ.get("JWT_SECRET")
    if not secret:
        raise KeyConfigurationError("JWT_SECRET no está configurado")
    jwt_secret = secret.encode("utf-8")
    if len(jwt_secret) < MIN_SIGNING_SECRET_LENGTH:
        logger.warning(
            "JWT_SECRET mide %d bytes; se recomiendan al menos %d",
            len(jwt_secret),
            MIN_SIGNING_SECRET_LENGTH,
        )

    storage_path = environ.get("STORAGE_PATH", "./_data") or None
    # Valores en texto tal cual; pydantic los convierte a int/bool al validar.
    overrides = {
        field: environ[name]
        for name, field in _ENV_FIELDS.items()
        if environ.get(name) not in (None, "")
    }

    try:
        return Settings(
            aes_key=aes_key,
            jwt_secret=jwt_secret,
            jwt_issuer=environ.get("JWT_ISSUER") or None,
            jwt_audience=environ.get("JWT_AUDIENCE") or None,
            storage_path=storage_path,
            **overrides,
        )
    except ValueError as exc:
        # pydantic.ValidationError hereda de ValueError
        raise KeyConfigurationError(f"Configuración inválida: {exc.__class__.__name__}") from exc
