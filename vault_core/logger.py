# --------------------------------------------------------------
# File: logger.py
# Description: Configuración de logging con filtrado de campos sensibles.
# --------------------------------------------------------------
"""Utilidades de logging compartidas por el núcleo y los servicios.

SECURITY: nunca se registran contraseñas, tokens ni claves. El filtro
`RedactingFilter` enmascara esos campos si llegan por error en `extra`.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Dict, Optional

SENSITIVE_FIELDS = frozenset(
    {"password", "passphrase", "token", "refresh_token", "access_token", "jwt", "secret", "key"}
)
REDACTED = "***"

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"
_SECURITY_LOGGER = "vault.security"


def _redact(details: Dict[str, Any]) -> Dict[str, Any]:
    return {k: (REDACTED if k.lower() in SENSITIVE_FIELDS else v) for k, v in details.items()}


class RedactingFilter(logging.Filter):
    """Enmascara atributos sensibles adjuntados al `LogRecord`."""

    def filter(self, record: logging.LogRecord) -> bool:
        for field in SENSITIVE_FIELDS:
            if hasattr(record, field):
                setattr(record, field, REDACTED)
        details = getattr(record, "details", None)
        if isinstance(details, dict):
            record.details = _redact(details)
        return True


def configure_logging(level: int | str = logging.INFO, stream=None) -> logging.Logger:
    """Instala un handler de consola en el logger raíz del paquete.

    Args:
        level (int | str): Nivel mínimo, numérico o nombre (``"DEBUG"``, ``"INFO"``...).
        stream: Flujo de salida; por defecto ``sys.stderr``.

    Returns:
        logging.Logger: Logger ``vault`` ya configurado.

    """

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger("vault")
    root.setLevel(level)
    if not any(getattr(h, "_vault_handler", False) for h in root.handlers):
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATEFMT))
        handler.addFilter(RedactingFilter())
        handler._vault_handler = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    return root


def get_logger(name: str) -> logging.Logger:
    """Devuelve un logger hijo de ``vault`` para el módulo indicado."""

    short = name.split(".", 1)[-1] if name.startswith("vault_") else name
    return logging.getLogger(f"vault.{short}")


def security_event(event: str, details: Optional[Dict[str, Any]] = None) -> None:
    """Registra un evento de seguridad como advertencia ``[SECURITY]``."""

    safe = _redact(details or {})
    logger = logging.getLogger(_SECURITY_LOGGER)
    if safe:
        logger.warning("[SECURITY] %s %s", event, safe, extra={"details": safe})
    else:
        logger.warning("[SECURITY] %s", event)


def login_success(email: str, method: str = "password") -> None:
    logging.getLogger(_SECURITY_LOGGER).info("Login correcto: %s (%s)", email, method)


def login_failure(email: str, reason: str) -> None:
    security_event(f"Login fallido: {email} - {reason}")
