# --------------------------------------------------------------
# File: __init__.py
# Description: Exposición pública de utilidades criptográficas del paquete vault_core.
# --------------------------------------------------------------
"""Inicializa el paquete `vault_core` y documenta sus módulos principales."""

__all__ = [
    "config",
    "crypto_sym",
    "errors",
    "integrity",
    "logger",
    "models",
    "password_policy",
    "passwords",
    "storage",
]
