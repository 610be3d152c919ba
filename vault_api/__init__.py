# --------------------------------------------------------------
# File: __init__.py
# Description: Servicios de registros cifrados, tokens y sesiones.
# --------------------------------------------------------------
"""Capa de servicios que consumen los controladores externos."""

__all__ = [
    "auth",
    "factory",
    "records",
    "session",
    "tokens",
]
