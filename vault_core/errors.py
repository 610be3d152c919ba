# --------------------------------------------------------------
# File: errors.py
# Description: Jerarquía de excepciones del núcleo de registros seguros.
# --------------------------------------------------------------
"""Excepciones tipadas que delimitan fallos de configuración, registros y tokens.

Ningún mensaje de estas excepciones debe incluir material secreto: claves,
passphrases en claro, tokens completos ni contenido descifrado.
"""

from __future__ import annotations

from typing import List, Optional


class VaultError(Exception):
    """Raíz común de todos los errores del paquete."""


class KeyConfigurationError(VaultError):
    """Clave simétrica o secreto de firma ausente o mal formado (fatal al arrancar)."""


class StorageCorrupted(VaultError):
    """El archivo de persistencia existe pero no se puede interpretar."""


# --- Registros ---------------------------------------------------------------


class RecordError(VaultError):
    """Errores recuperables asociados a un único registro."""


class AuthenticationFailure(RecordError):
    """El tag AES-GCM no verifica: el registro está corrupto o fue alterado."""

    def __init__(self, message: str = "No se ha podido autenticar el contenido cifrado.") -> None:
        super().__init__(message)


class IntegrityMismatch(RecordError):
    """El digest SHA-256 del contenido descifrado no coincide con el almacenado."""


class MalformedRecord(RecordError):
    """El documento almacenado no contiene los cuatro campos con longitudes válidas."""


class NotFound(RecordError):
    """El registro no existe o pertenece a otro propietario."""


# --- Tokens ------------------------------------------------------------------


class TokenError(VaultError):
    """Rechazo de un token; siempre termina en una petición denegada."""


class InvalidToken(TokenError):
    """Refresh token desconocido, caducado, revocado o ya rotado."""


class TokenExpired(TokenError):
    """Access token con firma válida pero fuera de su ventana de validez."""


class MalformedToken(TokenError):
    """Token ilegible o con claims inesperados."""


class BadSignature(TokenError):
    """La firma HMAC del access token no coincide."""


# --- Cuentas -----------------------------------------------------------------


class AccountError(VaultError):
    """Errores de registro e inicio de sesión."""


class InvalidCredentials(AccountError):
    """Email o contraseña incorrectos."""

    def __init__(self, message: str = "Email o contraseña incorrectos.") -> None:
        super().__init__(message)


class FederatedLoginRequired(InvalidCredentials):
    """La cuenta solo admite inicio de sesión federado (no tiene contraseña)."""

    def __init__(
        self,
        message: str = "Esta cuenta usa un proveedor externo. Inicia sesión con ese proveedor.",
    ) -> None:
        super().__init__(message)


class UserAlreadyExists(AccountError):
    """Ya existe una cuenta con ese identificador de login."""

    def __init__(self, message: str = "Ya existe un usuario con ese email.") -> None:
        super().__init__(message)


class WeakPassword(AccountError):
    """La contraseña propuesta no cumple la política."""

    def __init__(self, reasons: List[str], score: int = 0) -> None:
        self.reasons = list(reasons)
        self.score = score
        super().__init__(
            "La contraseña no es suficientemente robusta:\n- " + "\n- ".join(self.reasons)
        )


class InvalidUsername(AccountError):
    """Nombre de usuario fuera del formato permitido."""


# --- Sesión ------------------------------------------------------------------


class SessionRejected(VaultError):
    """La credencial de la petición no identifica a ningún principal válido."""

    def __init__(self, failure, message: Optional[str] = None) -> None:
        self.failure = failure
        super().__init__(message or str(getattr(failure, "value", failure)))
