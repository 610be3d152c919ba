# --------------------------------------------------------------
# File: session.py
# Description: Contrato de autenticación por petición a partir de un bearer token.
# --------------------------------------------------------------
"""Convierte la credencial de una petición en un principal autenticado.

El enrutado externo entrega la cabecera ``Authorization`` y/o las cookies; el
guard devuelve un `AuthResult` explícito en lugar de adjuntar claims a un
objeto de petición compartido.
"""

from __future__ import annotations

from typing import Mapping, Optional, Protocol

from vault_core.errors import BadSignature, MalformedToken, SessionRejected, TokenExpired
from vault_core.logger import get_logger, security_event
from vault_core.models import AuthFailure, AuthResult, Principal
from vault_api.tokens import TokenService

logger = get_logger(__name__)

BEARER_PREFIX = "Bearer "
TOKEN_COOKIE = "token"

FAILURE_MESSAGES = {
    AuthFailure.NO_CREDENTIAL: "Autenticación requerida. No se ha enviado ningún token.",
    AuthFailure.EXPIRED: "Token caducado. Inicia sesión de nuevo.",
    AuthFailure.INVALID: "Token inválido.",
    AuthFailure.PRINCIPAL_NOT_FOUND: "Usuario no encontrado.",
}


class PrincipalLookup(Protocol):
    def get_principal(self, subject_id: str) -> Optional[Principal]: ...


def extract_token(
    authorization: Optional[str] = None, cookies: Optional[Mapping[str, str]] = None
) -> Optional[str]:
    """Obtiene el access token de ``Authorization: Bearer`` o, en su defecto, de la cookie.

    Args:
        authorization (Optional[str]): Valor de la cabecera ``Authorization``.
        cookies (Optional[Mapping[str, str]]): Cookies de la petición.

    Returns:
        Optional[str]: Token sin prefijo, o ``None`` si no hay credencial.

    """

    if authorization and authorization.startswith(BEARER_PREFIX):
        token = authorization[len(BEARER_PREFIX):].strip()
        if token:
            return token
    if cookies:
        token = cookies.get(TOKEN_COOKIE)
        if token:
            return token
    return None


class SessionGuard:
    """Valida el access token y resuelve el principal mediante el almacén de identidades."""

    def __init__(self, tokens: TokenService, identities: PrincipalLookup) -> None:
        self._tokens = tokens
        self._identities = identities

    @staticmethod
    def _reject(failure: AuthFailure) -> AuthResult:
        return AuthResult(failure=failure, message=FAILURE_MESSAGES[failure])

    def authenticate(
        self,
        authorization: Optional[str] = None,
        cookies: Optional[Mapping[str, str]] = None,
    ) -> AuthResult:
        """Resuelve la credencial de la petición.

        Returns:
            AuthResult: Con ``principal`` si la petición está autenticada, o con
            ``failure`` (``NO_CREDENTIAL``, ``EXPIRED``, ``INVALID`` o
            ``PRINCIPAL_NOT_FOUND``) en caso contrario.

        """

        token = extract_token(authorization, cookies)
        if token is None:
            return self._reject(AuthFailure.NO_CREDENTIAL)

        try:
            claims = self._tokens.validate_access(token)
        except TokenExpired:
            return self._reject(AuthFailure.EXPIRED)
        except (BadSignature, MalformedToken) as exc:
            security_event("Intento con JWT inválido", {"reason": exc.__class__.__name__})
            return self._reject(AuthFailure.INVALID)

        principal = self._identities.get_principal(claims.subject_id)
        if principal is None:
            security_event("Token de un usuario inexistente", {"subject_id": claims.subject_id})
            return self._reject(AuthFailure.PRINCIPAL_NOT_FOUND)

        return AuthResult(principal=principal)

    def require(
        self,
        authorization: Optional[str] = None,
        cookies: Optional[Mapping[str, str]] = None,
    ) -> Principal:
        """Como `authenticate`, pero lanza `SessionRejected` si no hay principal."""

        result = self.authenticate(authorization, cookies)
        if result.principal is None:
            raise SessionRejected(result.failure, result.message)
        return result.principal
