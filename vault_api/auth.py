# --------------------------------------------------------------
# File: auth.py
# Description: Operaciones de alta y autenticación con gestión segura de secretos.
# --------------------------------------------------------------
"""Funciones de negocio para registrar usuarios, validar credenciales y gestionar sesiones."""

from __future__ import annotations

import re
import uuid
from datetime import UTC, datetime
from typing import Callable, Optional

from vault_core.errors import (
    FederatedLoginRequired,
    InvalidCredentials,
    InvalidUsername,
    UserAlreadyExists,
    WeakPassword,
)
from vault_core.logger import get_logger, login_failure, login_success, security_event
from vault_core.models import (
    AuthSession,
    Credential,
    LinkDecision,
    LinkOutcome,
    TokenPair,
    UserAccount,
)
from vault_core.password_policy import (
    check_password_strength,
    is_valid_email,
    normalize_email,
    validate_username,
)
from vault_core.passwords import CredentialStore
from vault_core.storage import IdentityStore
from vault_api.tokens import TokenService

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def federated_username(candidate: str) -> str:
    """Adapta el nombre que envía el proveedor a la regla de nombres de usuario.

    Los caracteres no permitidos se sustituyen por ``_``; si el resultado sigue
    sin ser válido (p. ej. menos de 3 caracteres) se genera ``user-<hex>``.
    """

    cleaned = re.sub(r"[^A-Za-z0-9_-]", "_", (candidate or "").strip())[:50]
    try:
        return validate_username(cleaned)
    except InvalidUsername:
        return validate_username(f"user-{uuid.uuid4().hex[:8]}")


def resolve_federated_identity(
    identities: IdentityStore,
    provider_id: str,
    email: str,
    username: Optional[str] = None,
    *,
    clock: Optional[Callable[[], datetime]] = None,
) -> LinkDecision:
    """Decide a qué cuenta corresponde una identidad externa.

    Orden de resolución:

    1. Cuenta ya vinculada a ``provider_id`` -> ``LINKED``.
    2. Cuenta con el mismo email -> se le vincula ``provider_id`` -> ``MATCHED``.
    3. Ninguna -> cuenta nueva sin contraseña -> ``CREATED``.

    Args:
        identities (IdentityStore): Almacén de cuentas.
        provider_id (str): Identificador estable del usuario en el proveedor.
        email (str): Email verificado por el proveedor.
        username (Optional[str]): Nombre mostrado; si falta se usa la parte local del email.
        clock (Optional[Callable[[], datetime]]): Reloj UTC inyectable.

    Returns:
        LinkDecision: Resultado etiquetado y la cuenta resultante.

    """

    now = (clock or _utcnow)()
    account = identities.get_by_federated_id(provider_id)
    if account is not None:
        return LinkDecision(outcome=LinkOutcome.LINKED, account=account)

    email = normalize_email(email)
    account = identities.get_by_email(email)
    if account is not None:
        linked = account.model_copy(
            update={
                "credential": Credential(
                    password_digest=account.credential.password_digest,
                    federated_id=provider_id,
                ),
                "updated_at": now,
            }
        )
        identities.update(linked)
        logger.info("Identidad federada vinculada a la cuenta existente %s", email)
        return LinkDecision(outcome=LinkOutcome.MATCHED, account=linked)

    account = UserAccount(
        id=uuid.uuid4().hex,
        email=email,
        username=federated_username(username or email.split("@")[0]),
        credential=Credential(federated_id=provider_id),
        created_at=now,
        updated_at=now,
    )
    try:
        identities.add(account)
    except UserAlreadyExists:
        # Primer login concurrente con el mismo proveedor: gana la cuenta ya creada.
        existing = identities.get_by_federated_id(provider_id)
        if existing is None:
            raise
        return LinkDecision(outcome=LinkOutcome.LINKED, account=existing)
    logger.info("Cuenta creada mediante proveedor federado: %s", email)
    return LinkDecision(outcome=LinkOutcome.CREATED, account=account)


class AccountService:
    """Alta, login, refresco y logout sobre `CredentialStore` y `TokenService`.

    Args:
        identities (IdentityStore): Almacén de cuentas.
        credentials (CredentialStore): Hash de contraseñas.
        tokens (TokenService): Emisión y rotación de tokens.

    """

    def __init__(
        self,
        identities: IdentityStore,
        credentials: CredentialStore,
        tokens: TokenService,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._identities = identities
        self._credentials = credentials
        self._tokens = tokens
        self._clock = clock or _utcnow

    def register(self, email: str, username: str, password: str) -> AuthSession:
        """Registra un usuario aplicando la política de contraseñas.

        Args:
            email (str): Correo electrónico que identifica al usuario.
            username (str): Nombre visible.
            password (str): Contraseña propuesta que se validará y protegerá.

        Returns:
            AuthSession: Principal creado y su primera pareja de tokens.

        Raises:
            InvalidCredentials: Si el email no tiene un formato válido.
            InvalidUsername: Si el nombre de usuario no cumple el formato.
            WeakPassword: Si la contraseña no cumple la política.
            UserAlreadyExists: Si el email ya está registrado.

        """

        email = normalize_email(email)
        if not is_valid_email(email):
            raise InvalidCredentials("Introduce un email válido.")
        username = validate_username(username)

        ok, reasons, score = check_password_strength(password or "", email=email)
        if not ok:
            raise WeakPassword(reasons, score)

        if self._identities.get_by_email(email) is not None:
            security_event("Registro con email existente", {"email": email})
            raise UserAlreadyExists()

        now = self._clock()
        account = UserAccount(
            id=uuid.uuid4().hex,
            email=email,
            username=username,
            credential=Credential(password_digest=self._credentials.hash(password)),
            created_at=now,
            updated_at=now,
        )
        self._identities.add(account)
        logger.info("Nuevo usuario registrado: %s", email)

        return AuthSession(
            principal=account.to_principal(), tokens=self._tokens.issue_pair(account.id)
        )

    def login(self, email: str, password: str) -> AuthSession:
        """Autentica al usuario con email y contraseña.

        Raises:
            FederatedLoginRequired: La cuenta no tiene contraseña (solo federada),
                sea cual sea el valor de ``password``.
            InvalidCredentials: Usuario inexistente o contraseña incorrecta; el
                mensaje es el mismo en ambos casos.

        """

        email = normalize_email(email)
        account = self._identities.get_by_email(email)
        if account is None:
            login_failure(email, "Usuario no encontrado")
            raise InvalidCredentials()

        if account.credential.is_federated_only:
            login_failure(email, "Cuenta federada sin contraseña")
            raise FederatedLoginRequired()

        if not self._credentials.verify_credential(account.credential, password):
            login_failure(email, "Contraseña incorrecta")
            raise InvalidCredentials()

        login_success(email, "password")
        return AuthSession(
            principal=account.to_principal(), tokens=self._tokens.issue_pair(account.id)
        )

    def refresh(self, refresh_token: str) -> TokenPair:
        """Rota el refresh token; ver `TokenService.refresh`."""

        return self._tokens.refresh(refresh_token)

    def logout(self, subject_id: str) -> int:
        """Revoca todas las sesiones del usuario.

        Los access tokens ya emitidos siguen siendo válidos hasta su caducidad.
        """

        return self._tokens.revoke_all(subject_id)

    def federated_login(
        self, provider_id: str, email: str, username: Optional[str] = None
    ) -> AuthSession:
        """Inicia sesión con una identidad externa, vinculando o creando la cuenta."""

        decision = resolve_federated_identity(
            self._identities, provider_id, email, username, clock=self._clock
        )
        login_success(decision.account.email, f"federated:{decision.outcome.value}")
        return AuthSession(
            principal=decision.account.to_principal(),
            tokens=self._tokens.issue_pair(decision.account.id),
        )
