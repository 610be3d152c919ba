# --------------------------------------------------------------
# File: tokens.py
# Description: Emisión, validación, rotación y revocación de tokens de sesión.
# --------------------------------------------------------------
"""Access tokens JWT sin estado y refresh tokens opacos con rotación.

Ciclo de vida de un refresh token::

    ACTIVE -> ROTATED   (terminal)
    ACTIVE -> REVOKED   (terminal)

Política ante reutilización: presentar un token ya ``ROTATED`` se rechaza con
`InvalidToken` y, si ``revoke_on_reuse`` está activo (valor por defecto), se
revocan todas las sesiones activas del sujeto, porque la reutilización indica
que el token pudo ser robado.

Los access tokens se validan solo por firma y caducidad. Tras un logout siguen
siendo válidos hasta que expiran (como máximo su vigencia, 1 hora por defecto):
es un compromiso aceptado a cambio de no consultar estado en cada petición.
"""

from __future__ import annotations

import hashlib
import secrets
import uuid
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional, Tuple

import jwt

from vault_core.errors import (
    BadSignature,
    InvalidToken,
    KeyConfigurationError,
    MalformedToken,
    TokenExpired,
)
from vault_core.logger import get_logger, security_event
from vault_core.models import AccessClaims, RefreshState, RefreshTokenRecord, TokenPair
from vault_core.storage import JsonStore

logger = get_logger(__name__)

JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_BYTES = 48


def _utcnow() -> datetime:
    return datetime.now(UTC)


def token_fingerprint(token: str) -> str:
    """SHA-256 hex del token; es lo único que se guarda del refresh token."""

    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class ConsumeOutcome(str, Enum):
    ROTATED = "rotated"
    UNKNOWN = "unknown"
    EXPIRED = "expired"
    REVOKED = "revoked"
    REUSED = "reused"


class RefreshTokenStore(JsonStore):
    """Estado de servidor de los refresh tokens.

    Es el único recurso mutable compartido del núcleo: todas las transiciones se
    hacen bajo el cerrojo del almacén, de modo que dos refrescos simultáneos del
    mismo token quedan serializados y solo uno lo consume. Con ``path`` el estado
    se persiste en JSON y sobrevive a reinicios; sin él vive solo en memoria.
    """

    _default = {"refresh_tokens": {}}

    def _load(self, token_id: str) -> Optional[RefreshTokenRecord]:
        raw = self._db["refresh_tokens"].get(token_id)
        return RefreshTokenRecord.model_validate(raw) if raw is not None else None

    def _put(self, record: RefreshTokenRecord) -> None:
        self._db["refresh_tokens"][record.token_id] = record.model_dump(mode="json")

    def _records(self) -> List[RefreshTokenRecord]:
        return [
            RefreshTokenRecord.model_validate(raw)
            for raw in self._db["refresh_tokens"].values()
        ]

    def add(self, record: RefreshTokenRecord) -> None:
        with self._lock:
            self._put(record)
            self._flush()

    def get(self, token_id: str) -> Optional[RefreshTokenRecord]:
        with self._lock:
            return self._load(token_id)

    def consume(
        self, token_id: str, replacement: RefreshTokenRecord, now: datetime
    ) -> Tuple[ConsumeOutcome, Optional[RefreshTokenRecord]]:
        """Marca ``token_id`` como rotado y guarda ``replacement`` de forma atómica.

        Args:
            token_id (str): Huella del token presentado.
            replacement (RefreshTokenRecord): Nuevo token activo a registrar.
            now (datetime): Instante de referencia para la caducidad.

        Returns:
            Tuple[ConsumeOutcome, Optional[RefreshTokenRecord]]: Resultado y el
            registro previo (``None`` si el token es desconocido). Solo con
            ``ROTATED`` se persiste el reemplazo.

        """

        with self._lock:
            current = self._load(token_id)
            if current is None:
                return ConsumeOutcome.UNKNOWN, None
            if current.state is RefreshState.ROTATED:
                return ConsumeOutcome.REUSED, current
            if current.state is RefreshState.REVOKED:
                return ConsumeOutcome.REVOKED, current
            if current.is_expired(now):
                return ConsumeOutcome.EXPIRED, current
            self._put(
                current.model_copy(
                    update={"state": RefreshState.ROTATED, "replaced_by": replacement.token_id}
                )
            )
            self._put(replacement)
            self._flush()
            return ConsumeOutcome.ROTATED, current

    def revoke(self, token_id: str) -> bool:
        with self._lock:
            current = self._load(token_id)
            if current is None or current.state is not RefreshState.ACTIVE:
                return False
            self._put(current.model_copy(update={"state": RefreshState.REVOKED}))
            self._flush()
            return True

    def revoke_all(self, subject_id: str) -> int:
        """Revoca todos los tokens ``ACTIVE`` del sujeto y devuelve cuántos eran."""

        with self._lock:
            revoked = 0
            for record in self._records():
                if record.subject_id == subject_id and record.state is RefreshState.ACTIVE:
                    self._put(record.model_copy(update={"state": RefreshState.REVOKED}))
                    revoked += 1
            if revoked:
                self._flush()
            return revoked

    def active_for(self, subject_id: str, now: datetime) -> int:
        with self._lock:
            return sum(
                1
                for record in self._records()
                if record.subject_id == subject_id
                and record.state is RefreshState.ACTIVE
                and not record.is_expired(now)
            )

    def purge_expired(self, now: datetime) -> int:
        """Elimina tokens caducados (en cualquier estado) y devuelve cuántos."""

        with self._lock:
            stale = [record.token_id for record in self._records() if record.is_expired(now)]
            for token_id in stale:
                del self._db["refresh_tokens"][token_id]
            if stale:
                self._flush()
            return len(stale)


class TokenService:
    """Emite y valida tokens de sesión.

    Args:
        signing_secret (bytes): Secreto HMAC para los access tokens.
        store (RefreshTokenStore): Estado de los refresh tokens.
        access_ttl (timedelta): Vigencia de los access tokens.
        refresh_ttl (timedelta): Vigencia de los refresh tokens.
        issuer (Optional[str]): Claim ``iss`` opcional.
        audience (Optional[str]): Claim ``aud`` opcional.
        revoke_on_reuse (bool): Revocar todas las sesiones al detectar reutilización.
        clock (Optional[Callable[[], datetime]]): Reloj UTC inyectable.

    """

    def __init__(
        self,
        signing_secret: bytes,
        store: RefreshTokenStore,
        *,
        access_ttl: timedelta = timedelta(hours=1),
        refresh_ttl: timedelta = timedelta(days=7),
        issuer: Optional[str] = None,
        audience: Optional[str] = None,
        revoke_on_reuse: bool = True,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if not signing_secret:
            raise KeyConfigurationError("El secreto de firma JWT no está configurado")
        self._secret = signing_secret
        self._store = store
        self._access_ttl = access_ttl
        self._refresh_ttl = refresh_ttl
        self._issuer = issuer
        self._audience = audience
        self._revoke_on_reuse = revoke_on_reuse
        self._clock = clock or _utcnow

    @property
    def store(self) -> RefreshTokenStore:
        return self._store

    # --- access tokens -----------------------------------------------------

    def issue_access_token(self, subject_id: str) -> str:
        """Firma un access token de vida corta para ``subject_id``."""

        now = self._clock()
        payload = {
            "sub": subject_id,
            "iat": now,
            "exp": now + self._access_ttl,
            "jti": uuid.uuid4().hex,
            "typ": ACCESS_TOKEN_TYPE,
        }
        if self._issuer:
            payload["iss"] = self._issuer
        if self._audience:
            payload["aud"] = self._audience
        return jwt.encode(payload, self._secret, algorithm=JWT_ALGORITHM)

    def validate_access(self, token: str) -> AccessClaims:
        """Valida firma y caducidad sin consultar el almacén de refresh tokens.

        Args:
            token (str): Access token presentado por el cliente.

        Returns:
            AccessClaims: Claims verificados con el sujeto autenticado.

        Raises:
            TokenExpired: Firma válida pero token caducado.
            BadSignature: La firma no corresponde al secreto configurado.
            MalformedToken: Token ilegible, de otro tipo o con claims inválidos.

        """

        if not token or not isinstance(token, str):
            raise MalformedToken("Token vacío")
        options = {"require": ["sub", "exp", "iat"]}
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[JWT_ALGORITHM],
                issuer=self._issuer,
                audience=self._audience,
                options=options,
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenExpired("Token caducado") from exc
        except jwt.InvalidSignatureError as exc:
            raise BadSignature("Firma de token inválida") from exc
        except jwt.InvalidTokenError as exc:
            raise MalformedToken("Token inválido") from exc

        if claims.get("typ") != ACCESS_TOKEN_TYPE or not isinstance(claims.get("sub"), str):
            raise MalformedToken("Token inválido")
        return AccessClaims(
            subject_id=claims["sub"],
            token_id=str(claims.get("jti", "")),
            issued_at=datetime.fromtimestamp(claims["iat"], UTC),
            expires_at=datetime.fromtimestamp(claims["exp"], UTC),
        )

    # --- refresh tokens ----------------------------------------------------

    def _new_refresh(self, subject_id: str) -> Tuple[str, RefreshTokenRecord]:
        token = secrets.token_urlsafe(REFRESH_TOKEN_BYTES)
        now = self._clock()
        record = RefreshTokenRecord(
            token_id=token_fingerprint(token),
            subject_id=subject_id,
            created_at=now,
            expires_at=now + self._refresh_ttl,
        )
        return token, record

    def issue_refresh_token(self, subject_id: str) -> str:
        """Genera un refresh token opaco y lo registra como ``ACTIVE``."""

        token, record = self._new_refresh(subject_id)
        self._store.add(record)
        return token

    def issue_pair(self, subject_id: str) -> TokenPair:
        return TokenPair(
            access_token=self.issue_access_token(subject_id),
            refresh_token=self.issue_refresh_token(subject_id),
            expires_in=int(self._access_ttl.total_seconds()),
        )

    def refresh(self, old_refresh_token: str) -> TokenPair:
        """Rota un refresh token y emite una pareja nueva.

        Args:
            old_refresh_token (str): Refresh token presentado.

        Returns:
            TokenPair: Nuevo access token y nuevo refresh token activo.

        Raises:
            InvalidToken: Si el token es desconocido, caducado, revocado o ya se usó.

        """

        if not old_refresh_token or not isinstance(old_refresh_token, str):
            raise InvalidToken("Refresh token inválido o caducado")

        token_id = token_fingerprint(old_refresh_token)
        known = self._store.get(token_id)
        subject_id = known.subject_id if known else ""
        new_token, replacement = self._new_refresh(subject_id)

        outcome, previous = self._store.consume(token_id, replacement, self._clock())
        if outcome is ConsumeOutcome.REUSED and previous is not None:
            security_event(
                "Reutilización de refresh token rotado",
                {"subject_id": previous.subject_id, "revoke_all": self._revoke_on_reuse},
            )
            if self._revoke_on_reuse:
                self.revoke_all(previous.subject_id)
            raise InvalidToken("Refresh token inválido o caducado")
        if outcome is not ConsumeOutcome.ROTATED:
            security_event("Intento con refresh token inválido", {"outcome": outcome.value})
            raise InvalidToken("Refresh token inválido o caducado")

        logger.info("Refresh token rotado para %s", subject_id)
        return TokenPair(
            access_token=self.issue_access_token(subject_id),
            refresh_token=new_token,
            expires_in=int(self._access_ttl.total_seconds()),
        )

    def revoke(self, refresh_token: str) -> bool:
        """Revoca un único refresh token (cierre de una sesión concreta)."""

        return self._store.revoke(token_fingerprint(refresh_token))

    def revoke_all(self, subject_id: str) -> int:
        """Revoca todas las sesiones activas del sujeto (logout o compromiso)."""

        revoked = self._store.revoke_all(subject_id)
        logger.info("Revocados %d refresh tokens de %s", revoked, subject_id)
        return revoked

    def purge_expired(self) -> int:
        return self._store.purge_expired(self._clock())
