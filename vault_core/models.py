# --------------------------------------------------------------
# File: models.py
# Description: Modelos de datos comunes utilizados por la capa criptográfica.
# --------------------------------------------------------------
"""Modelos Pydantic que encapsulan registros cifrados, credenciales y tokens."""

from __future__ import annotations

import base64
import binascii
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import (
    AwareDatetime,
    BaseModel,
    ConfigDict,
    ValidationError,
    field_validator,
    model_validator,
)

from vault_core.errors import MalformedRecord

NONCE_LENGTH = 12
TAG_LENGTH = 16
DIGEST_LENGTH = 32


class AesGcmResult(BaseModel):
    """Representa el resultado de una operación AES-GCM.

    Attributes:
        ciphertext (bytes): Datos cifrados sin etiqueta.
        nonce (bytes): Vector de inicialización utilizado durante el cifrado.
        tag (bytes): Etiqueta de autenticación generada por AES-GCM.

    """

    model_config = ConfigDict(frozen=True)

    ciphertext: bytes
    nonce: bytes
    tag: bytes


# --- Registros ---------------------------------------------------------------


class EncryptedRecord(BaseModel):
    """Forma cifrada de un registro, reemplazada siempre de forma completa.

    Un registro solo está bien formado si los cuatro campos criptográficos están
    presentes y con la longitud correcta; en caso contrario la construcción falla
    con ``ValidationError`` en lugar de degradarse a una marca de manipulación.

    Attributes:
        record_id (str): Identificador opaco del registro.
        owner_id (str): Propietario del registro.
        ciphertext (bytes): Contenido cifrado, misma longitud que el claro.
        nonce (bytes): Nonce de 96 bits, único por cifrado.
        auth_tag (bytes): Tag GCM de 128 bits.
        integrity_digest (bytes): SHA-256 del contenido original.
        created_at (datetime): Alta del registro; siempre con zona horaria.
        updated_at (datetime): Última sustitución (UTC).

    """

    model_config = ConfigDict(frozen=True)

    record_id: str
    owner_id: str
    ciphertext: bytes
    nonce: bytes
    auth_tag: bytes
    integrity_digest: bytes
    created_at: AwareDatetime
    updated_at: AwareDatetime

    @field_validator("nonce")
    @classmethod
    def _check_nonce(cls, value: bytes) -> bytes:
        if len(value) != NONCE_LENGTH:
            raise ValueError(f"el nonce debe medir {NONCE_LENGTH} bytes")
        return value

    @field_validator("auth_tag")
    @classmethod
    def _check_tag(cls, value: bytes) -> bytes:
        if len(value) != TAG_LENGTH:
            raise ValueError(f"el tag debe medir {TAG_LENGTH} bytes")
        return value

    @field_validator("integrity_digest")
    @classmethod
    def _check_digest(cls, value: bytes) -> bytes:
        if len(value) != DIGEST_LENGTH:
            raise ValueError(f"el digest debe medir {DIGEST_LENGTH} bytes")
        return value

    def to_document(self) -> Dict[str, str]:
        """Serializa el registro con las codificaciones persistidas.

        Returns:
            Dict[str, str]: ``ciphertext``/``nonce``/``auth_tag`` en Base64,
            ``integrity_digest`` en hex minúscula y fechas ISO 8601.

        """

        return {
            "record_id": self.record_id,
            "owner_id": self.owner_id,
            "ciphertext": base64.b64encode(self.ciphertext).decode("ascii"),
            "nonce": base64.b64encode(self.nonce).decode("ascii"),
            "auth_tag": base64.b64encode(self.auth_tag).decode("ascii"),
            "integrity_digest": self.integrity_digest.hex(),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "EncryptedRecord":
        """Reconstruye un registro desde su documento persistido.

        Args:
            document (Dict[str, Any]): Documento tal como lo devuelve el almacén.

        Returns:
            EncryptedRecord: Registro validado.

        Raises:
            MalformedRecord: Si falta algún campo o su codificación/longitud es inválida.

        """

        try:
            return cls(
                record_id=document["record_id"],
                owner_id=document["owner_id"],
                ciphertext=base64.b64decode(document["ciphertext"], validate=True),
                nonce=base64.b64decode(document["nonce"], validate=True),
                auth_tag=base64.b64decode(document["auth_tag"], validate=True),
                integrity_digest=bytes.fromhex(document["integrity_digest"]),
                created_at=document["created_at"],
                updated_at=document["updated_at"],
            )
        except (KeyError, TypeError, binascii.Error, ValueError, ValidationError) as exc:
            raise MalformedRecord(
                f"Registro {document.get('record_id', '?')} mal formado"
            ) from exc


class RecordStatus(str, Enum):
    CLEAN = "clean"
    TAMPERED = "tampered"
    CORRUPTED = "corrupted"
    MALFORMED = "malformed"


class ReadResult(BaseModel):
    """Resultado de lectura de un registro con su clasificación de integridad."""

    record_id: str
    content: str
    status: RecordStatus
    tampered: bool
    decryption_ok: bool
    error: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RecordWrite(BaseModel):
    """Registro recién escrito junto al contenido en claro que lo originó."""

    record: EncryptedRecord
    content: str


class DeleteOutcome(str, Enum):
    DELETED = "deleted"
    NOT_FOUND = "not_found"


# --- Identidades ---------------------------------------------------------------


class Credential(BaseModel):
    """Material de autenticación de un usuario.

    Attributes:
        password_digest (Optional[str]): Hash Argon2id en formato PHC; ausente en
            cuentas solo federadas.
        federated_id (Optional[str]): Identificador del proveedor externo.

    """

    password_digest: Optional[str] = None
    federated_id: Optional[str] = None

    @model_validator(mode="after")
    def _require_one(self) -> "Credential":
        if not self.password_digest and not self.federated_id:
            raise ValueError("la credencial necesita contraseña o identidad federada")
        return self

    @property
    def is_federated_only(self) -> bool:
        return not self.password_digest


class UserAccount(BaseModel):
    id: str
    email: str
    username: str
    credential: Credential
    created_at: datetime
    updated_at: datetime

    def to_principal(self) -> "Principal":
        return Principal(subject_id=self.id, email=self.email, username=self.username)


class Principal(BaseModel):
    """Identidad autenticada que se entrega al código de enrutado."""

    model_config = ConfigDict(frozen=True)

    subject_id: str
    email: str
    username: str


class LinkOutcome(str, Enum):
    LINKED = "linked"
    MATCHED = "matched"
    CREATED = "created"


class LinkDecision(BaseModel):
    outcome: LinkOutcome
    account: UserAccount


# --- Tokens --------------------------------------------------------------------


class TokenPair(BaseModel):
    """Pareja emitida en registro, login y refresco."""

    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int


class RefreshState(str, Enum):
    ACTIVE = "active"
    ROTATED = "rotated"
    REVOKED = "revoked"


class RefreshTokenRecord(BaseModel):
    """Estado de servidor de un refresh token, indexado por el SHA-256 del token."""

    token_id: str
    subject_id: str
    state: RefreshState = RefreshState.ACTIVE
    created_at: datetime
    expires_at: datetime
    replaced_by: Optional[str] = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class AccessClaims(BaseModel):
    """Claims verificados de un access token."""

    model_config = ConfigDict(frozen=True)

    subject_id: str
    token_id: str
    issued_at: datetime
    expires_at: datetime


class AuthFailure(str, Enum):
    NO_CREDENTIAL = "no_credential"
    EXPIRED = "expired"
    INVALID = "invalid"
    PRINCIPAL_NOT_FOUND = "principal_not_found"


class AuthResult(BaseModel):
    """Resultado explícito de `SessionGuard`: principal o fallo tipado."""

    principal: Optional[Principal] = None
    failure: Optional[AuthFailure] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.principal is not None


class AuthSession(BaseModel):
    """Respuesta de registro/login: cuenta pública y pareja de tokens."""

    principal: Principal
    tokens: TokenPair
