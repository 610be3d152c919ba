# --------------------------------------------------------------
# File: records.py
# Description: Pipeline de alta, lectura, modificación y borrado de registros cifrados.
# --------------------------------------------------------------
"""Orquesta `CryptoEngine` e `IntegrityVerifier` alrededor de cada registro.

Flujo de seguridad:

1. Alta: SHA-256 del claro -> AES-256-GCM -> se guardan ciphertext, nonce, tag y digest.
2. Lectura: se descifra (tag GCM) y después se verifica el digest; solo se
   devuelve el contenido si ambas comprobaciones pasan.
3. Modificación: se repite el alta completa con nonce y digest nuevos.
4. Borrado: eliminación acotada al propietario.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Callable, List, Optional

from vault_core.crypto_sym import CryptoEngine
from vault_core.errors import AuthenticationFailure, MalformedRecord, NotFound
from vault_core.integrity import IntegrityVerifier
from vault_core.logger import get_logger, security_event
from vault_core.models import (
    DeleteOutcome,
    EncryptedRecord,
    ReadResult,
    RecordStatus,
    RecordWrite,
)
from vault_core.storage import RecordStore

logger = get_logger(__name__)

INTEGRITY_PLACEHOLDER = "[VIOLACIÓN DE INTEGRIDAD - El contenido puede haber sido manipulado]"
CORRUPTED_PLACEHOLDER = "[DESCIFRADO FALLIDO - El contenido está corrupto]"
MALFORMED_PLACEHOLDER = "[REGISTRO ILEGIBLE - Faltan campos cifrados]"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def record_aad(owner_id: str, record_id: str) -> bytes:
    """Datos asociados que ligan el ciphertext a su propietario e identificador."""

    return f"{owner_id}:{record_id}".encode("utf-8")


class RecordPipeline:
    """Contrato de escritura/lectura sobre registros y política de divulgación.

    La comprobación de propiedad se hace aquí, no en los llamantes, de modo que
    el pipeline puede exponerse a varios propietarios concurrentes.

    Args:
        engine (CryptoEngine): Cifrado autenticado con la clave del proceso.
        verifier (IntegrityVerifier): Digest independiente del contenido.
        store (RecordStore): Almacén externo de documentos.
        clock (Optional[Callable[[], datetime]]): Reloj UTC inyectable.

    """

    def __init__(
        self,
        engine: CryptoEngine,
        verifier: IntegrityVerifier,
        store: RecordStore,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._engine = engine
        self._verifier = verifier
        self._store = store
        self._clock = clock or _utcnow

    # --- escritura -----------------------------------------------------------

    def _seal(
        self,
        owner_id: str,
        record_id: str,
        plaintext: str,
        created_at: datetime,
        updated_at: datetime,
    ) -> EncryptedRecord:
        # El digest se calcula antes de cifrar, sobre el contenido original.
        digest = self._verifier.digest(plaintext)
        sealed = self._engine.encrypt(plaintext, aad=record_aad(owner_id, record_id))
        return EncryptedRecord(
            record_id=record_id,
            owner_id=owner_id,
            ciphertext=sealed.ciphertext,
            nonce=sealed.nonce,
            auth_tag=sealed.tag,
            integrity_digest=digest,
            created_at=created_at,
            updated_at=updated_at,
        )

    def create(self, owner_id: str, plaintext: str) -> RecordWrite:
        """Cifra y guarda un registro nuevo.

        Args:
            owner_id (str): Propietario del registro.
            plaintext (str): Contenido en claro.

        Returns:
            RecordWrite: Registro persistido y el contenido original, para evitar
            un descifrado redundante en el llamante.

        """

        now = self._clock()
        record = self._seal(owner_id, uuid.uuid4().hex, plaintext, now, now)
        self._store.insert(record.to_document())
        logger.info("Registro %s creado por %s", record.record_id, owner_id)
        return RecordWrite(record=record, content=plaintext)

    def update(self, owner_id: str, record_id: str, new_plaintext: str) -> RecordWrite:
        """Sustituye los cuatro campos cifrados de un registro existente.

        Raises:
            NotFound: Si el registro no existe o pertenece a otro propietario.

        """

        current = self._store.get(owner_id, record_id)
        if current is None:
            raise NotFound("Registro no encontrado")
        try:
            created_at = EncryptedRecord.from_document(current).created_at
        except MalformedRecord:
            # Un documento ilegible se sobrescribe entero; se conserva solo su id.
            created_at = self._clock()
        record = self._seal(owner_id, record_id, new_plaintext, created_at, self._clock())
        if not self._store.replace(owner_id, record_id, record.to_document()):
            raise NotFound("Registro no encontrado")
        logger.info("Registro %s actualizado por %s", record_id, owner_id)
        return RecordWrite(record=record, content=new_plaintext)

    def delete(self, owner_id: str, record_id: str) -> DeleteOutcome:
        """Elimina un registro del propietario, distinguiendo borrado de inexistente."""

        if not self._store.delete(owner_id, record_id):
            return DeleteOutcome.NOT_FOUND
        logger.info("Registro %s eliminado por %s", record_id, owner_id)
        return DeleteOutcome.DELETED

    # --- lectura -------------------------------------------------------------

    def read(self, owner_id: str, record: EncryptedRecord) -> ReadResult:
        """Descifra y verifica un registro, clasificándolo como limpio, corrupto o manipulado.

        Args:
            owner_id (str): Propietario que solicita la lectura.
            record (EncryptedRecord): Registro bien formado.

        Returns:
            ReadResult: Contenido en claro si es ``CLEAN``; en otro caso un
            marcador no sensible en lugar del contenido.

        Raises:
            NotFound: Si el registro pertenece a otro propietario.

        """

        if record.owner_id != owner_id:
            raise NotFound("Registro no encontrado")

        try:
            plaintext = self._engine.decrypt_text(
                record.ciphertext,
                record.nonce,
                record.auth_tag,
                aad=record_aad(record.owner_id, record.record_id),
            )
        except AuthenticationFailure:
            security_event(
                "Descifrado de registro fallido",
                {"record_id": record.record_id, "owner_id": owner_id},
            )
            return self._flagged(
                record, CORRUPTED_PLACEHOLDER, RecordStatus.CORRUPTED, False, "decryption_failed"
            )

        if not self._verifier.verify(plaintext, record.integrity_digest):
            security_event(
                "Verificación de integridad fallida",
                {"record_id": record.record_id, "owner_id": owner_id},
            )
            return self._flagged(
                record, INTEGRITY_PLACEHOLDER, RecordStatus.TAMPERED, True, "integrity_mismatch"
            )

        return ReadResult(
            record_id=record.record_id,
            content=plaintext,
            status=RecordStatus.CLEAN,
            tampered=False,
            decryption_ok=True,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    @staticmethod
    def _flagged(
        record: EncryptedRecord,
        placeholder: str,
        status: RecordStatus,
        decryption_ok: bool,
        error: str,
    ) -> ReadResult:
        return ReadResult(
            record_id=record.record_id,
            content=placeholder,
            status=status,
            tampered=True,
            decryption_ok=decryption_ok,
            error=error,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    def get(self, owner_id: str, record_id: str) -> ReadResult:
        """Carga un registro del almacén y lo lee.

        Raises:
            NotFound: Si no existe para ese propietario.
            MalformedRecord: Si el documento almacenado no está bien formado.

        """

        document = self._store.get(owner_id, record_id)
        if document is None:
            raise NotFound("Registro no encontrado")
        return self.read(owner_id, EncryptedRecord.from_document(document))

    def read_all(self, owner_id: str) -> List[ReadResult]:
        """Lee todos los registros del propietario, del más reciente al más antiguo.

        Cada registro se procesa de forma independiente: un fallo en uno se
        convierte en su marca de estado y nunca interrumpe el resto del lote.
        """

        results: List[ReadResult] = []
        for document in self._store.list(owner_id):
            try:
                record = EncryptedRecord.from_document(document)
            except MalformedRecord:
                security_event(
                    "Registro mal formado en el almacén",
                    {"record_id": document.get("record_id"), "owner_id": owner_id},
                )
                results.append(
                    ReadResult(
                        record_id=str(document.get("record_id", "")),
                        content=MALFORMED_PLACEHOLDER,
                        status=RecordStatus.MALFORMED,
                        tampered=True,
                        decryption_ok=False,
                        error="malformed_record",
                    )
                )
                continue
            results.append(self.read(owner_id, record))

        epoch = datetime.min.replace(tzinfo=UTC)
        results.sort(key=lambda item: item.created_at or epoch, reverse=True)
        return results
