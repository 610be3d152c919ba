# --------------------------------------------------------------
# File: test_records.py
# Description: Pruebas del pipeline de registros cifrados y su política de integridad.
# --------------------------------------------------------------

import base64
from concurrent.futures import ThreadPoolExecutor

import pytest
from pydantic import ValidationError

from vault_api.records import (
    CORRUPTED_PLACEHOLDER,
    INTEGRITY_PLACEHOLDER,
    MALFORMED_PLACEHOLDER,
)
from vault_core.errors import MalformedRecord, NotFound
from vault_core.integrity import sha256_hex
from vault_core.models import DeleteOutcome, EncryptedRecord, RecordStatus

OWNER = "alice"


def _flip_b64(value: str) -> str:
    raw = bytearray(base64.b64decode(value))
    raw[0] ^= 0x01
    return base64.b64encode(bytes(raw)).decode("ascii")


def _mutate(store, record_id, **changes):
    document = store.get(OWNER, record_id)
    document.update(changes)
    assert store.replace(OWNER, record_id, document)


def test_create_then_read_clean(pipeline, record_store):
    """Un registro recién creado tiene los cuatro campos y se lee limpio.

    Returns:
        None: Se verifican el documento almacenado y el resultado de lectura.
    """
    written = pipeline.create(OWNER, "buy milk")
    assert written.content == "buy milk"

    document = record_store.get(OWNER, written.record.record_id)
    for field in ("ciphertext", "nonce", "auth_tag", "integrity_digest"):
        assert document[field]
    assert document["integrity_digest"] == sha256_hex("buy milk")
    assert "buy milk" not in str(document)

    result = pipeline.get(OWNER, written.record.record_id)
    assert result.content == "buy milk"
    assert result.status is RecordStatus.CLEAN
    assert result.tampered is False
    assert result.decryption_ok is True
    assert result.error is None


def test_corrupted_tag_is_reported_as_decryption_failure(pipeline, record_store):
    """Un tag alterado produce el marcador de corrupción, nunca el contenido.

    Returns:
        None: Las aserciones revisan estado, marcador y tipo de error.
    """
    written = pipeline.create(OWNER, "buy milk")
    record_id = written.record.record_id
    _mutate(record_store, record_id, auth_tag=_flip_b64(record_store.get(OWNER, record_id)["auth_tag"]))

    result = pipeline.get(OWNER, record_id)
    assert result.status is RecordStatus.CORRUPTED
    assert result.content == CORRUPTED_PLACEHOLDER
    assert result.tampered is True
    assert result.decryption_ok is False
    assert result.error == "decryption_failed"


def test_corrupted_ciphertext_is_reported_as_decryption_failure(pipeline, record_store):
    written = pipeline.create(OWNER, "buy milk")
    record_id = written.record.record_id
    original = record_store.get(OWNER, record_id)["ciphertext"]
    _mutate(record_store, record_id, ciphertext=_flip_b64(original))

    result = pipeline.get(OWNER, record_id)
    assert result.status is RecordStatus.CORRUPTED
    assert "buy" not in result.content


def test_altered_digest_is_reported_as_tampered(pipeline, record_store):
    """Con el cifrado intacto pero otro digest, descifra bien y marca manipulación.

    Returns:
        None: Se comprueba que el contenido descifrado no se entrega.
    """
    written = pipeline.create(OWNER, "buy milk")
    record_id = written.record.record_id
    _mutate(record_store, record_id, integrity_digest=sha256_hex("buy beer"))

    result = pipeline.get(OWNER, record_id)
    assert result.status is RecordStatus.TAMPERED
    assert result.content == INTEGRITY_PLACEHOLDER
    assert result.tampered is True
    assert result.decryption_ok is True
    assert result.error == "integrity_mismatch"


def test_record_transplanted_to_other_id_does_not_decrypt(pipeline, record_store):
    first = pipeline.create(OWNER, "buy milk")
    second = pipeline.create(OWNER, "walk dog")
    source = record_store.get(OWNER, first.record.record_id)
    _mutate(
        record_store,
        second.record.record_id,
        ciphertext=source["ciphertext"],
        nonce=source["nonce"],
        auth_tag=source["auth_tag"],
        integrity_digest=source["integrity_digest"],
    )

    assert pipeline.get(OWNER, second.record.record_id).status is RecordStatus.CORRUPTED


def test_read_checks_ownership(pipeline):
    written = pipeline.create(OWNER, "buy milk")
    with pytest.raises(NotFound):
        pipeline.read("mallory", written.record)
    with pytest.raises(NotFound):
        pipeline.get("mallory", written.record.record_id)


def test_read_all_processes_records_independently(pipeline, record_store):
    """Un registro corrupto o ilegible no interrumpe la lectura del resto del lote.

    Returns:
        None: Se comprueba el estado individual de cada registro.
    """
    clean = pipeline.create(OWNER, "buy milk").record.record_id
    corrupted = pipeline.create(OWNER, "walk dog").record.record_id
    broken = pipeline.create(OWNER, "call mum").record.record_id
    pipeline.create("bob", "not mine")

    _mutate(record_store, corrupted, auth_tag=_flip_b64(record_store.get(OWNER, corrupted)["auth_tag"]))
    document = record_store.get(OWNER, broken)
    del document["auth_tag"]
    assert record_store.replace(OWNER, broken, document)

    results = {item.record_id: item for item in pipeline.read_all(OWNER)}
    assert set(results) == {clean, corrupted, broken}
    assert results[clean].status is RecordStatus.CLEAN
    assert results[clean].content == "buy milk"
    assert results[corrupted].status is RecordStatus.CORRUPTED
    assert results[broken].status is RecordStatus.MALFORMED
    assert results[broken].content == MALFORMED_PLACEHOLDER


def test_get_malformed_record_raises(pipeline, record_store):
    record_id = pipeline.create(OWNER, "buy milk").record.record_id
    _mutate(record_store, record_id, nonce="AAAA")
    with pytest.raises(MalformedRecord):
        pipeline.get(OWNER, record_id)


def test_update_replaces_all_fields(pipeline, record_store):
    """La modificación genera nonce y digest nuevos y conserva la fecha de alta.

    Returns:
        None: Se comparan los documentos anterior y posterior.
    """
    written = pipeline.create(OWNER, "buy milk")
    record_id = written.record.record_id
    before = record_store.get(OWNER, record_id)

    updated = pipeline.update(OWNER, record_id, "buy oat milk")
    after = record_store.get(OWNER, record_id)

    assert updated.content == "buy oat milk"
    for field in ("ciphertext", "nonce", "auth_tag", "integrity_digest"):
        assert after[field] != before[field]
    assert after["created_at"] == before["created_at"]
    assert pipeline.get(OWNER, record_id).content == "buy oat milk"


def test_update_same_content_uses_fresh_nonce(pipeline, record_store):
    record_id = pipeline.create(OWNER, "buy milk").record.record_id
    before = record_store.get(OWNER, record_id)["nonce"]
    pipeline.update(OWNER, record_id, "buy milk")
    assert record_store.get(OWNER, record_id)["nonce"] != before


def test_update_other_owner_is_not_found(pipeline):
    record_id = pipeline.create(OWNER, "buy milk").record.record_id
    with pytest.raises(NotFound):
        pipeline.update("mallory", record_id, "owned")
    with pytest.raises(NotFound):
        pipeline.update(OWNER, "missing", "x")
    assert pipeline.get(OWNER, record_id).content == "buy milk"


def test_delete_reports_not_found_distinctly(pipeline):
    record_id = pipeline.create(OWNER, "buy milk").record.record_id
    assert pipeline.delete("mallory", record_id) is DeleteOutcome.NOT_FOUND
    assert pipeline.delete(OWNER, record_id) is DeleteOutcome.DELETED
    assert pipeline.delete(OWNER, record_id) is DeleteOutcome.NOT_FOUND
    with pytest.raises(NotFound):
        pipeline.get(OWNER, record_id)


def test_concurrent_updates_leave_a_consistent_record(pipeline):
    """Actualizaciones simultáneas dejan siempre un registro íntegro (última escritura gana).

    Returns:
        None: La lectura final es limpia y coincide con una de las escrituras.
    """
    record_id = pipeline.create(OWNER, "v0").record.record_id
    contents = [f"v{i}" for i in range(1, 21)]
    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda text: pipeline.update(OWNER, record_id, text), contents))

    result = pipeline.get(OWNER, record_id)
    assert result.status is RecordStatus.CLEAN
    assert result.content in contents


def test_partial_record_is_a_construction_error(pipeline):
    record = pipeline.create(OWNER, "buy milk").record
    data = record.model_dump()
    data["auth_tag"] = data["auth_tag"][:8]
    with pytest.raises(ValidationError):
        EncryptedRecord(**data)
    del data["auth_tag"]
    with pytest.raises(ValidationError):
        EncryptedRecord(**data)


def test_document_roundtrip_preserves_record(pipeline):
    record = pipeline.create(OWNER, "buy milk").record
    assert EncryptedRecord.from_document(record.to_document()) == record


def test_read_all_flags_naive_timestamp_without_aborting(pipeline, record_store):
    """Un documento con fecha sin zona horaria se marca como ilegible sin romper el lote.

    Returns:
        None: El resto de registros se lee con normalidad.
    """
    clean = pipeline.create(OWNER, "buy milk").record.record_id
    naive = pipeline.create(OWNER, "walk dog").record.record_id
    _mutate(record_store, naive, created_at="2024-01-01T00:00:00")

    results = {item.record_id: item for item in pipeline.read_all(OWNER)}
    assert results[clean].status is RecordStatus.CLEAN
    assert results[naive].status is RecordStatus.MALFORMED
    with pytest.raises(MalformedRecord):
        pipeline.get(OWNER, naive)
