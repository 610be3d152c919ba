# --------------------------------------------------------------
# File: storage.py
# Description: Utilidades de persistencia JSON para registros e identidades.
# --------------------------------------------------------------
"""Adaptadores de almacenamiento para registros cifrados y cuentas de usuario.

Los servicios solo dependen de los protocolos `RecordStore` e `IdentityStore`;
las implementaciones JSON de este módulo sirven para desarrollo y pruebas. Sin
``path`` trabajan solo en memoria.
"""

from __future__ import annotations

import json
import os
import threading
from typing import Any, Dict, List, Optional, Protocol

from vault_core.errors import StorageCorrupted, UserAlreadyExists
from vault_core.models import Principal, UserAccount

__all__ = [
    "IdentityStore",
    "JsonIdentityStore",
    "JsonRecordStore",
    "JsonStore",
    "RecordStore",
    "load_db",
    "save_db",
]


def _ensure_parent_dir(path: str) -> None:
    """Garantiza que exista el directorio padre del archivo de destino."""

    parent = os.path.dirname(path) or "."
    os.makedirs(parent, exist_ok=True)


def load_db(path: str, default: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Carga un archivo JSON y devuelve un diccionario seguro para uso interno.

    Args:
        path (str): Ruta del archivo JSON.
        default (Optional[Dict[str, Any]]): Estructura base si el archivo no existe.

    Returns:
        Dict[str, Any]: Estructura cargada o una copia de la base vacía.

    Raises:
        StorageCorrupted: Si el archivo existe pero no es JSON válido; nunca se
            sustituye por la base vacía para no sobrescribir datos.

    """

    try:
        with open(path, "r", encoding="utf-8") as handler:
            return json.load(handler)
    except FileNotFoundError:
        return json.loads(json.dumps(default or {}))
    except json.JSONDecodeError as exc:
        raise StorageCorrupted(f"{os.path.basename(path)} no es JSON válido") from exc


def save_db(db: Dict[str, Any], path: str) -> None:
    """Guarda la base de datos JSON aplicando escritura atómica."""

    _ensure_parent_dir(path)
    tmp_path = f"{path}.tmp"
    with open(tmp_path, "w", encoding="utf-8") as handler:
        json.dump(db, handler, indent=2, ensure_ascii=False)
    os.replace(tmp_path, path)


class RecordStore(Protocol):
    """Almacén clave-valor de documentos cifrados indexado por (propietario, id)."""

    def insert(self, document: Dict[str, str]) -> None: ...

    def get(self, owner_id: str, record_id: str) -> Optional[Dict[str, str]]: ...

    def list(self, owner_id: str) -> List[Dict[str, str]]: ...

    def replace(self, owner_id: str, record_id: str, document: Dict[str, str]) -> bool: ...

    def delete(self, owner_id: str, record_id: str) -> bool: ...


class IdentityStore(Protocol):
    """Resolución de cuentas por id, email o identidad federada."""

    def add(self, account: UserAccount) -> None: ...

    def update(self, account: UserAccount) -> None: ...

    def get_by_id(self, subject_id: str) -> Optional[UserAccount]: ...

    def get_by_email(self, email: str) -> Optional[UserAccount]: ...

    def get_by_federated_id(self, federated_id: str) -> Optional[UserAccount]: ...

    def get_principal(self, subject_id: str) -> Optional[Principal]: ...


class JsonStore:
    """Base con bloqueo y persistencia atómica opcional.

    Las subclases declaran en ``_default`` las secciones que esperan en el archivo.

    Raises:
        StorageCorrupted: Si el archivo existe pero no tiene la forma esperada.

    """

    _default: Dict[str, Any] = {}

    def __init__(self, path: Optional[str] = None) -> None:
        self._path = path
        self._lock = threading.RLock()
        self._db = load_db(path, self._default) if path else {}
        if not isinstance(self._db, dict):
            raise StorageCorrupted(f"{os.path.basename(path)} no contiene un objeto JSON")
        for section in self._default:
            if not isinstance(self._db.setdefault(section, {}), dict):
                raise StorageCorrupted(f"Sección '{section}' inválida en {os.path.basename(path)}")

    def _flush(self) -> None:
        if self._path:
            save_db(self._db, self._path)


class JsonRecordStore(JsonStore):
    """Documentos de registros cifrados; cada mutación sustituye el documento entero."""

    _default = {"records": {}}

    def insert(self, document: Dict[str, str]) -> None:
        with self._lock:
            records = self._db.setdefault("records", {})
            if document["record_id"] in records:
                raise ValueError("record_id duplicado")
            records[document["record_id"]] = dict(document)
            self._flush()

    def get(self, owner_id: str, record_id: str) -> Optional[Dict[str, str]]:
        with self._lock:
            document = self._db["records"].get(record_id)
            if document is None or document.get("owner_id") != owner_id:
                return None
            return dict(document)

    def list(self, owner_id: str) -> List[Dict[str, str]]:
        with self._lock:
            return [
                dict(doc)
                for doc in self._db["records"].values()
                if doc.get("owner_id") == owner_id
            ]

    def replace(self, owner_id: str, record_id: str, document: Dict[str, str]) -> bool:
        with self._lock:
            current = self._db["records"].get(record_id)
            if current is None or current.get("owner_id") != owner_id:
                return False
            self._db["records"][record_id] = dict(document)
            self._flush()
            return True

    def delete(self, owner_id: str, record_id: str) -> bool:
        with self._lock:
            current = self._db["records"].get(record_id)
            if current is None or current.get("owner_id") != owner_id:
                return False
            del self._db["records"][record_id]
            self._flush()
            return True


class JsonIdentityStore(JsonStore):
    """Cuentas de usuario; garantiza unicidad de email e identidad federada."""

    _default = {"users": {}}

    def _accounts(self) -> List[UserAccount]:
        return [UserAccount.model_validate(raw) for raw in self._db["users"].values()]

    def _find(self, predicate) -> Optional[UserAccount]:
        with self._lock:
            for account in self._accounts():
                if predicate(account):
                    return account
        return None

    def _check_unique(self, account: UserAccount) -> None:
        for other in self._accounts():
            if other.id == account.id:
                continue
            if other.email == account.email:
                raise UserAlreadyExists()
            federated = account.credential.federated_id
            if federated and other.credential.federated_id == federated:
                raise UserAlreadyExists("La identidad federada ya está vinculada a otra cuenta.")

    def add(self, account: UserAccount) -> None:
        with self._lock:
            if account.id in self._db["users"]:
                raise UserAlreadyExists()
            self._check_unique(account)
            self._db["users"][account.id] = account.model_dump(mode="json")
            self._flush()

    def update(self, account: UserAccount) -> None:
        with self._lock:
            if account.id not in self._db["users"]:
                raise KeyError(account.id)
            self._check_unique(account)
            self._db["users"][account.id] = account.model_dump(mode="json")
            self._flush()

    def get_by_id(self, subject_id: str) -> Optional[UserAccount]:
        with self._lock:
            raw = self._db["users"].get(subject_id)
            return UserAccount.model_validate(raw) if raw is not None else None

    def get_by_email(self, email: str) -> Optional[UserAccount]:
        return self._find(lambda account: account.email == email)

    def get_by_federated_id(self, federated_id: str) -> Optional[UserAccount]:
        return self._find(lambda account: account.credential.federated_id == federated_id)

    def get_principal(self, subject_id: str) -> Optional[Principal]:
        account = self.get_by_id(subject_id)
        return account.to_principal() if account else None
