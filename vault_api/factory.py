# --------------------------------------------------------------
# File: factory.py
# Description: Raíz de composición que construye los servicios a partir de Settings.
# --------------------------------------------------------------
"""Construye la pila completa inyectando claves y almacenes explícitamente."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from vault_core.config import Settings, load_settings
from vault_core.crypto_sym import CryptoEngine
from vault_core.integrity import IntegrityVerifier
from vault_core.logger import configure_logging, get_logger
from vault_core.passwords import CredentialStore
from vault_core.storage import IdentityStore, JsonIdentityStore, JsonRecordStore, RecordStore
from vault_api.auth import AccountService
from vault_api.records import RecordPipeline
from vault_api.session import SessionGuard
from vault_api.tokens import RefreshTokenStore, TokenService

logger = get_logger(__name__)


@dataclass
class VaultServices:
    """Fachada con los servicios que consumen los controladores."""

    settings: Settings
    records: RecordPipeline
    accounts: AccountService
    tokens: TokenService
    guard: SessionGuard
    identities: IdentityStore


def build_services(
    settings: Optional[Settings] = None,
    *,
    record_store: Optional[RecordStore] = None,
    identity_store: Optional[IdentityStore] = None,
    token_store: Optional[RefreshTokenStore] = None,
) -> VaultServices:
    """Crea todos los componentes y los conecta.

    Args:
        settings (Optional[Settings]): Configuración; si falta se carga del entorno
            (y un error de claves aborta el arranque con `KeyConfigurationError`).
        record_store (Optional[RecordStore]): Almacén de registros alternativo.
        identity_store (Optional[IdentityStore]): Almacén de cuentas alternativo.
        token_store (Optional[RefreshTokenStore]): Estado de refresh tokens; por
            defecto ``refresh_tokens.json`` bajo ``STORAGE_PATH``.

    Returns:
        VaultServices: Servicios listos para usar.

    """

    settings = settings or load_settings()
    configure_logging(settings.log_level)

    base = settings.storage_path

    def data_path(name: str) -> Optional[str]:
        return os.path.join(base, name) if base else None

    if record_store is None:
        record_store = JsonRecordStore(data_path("records.json"))
    if identity_store is None:
        identity_store = JsonIdentityStore(data_path("users.json"))
    if token_store is None:
        token_store = RefreshTokenStore(data_path("refresh_tokens.json"))

    engine = CryptoEngine(settings.aes_key)
    credentials = CredentialStore(
        time_cost=settings.argon2_time_cost,
        memory_cost=settings.argon2_memory_kib,
        parallelism=settings.argon2_parallelism,
    )
    tokens = TokenService(
        settings.jwt_secret,
        token_store,
        access_ttl=timedelta(minutes=settings.access_token_ttl_minutes),
        refresh_ttl=timedelta(days=settings.refresh_token_ttl_days),
        issuer=settings.jwt_issuer,
        audience=settings.jwt_audience,
        revoke_on_reuse=settings.revoke_sessions_on_reuse,
    )

    logger.info(
        "Servicios inicializados: AES-256-GCM, Argon2id t=%d m=%dKiB, access=%dmin refresh=%dd",
        settings.argon2_time_cost,
        settings.argon2_memory_kib,
        settings.access_token_ttl_minutes,
        settings.refresh_token_ttl_days,
    )
    return VaultServices(
        settings=settings,
        records=RecordPipeline(engine, IntegrityVerifier(), record_store),
        accounts=AccountService(identity_store, credentials, tokens),
        tokens=tokens,
        guard=SessionGuard(tokens, identity_store),
        identities=identity_store,
    )
