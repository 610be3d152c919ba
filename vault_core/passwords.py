# --------------------------------------------------------------
# File: passwords.py
# Description: Hash unidireccional de contraseñas con Argon2id.
# --------------------------------------------------------------
"""Almacén de credenciales: hash lento con sal y verificación sin excepciones."""

from __future__ import annotations

from typing import Optional

from argon2 import PasswordHasher, exceptions as argon_exc

from vault_core.models import Credential

# Configuración común para el hash Argon2id de contraseñas.
DEFAULT_TIME_COST = 3
DEFAULT_MEMORY_COST = 64 * 1024
DEFAULT_PARALLELISM = 1
DEFAULT_HASH_LEN = 32


class CredentialStore:
    """Hash y verificación de contraseñas.

    Solo sirve para contraseñas; para integridad de contenido se usa
    `IntegrityVerifier`, mucho más barato.

    Args:
        time_cost (int): Iteraciones Argon2id.
        memory_cost (int): Memoria en KiB por hash.
        parallelism (int): Hilos por hash.

    """

    def __init__(
        self,
        *,
        time_cost: int = DEFAULT_TIME_COST,
        memory_cost: int = DEFAULT_MEMORY_COST,
        parallelism: int = DEFAULT_PARALLELISM,
        hash_len: int = DEFAULT_HASH_LEN,
    ) -> None:
        self._hasher = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            hash_len=hash_len,
        )

    def hash(self, password: str) -> str:
        """Devuelve el hash PHC (incluye sal aleatoria y parámetros de coste)."""

        return self._hasher.hash(password)

    def verify(self, password: str, digest: Optional[str]) -> bool:
        """Comprueba ``password`` contra ``digest`` sin lanzar nunca excepciones.

        Args:
            password (str): Contraseña candidata.
            digest (Optional[str]): Hash almacenado; ``None`` en cuentas federadas.

        Returns:
            bool: ``True`` solo si la contraseña coincide.

        """

        if not digest or not isinstance(password, (str, bytes)):
            return False
        try:
            return self._hasher.verify(digest, password)
        except (argon_exc.VerificationError, argon_exc.InvalidHashError, TypeError, ValueError):
            return False

    def verify_credential(self, credential: Credential, password: str) -> bool:
        """Verifica una credencial completa; las solo federadas fallan siempre."""

        if credential.is_federated_only:
            return False
        return self.verify(password, credential.password_digest)

    def needs_rehash(self, digest: str) -> bool:
        """Indica si el hash se generó con parámetros distintos de los actuales."""

        try:
            return self._hasher.check_needs_rehash(digest)
        except (argon_exc.InvalidHashError, ValueError):
            return True
