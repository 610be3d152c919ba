# --------------------------------------------------------------
# File: integrity.py
# Description: Huella SHA-256 del contenido en claro para detectar manipulación.
# --------------------------------------------------------------
"""Segunda señal de integridad, independiente del tag de AES-GCM.

El digest se calcula sobre el contenido original antes de cifrar y se guarda
junto al registro. Al leer, tras descifrar, se recalcula y se compara: así se
detectan registros escritos por rutas que no pasaron por `CryptoEngine`.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Union

from vault_core.models import DIGEST_LENGTH


def _as_bytes(content: Union[bytes, str]) -> bytes:
    return content.encode("utf-8") if isinstance(content, str) else content


def sha256_hex(content: Union[bytes, str]) -> str:
    """Calcula el SHA-256 de ``content`` en hex minúscula (codificación persistida)."""

    return hashlib.sha256(_as_bytes(content)).hexdigest()


class IntegrityVerifier:
    """Digest determinista y resistente a colisiones del contenido en claro.

    No es un hash de contraseñas: su coste debe ser mínimo porque se ejecuta en
    cada lectura de registro.
    """

    def digest(self, content: Union[bytes, str]) -> bytes:
        """Devuelve los 32 bytes del SHA-256 de ``content``."""

        return hashlib.sha256(_as_bytes(content)).digest()

    def hexdigest(self, content: Union[bytes, str]) -> str:
        return sha256_hex(content)

    def verify(self, content: Union[bytes, str], expected: bytes) -> bool:
        """Recalcula el digest y lo compara con el almacenado.

        La comparación usa `hmac.compare_digest`, aunque el digest no es secreto.

        Args:
            content (Union[bytes, str]): Contenido descifrado.
            expected (bytes): Digest guardado con el registro.

        Returns:
            bool: ``True`` solo si ambos digests coinciden. Un digest de longitud
            o tipo incorrecto devuelve ``False``.

        """

        if not isinstance(expected, (bytes, bytearray)) or len(expected) != DIGEST_LENGTH:
            return False
        return hmac.compare_digest(self.digest(content), bytes(expected))
