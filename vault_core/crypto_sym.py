# --------------------------------------------------------------
# File: crypto_sym.py
# Description: Primitivas AES-GCM para cifrado y descifrado simétrico seguro.
# --------------------------------------------------------------
"""Rutinas de cifrado simétrico para proteger el contenido de los registros."""

from __future__ import annotations

import os
from typing import Optional, Tuple, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from vault_core.errors import AuthenticationFailure, KeyConfigurationError
from vault_core.models import NONCE_LENGTH, TAG_LENGTH, AesGcmResult

KEY_LENGTH = 32


def aes_gcm_encrypt_with_key(
    key: Union[bytes, AESGCM], plaintext: bytes, aad: Optional[bytes] = None
) -> Tuple[bytes, bytes, bytes]:
    """Cifra un bloque con AES-GCM y separa el tag del ciphertext.

    Args:
        key (Union[bytes, AESGCM]): Clave simétrica o instancia `AESGCM` ya creada.
        plaintext (bytes): Datos a cifrar.
        aad (Optional[bytes]): Datos autenticados adicionales.

    Returns:
        Tuple[bytes, bytes, bytes]: Ciphertext sin etiqueta (misma longitud que el
        claro), nonce de 96 bits y tag de 128 bits.

    """

    aes = key if isinstance(key, AESGCM) else AESGCM(key)
    # SECURITY: nonce nuevo del CSPRNG en cada llamada; nunca derivado del contenido.
    nonce = os.urandom(NONCE_LENGTH)
    sealed = aes.encrypt(nonce, plaintext, aad)
    return sealed[:-TAG_LENGTH], nonce, sealed[-TAG_LENGTH:]


def aes_gcm_decrypt_with_key(
    key: Union[bytes, AESGCM],
    nonce: bytes,
    ciphertext: bytes,
    tag: bytes,
    aad: Optional[bytes] = None,
) -> bytes:
    """Verifica el tag y devuelve el claro; nunca entrega bytes sin autenticar.

    Args:
        key (Union[bytes, AESGCM]): Clave simétrica o instancia `AESGCM` ya creada.
        nonce (bytes): Vector de inicialización de 96 bits.
        ciphertext (bytes): Datos cifrados sin etiqueta.
        tag (bytes): Etiqueta de autenticación de 128 bits.
        aad (Optional[bytes]): Datos autenticados adicionales.

    Returns:
        bytes: Mensaje original en claro.

    Raises:
        AuthenticationFailure: Si cualquiera de los campos fue alterado o no tiene
            la longitud esperada. El mensaje es el mismo en todos los casos.

    """

    if len(nonce) != NONCE_LENGTH or len(tag) != TAG_LENGTH:
        raise AuthenticationFailure()
    aes = key if isinstance(key, AESGCM) else AESGCM(key)
    try:
        return aes.decrypt(nonce, ciphertext + tag, aad)
    except InvalidTag:
        raise AuthenticationFailure() from None


class CryptoEngine:
    """Cifrado autenticado de un blob cada vez bajo una clave de proceso.

    La clave se valida una única vez en el constructor; el objeto no guarda más
    estado que la propia clave, por lo que puede compartirse entre hilos.
    """

    def __init__(self, key: bytes) -> None:
        if not isinstance(key, (bytes, bytearray)):
            raise KeyConfigurationError("La clave AES no está configurada")
        if len(key) != KEY_LENGTH:
            raise KeyConfigurationError(
                f"La clave AES debe tener {KEY_LENGTH} bytes (256 bits), tiene {len(key)} bytes"
            )
        self._aes = AESGCM(bytes(key))

    def encrypt(
        self, plaintext: Union[bytes, str], aad: Optional[bytes] = None
    ) -> AesGcmResult:
        """Cifra ``plaintext`` con un nonce aleatorio nuevo.

        Args:
            plaintext (Union[bytes, str]): Contenido en claro; el texto se codifica en UTF-8.
            aad (Optional[bytes]): Datos asociados que quedan autenticados pero no cifrados.

        Returns:
            AesGcmResult: Resultado con `ciphertext`, `nonce` y `tag`.

        """

        if isinstance(plaintext, str):
            plaintext = plaintext.encode("utf-8")
        ciphertext, nonce, tag = aes_gcm_encrypt_with_key(self._aes, plaintext, aad)
        return AesGcmResult(ciphertext=ciphertext, nonce=nonce, tag=tag)

    def decrypt(
        self, ciphertext: bytes, nonce: bytes, tag: bytes, aad: Optional[bytes] = None
    ) -> bytes:
        """Descifra un resultado de `encrypt`; ver `aes_gcm_decrypt_with_key`.

        Raises:
            AuthenticationFailure: Si el tag no verifica.

        """

        return aes_gcm_decrypt_with_key(self._aes, nonce, ciphertext, tag, aad)

    def decrypt_text(
        self, ciphertext: bytes, nonce: bytes, tag: bytes, aad: Optional[bytes] = None
    ) -> str:
        """Igual que `decrypt` pero decodifica el resultado como UTF-8."""

        plaintext = self.decrypt(ciphertext, nonce, tag, aad)
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError:
            raise AuthenticationFailure() from None
