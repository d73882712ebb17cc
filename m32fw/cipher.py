# SPDX-License-Identifier: Apache-2.0
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
AES-128-CBC encryption of the inner firmware container.

The ciphertext is framed the way `openssl enc` writes salted output:
the ASCII tag "Salted__", an 8-byte salt, then the ciphertext. The key is
derived from the device firmware key with EVP_BytesToKey (SHA-256, one
iteration). EVP_BytesToKey also yields an IV, but the firmware format uses
the IV carried in the factory image instead, so the derived IV is dropped.
"""

import hashlib
import logging

from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .errors import CryptoError, FormatError

logger = logging.getLogger(__name__)

SALTED_MAGIC = b'Salted__'
SALT_SIZE = 8
SALT_HEADER_SIZE = len(SALTED_MAGIC) + SALT_SIZE
AES_KEY_SIZE = 16
AES_BLOCK_SIZE = 16

# Salt used by the vendor tooling for every build.
DEFAULT_SALT = bytes([0x65, 0xfc, 0x43, 0xbc, 0x67, 0xa3, 0x23, 0x35])


def _password_bytes(password):
    if isinstance(password, str):
        return password.encode('ascii')
    return bytes(password)


def derive_key_and_iv(password, salt, key_size=AES_KEY_SIZE,
                      iv_size=AES_BLOCK_SIZE):
    """OpenSSL EVP_BytesToKey with SHA-256 and a single iteration."""
    if len(salt) != SALT_SIZE:
        raise CryptoError("Salt must be {} bytes, got {}"
                          .format(SALT_SIZE, len(salt)))
    password = _password_bytes(password)
    derived = b''
    block = b''
    while len(derived) < key_size + iv_size:
        block = hashlib.sha256(block + password + bytes(salt)).digest()
        derived += block
    return derived[:key_size], derived[key_size:key_size + iv_size]


def _cipher(key, iv):
    if len(iv) != AES_BLOCK_SIZE:
        raise CryptoError("IV must be {} bytes, got {}"
                          .format(AES_BLOCK_SIZE, len(iv)))
    return Cipher(algorithms.AES(key), modes.CBC(bytes(iv)),
                  backend=default_backend())


def encrypt(plaintext, password, iv, salt=DEFAULT_SALT):
    """Encrypt `plaintext`, returning (salt header, ciphertext)."""
    key, _ = derive_key_and_iv(password, salt)
    padder = padding.PKCS7(AES_BLOCK_SIZE * 8).padder()
    padded = padder.update(bytes(plaintext)) + padder.finalize()
    encryptor = _cipher(key, iv).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()
    logger.debug("Encrypted %d bytes into %d bytes", len(plaintext),
                 len(ciphertext))
    return SALTED_MAGIC + bytes(salt), ciphertext


def decrypt(framed, password, iv):
    """Decrypt salted ciphertext using the explicit `iv`."""
    if len(framed) < SALT_HEADER_SIZE:
        raise FormatError("Encrypted data too short for the salt header "
                          "({} bytes)".format(len(framed)))
    if bytes(framed[:len(SALTED_MAGIC)]) != SALTED_MAGIC:
        logger.warning("Encrypted data does not start with %r",
                       SALTED_MAGIC)
    salt = bytes(framed[len(SALTED_MAGIC):SALT_HEADER_SIZE])
    key, _ = derive_key_and_iv(password, salt)
    ciphertext = bytes(framed[SALT_HEADER_SIZE:])
    decryptor = _cipher(key, iv).decryptor()
    unpadder = padding.PKCS7(AES_BLOCK_SIZE * 8).unpadder()
    try:
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        plaintext = unpadder.update(padded) + unpadder.finalize()
    except ValueError as e:
        raise CryptoError("Decryption failed: {}".format(e)) from e
    logger.debug("Decrypted %d bytes into %d bytes", len(ciphertext),
                 len(plaintext))
    return plaintext
