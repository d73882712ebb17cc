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

import hashlib
import logging

import pytest
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from m32fw import cipher
from m32fw.errors import CryptoError, FormatError
from m32fw.image import FACTORY_IV
from tests.constants import random_bytes

PASSWORD = "6b29f1d663a21b35fb45b69a42649f5e"


def test_derive_key_and_iv():
    salt = cipher.DEFAULT_SALT
    digest = hashlib.sha256(PASSWORD.encode() + salt).digest()
    key, iv = cipher.derive_key_and_iv(PASSWORD, salt)
    assert key == digest[:16]
    assert iv == digest[16:32]
    assert cipher.derive_key_and_iv(PASSWORD.encode(), salt) == (key, iv)


def test_derive_longer_material():
    salt = cipher.DEFAULT_SALT
    d1 = hashlib.sha256(PASSWORD.encode() + salt).digest()
    d2 = hashlib.sha256(d1 + PASSWORD.encode() + salt).digest()
    key, iv = cipher.derive_key_and_iv(PASSWORD, salt, 32, 16)
    assert key == d1
    assert iv == d2[:16]


def test_derive_bad_salt():
    with pytest.raises(CryptoError):
        cipher.derive_key_and_iv(PASSWORD, b'short')


@pytest.mark.parametrize("size", [0, 1, 15, 16, 17, 1041])
def test_encrypt_decrypt(size):
    plaintext = random_bytes(size, seed=size)
    salt_header, ciphertext = cipher.encrypt(plaintext, PASSWORD, FACTORY_IV)
    assert salt_header == b'Salted__' + cipher.DEFAULT_SALT
    assert len(ciphertext) == (size // 16 + 1) * 16
    assert cipher.decrypt(salt_header + ciphertext, PASSWORD,
                          FACTORY_IV) == plaintext


def test_explicit_iv_is_used():
    plaintext = bytes(range(32))
    _, ciphertext = cipher.encrypt(plaintext, PASSWORD, FACTORY_IV)
    key, _ = cipher.derive_key_and_iv(PASSWORD, cipher.DEFAULT_SALT)
    aes = Cipher(algorithms.AES(key), modes.CBC(FACTORY_IV),
                 backend=default_backend()).encryptor()
    expected = aes.update(plaintext + bytes([16] * 16)) + aes.finalize()
    assert ciphertext == expected


def test_decrypt_uses_embedded_salt():
    salt = bytes(8)
    salt_header, ciphertext = cipher.encrypt(b'firmware', PASSWORD,
                                             FACTORY_IV, salt=salt)
    assert salt_header == b'Salted__' + salt
    assert cipher.decrypt(salt_header + ciphertext, PASSWORD,
                          FACTORY_IV) == b'firmware'


def test_decrypt_short_input():
    with pytest.raises(FormatError):
        cipher.decrypt(b'Salted__1234', PASSWORD, FACTORY_IV)


def test_decrypt_partial_block():
    salt_header, ciphertext = cipher.encrypt(bytes(40), PASSWORD, FACTORY_IV)
    with pytest.raises(CryptoError):
        cipher.decrypt(salt_header + ciphertext[:-1], PASSWORD, FACTORY_IV)


def test_decrypt_bad_padding():
    # A single block ending in 0x00 never carries valid PKCS#7 padding.
    key, _ = cipher.derive_key_and_iv(PASSWORD, cipher.DEFAULT_SALT)
    aes = Cipher(algorithms.AES(key), modes.CBC(FACTORY_IV),
                 backend=default_backend()).encryptor()
    ciphertext = aes.update(bytes(16)) + aes.finalize()
    with pytest.raises(CryptoError):
        cipher.decrypt(b'Salted__' + cipher.DEFAULT_SALT + ciphertext,
                       PASSWORD, FACTORY_IV)


@pytest.mark.parametrize("iv", [b'', bytes(15), bytes(17)])
def test_bad_iv_size(iv):
    with pytest.raises(CryptoError):
        cipher.encrypt(b'data', PASSWORD, iv)
    with pytest.raises(CryptoError):
        cipher.decrypt(b'Salted__' + cipher.DEFAULT_SALT + bytes(16),
                       PASSWORD, iv)


def test_missing_salted_tag_warns(caplog):
    salt_header, ciphertext = cipher.encrypt(b'payload', PASSWORD, FACTORY_IV)
    framed = b'Pepper__' + salt_header[8:] + ciphertext
    with caplog.at_level(logging.WARNING):
        assert cipher.decrypt(framed, PASSWORD, FACTORY_IV) == b'payload'
    assert "Salted__" in caplog.text
