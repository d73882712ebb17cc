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
Signing and verification with the device key pairs.
"""

import logging

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import (
    RSAPrivateKey, RSAPublicKey)

from ..errors import CryptoError
from .rsa import RSA, RSAPublic, RSAUsageError

logger = logging.getLogger(__name__)

SIGNATURE_SIZE = 256


def _check_size(key):
    if key.sig_len() != SIGNATURE_SIZE:
        raise CryptoError("Unsupported RSA key size: {} bits, expected {}"
                          .format(key.key_size(), SIGNATURE_SIZE * 8))
    return key


def load_private(pem, passphrase):
    """Load a passphrase protected RSA private key from PEM data."""
    try:
        pk = serialization.load_pem_private_key(
                pem,
                password=passphrase,
                backend=default_backend())
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise CryptoError("Unable to load private key: {}".format(e)) from e
    if not isinstance(pk, RSAPrivateKey):
        raise CryptoError("Unsupported private key type: {}"
                          .format(type(pk).__name__))
    return _check_size(RSA(pk))


def load_public(pem):
    try:
        pk = serialization.load_pem_public_key(pem, backend=default_backend())
    except (ValueError, UnsupportedAlgorithm) as e:
        raise CryptoError("Unable to load public key: {}".format(e)) from e
    if not isinstance(pk, RSAPublicKey):
        raise CryptoError("Unsupported public key type: {}"
                          .format(type(pk).__name__))
    return _check_size(RSAPublic(pk))


def sign(buffer, device):
    """Sign `buffer` with the private key of `device`."""
    key = load_private(device.private_key, device.passphrase)
    try:
        signature = key.sign(bytes(buffer))
    except ValueError as e:
        raise CryptoError("Signing failed: {}".format(e)) from e
    if len(signature) != SIGNATURE_SIZE:
        raise CryptoError("Invalid signature length. Actual: {}, expected: {}"
                          .format(len(signature), SIGNATURE_SIZE))
    logger.debug("Signed %d bytes with the %s key", len(buffer), device.name)
    return signature


def verify(buffer, signature, device):
    """Return True if `signature` over `buffer` matches the device key.

    Any failure, including an unusable key, counts as a mismatch.
    """
    if len(signature) != SIGNATURE_SIZE:
        logger.error("Signature has %d bytes, expected %d",
                     len(signature), SIGNATURE_SIZE)
        return False
    try:
        key = load_public(device.public_key)
        key.verify(signature, bytes(buffer))
    except CryptoError as e:
        logger.error("%s", e)
        return False
    except InvalidSignature:
        logger.debug("Signature mismatch for the %s key", device.name)
        return False
    return True


__all__ = ['RSA', 'RSAPublic', 'RSAUsageError', 'SIGNATURE_SIZE',
           'load_private', 'load_public', 'sign', 'verify']
