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
RSA key management
"""

import hashlib

from cryptography.hazmat.primitives.asymmetric.padding import PKCS1v15
from cryptography.hazmat.primitives.hashes import SHA512


class RSAUsageError(Exception):
    pass


class RSAPublic():
    """Wrapper around an RSA public key."""

    def __init__(self, key):
        self.key = key

    def _unsupported(self, name):
        raise RSAUsageError("Operation {} requires private key".format(name))

    def _get_public(self):
        return self.key

    def key_size(self):
        return self.key.key_size

    def sig_len(self):
        return self.key_size() // 8

    def sign(self, payload):
        self._unsupported('sign')

    def verify(self, signature, payload):
        """Check a signature over the SHA-512 digest of payload.

        Raises InvalidSignature on mismatch.
        """
        digest = hashlib.sha512(payload).digest()
        self._get_public().verify(bytes(signature), digest, PKCS1v15(), SHA512())


class RSA(RSAPublic):
    """Wrapper around an RSA private key."""

    def _get_public(self):
        return self.key.public_key()

    def sign(self, payload):
        # The vendor signs the binary SHA-512 digest of the payload as if
        # it were the message, so the digest gets hashed a second time.
        digest = hashlib.sha512(payload).digest()
        return self.key.sign(digest, PKCS1v15(), SHA512())
