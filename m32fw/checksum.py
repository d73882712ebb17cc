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
Checksums used by the vendor headers.
"""

import logging

logger = logging.getLogger(__name__)


def byte_sum_xor(data):
    """Return the byte sum (mod 256) and the XOR of bytes 0-13."""
    total = 0
    xor = 0
    for b in data[:14]:
        total = (total + b) & 0xff
        xor ^= b
    return total, xor


def sum16_carry(data, length=None, inverted=False):
    """Sum little endian 16-bit words with a single end-around carry.

    When adding a word wraps the 16-bit total, the total is incremented
    once. For an odd length the high byte of the last word is taken from
    data[length] if the buffer is long enough, otherwise it is zero.
    With inverted set, 0xffff minus the sum is returned, which is the
    value that makes the word sum of a header including its own checksum
    field come out as 0xffff.
    """
    if length is None:
        length = len(data)
    total = 0
    for i in range(0, length, 2):
        word = data[i]
        if i + 1 < len(data):
            word |= data[i + 1] << 8
        total = (total + word) & 0xffff
        if total < word:
            total += 1
    if inverted:
        total = 0xffff - total
    return total


def update_checksum(buf, offset, value, name, partition):
    """Store a 16-bit checksum little endian at buf[offset]."""
    old = buf[offset] | (buf[offset + 1] << 8)
    if old != value:
        logger.info("Updating %s checksum in partition %d from 0x%04X to 0x%04X",
                    name, partition, old, value)
    else:
        logger.info("Keeping %s checksum in partition %d: 0x%04X",
                    name, partition, old)
    buf[offset:offset + 2] = value.to_bytes(2, 'little')
