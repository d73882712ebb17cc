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
Codec for the 16-byte verification/encryption headers and the 80-byte
partition header of a recovery image.

Verification header:

    0x00  4  "MH01"
    0x04  4  length of the signed data (little endian)
    0x08  4  00 01 00 00
    0x0C  2  2B 1A
    0x0E  1  byte sum of bytes 0-13
    0x0F  1  XOR of bytes 0-13

The encryption header swaps the two middle fields: the type tag is at
offset 4 and the length of the salted ciphertext is at offset 8.
"""

import struct
from collections import namedtuple
from enum import Enum

from .checksum import byte_sum_xor, sum16_carry
from .errors import FormatError

HEADER_MAGIC = b'MH01'
HEADER_SIZE = 16
HEADER_MARKER = bytes([0x2b, 0x1a])
VERIFICATION_TAG = bytes([0x00, 0x01, 0x00, 0x00])
# Vendor documentation lists 21 01 00 00 here; 21 00 00 00 is what the
# header writer of the vendor tooling emits.
ENCRYPTION_TAG = bytes([0x21, 0x00, 0x00, 0x00])
MAX_LENGTH = 0xffffffff

HeaderKind = Enum('HeaderKind', ['VERIFICATION', 'ENCRYPTION'])

# Offset of the length field for each header kind.
LENGTH_OFFSET = {
    HeaderKind.VERIFICATION: 4,
    HeaderKind.ENCRYPTION: 8,
}

PARTITION_HEADER_SIZE = 80
PARTITION_DATA_CHECKSUM_OFFSET = 0x0e
PARTITION_DATA_LENGTH_OFFSET = 0x2c
PARTITION_HEADER_CHECKSUM_OFFSET = PARTITION_HEADER_SIZE - 2
PARTITION_MAGIC_SIZE = 12

PARTITION_HEADER_FORMAT = '<12s2sH12s4sIIII16sHHHHHHHH'
PARTITION_HEADER_ITEMS = ('magic', 'version_tag', 'data_checksum', 'reserved',
                          'build_tag', 'erase_start', 'erase_length',
                          'write_start', 'write_length', 'padding',
                          'header_id', 'major', 'minor', 'sid',
                          'image_info_type', 'unknown', 'fmid',
                          'header_checksum')


def _encode(length, kind):
    if not 0 <= length <= MAX_LENGTH:
        raise FormatError("Header length {} does not fit in 32 bits"
                          .format(length))
    buf = bytearray(HEADER_SIZE)
    buf[0:4] = HEADER_MAGIC
    if kind == HeaderKind.VERIFICATION:
        buf[4:8] = struct.pack('<I', length)
        buf[8:12] = VERIFICATION_TAG
    else:
        buf[4:8] = ENCRYPTION_TAG
        buf[8:12] = struct.pack('<I', length)
    buf[12:14] = HEADER_MARKER
    buf[14], buf[15] = byte_sum_xor(buf)
    return bytes(buf)


def encode_verification_header(length):
    """Header preceding `length` bytes of signed data."""
    return _encode(length, HeaderKind.VERIFICATION)


def encode_encryption_header(length):
    """Header preceding `length` bytes of salt header plus ciphertext."""
    return _encode(length, HeaderKind.ENCRYPTION)


def decode_length(buf, kind):
    """Read the length field of a header.

    Only the magic is checked, the checksum pair is not verified.
    """
    if len(buf) < HEADER_SIZE:
        raise FormatError("Header truncated ({} of {} bytes)"
                          .format(len(buf), HEADER_SIZE))
    if bytes(buf[0:4]) != HEADER_MAGIC:
        raise FormatError("Invalid header magic {!r}, expected {!r}"
                          .format(bytes(buf[0:4]), HEADER_MAGIC))
    off = LENGTH_OFFSET[kind]
    return struct.unpack_from('<I', buf, off)[0]


class FrameHeader(namedtuple('FrameHeader', ['magic', 'kind', 'length', 'tag',
                                             'marker', 'sum', 'xor'])):
    """Decoded 16-byte header, for inspection."""

    @classmethod
    def parse(cls, buf, kind):
        length = decode_length(buf, kind)
        tag_off = 8 if kind == HeaderKind.VERIFICATION else 4
        return cls(bytes(buf[0:4]), kind, length,
                   bytes(buf[tag_off:tag_off + 4]), bytes(buf[12:14]),
                   buf[14], buf[15])

    @property
    def checksum_ok(self):
        raw = bytearray(HEADER_SIZE)
        raw[0:4] = self.magic
        off = LENGTH_OFFSET[self.kind]
        raw[off:off + 4] = struct.pack('<I', self.length)
        tag_off = 8 if self.kind == HeaderKind.VERIFICATION else 4
        raw[tag_off:tag_off + 4] = self.tag
        raw[12:14] = self.marker
        return byte_sum_xor(raw) == (self.sum, self.xor)


class PartitionHeader(namedtuple('PartitionHeader', PARTITION_HEADER_ITEMS)):
    """The 80-byte header in front of every recovery image partition."""

    @classmethod
    def parse(cls, buf, offset=0):
        if len(buf) - offset < PARTITION_HEADER_SIZE:
            raise FormatError("Partition header at 0x{:08X} truncated"
                              .format(offset))
        hdr = cls(*struct.unpack_from(PARTITION_HEADER_FORMAT, buf, offset))
        return hdr

    def to_bytes(self):
        return struct.pack(PARTITION_HEADER_FORMAT, *self)

    @property
    def word_sum(self):
        """16-bit word sum over the whole header, 0xffff when valid."""
        return sum16_carry(self.to_bytes())

    @property
    def magic_text(self):
        return self.magic.decode('ascii', errors='replace')
