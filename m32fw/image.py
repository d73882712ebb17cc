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
Recovery and factory image conversion.

A factory image is laid out as:

    outer verification header           16
    encryption header                   16
    IV as lowercase hex + "\n"          33
    "Salted__" + salt                   16
    AES-128-CBC ciphertext              variable
    outer signature                     256

The ciphertext decrypts to an inner verification header, the recovery
image and the inner signature over the recovery image. The outer
signature covers everything from the encryption header up to the end of
the ciphertext.
"""

import binascii
import contextlib
import logging
import os.path
import struct
from collections import namedtuple

from intelhex import IntelHex, IntelHexError

from . import cipher, keys
from .checksum import sum16_carry, update_checksum
from .errors import CryptoError, FileAccessError, FormatError, SizeError
from .header import (HEADER_SIZE, PARTITION_DATA_CHECKSUM_OFFSET,
                     PARTITION_DATA_LENGTH_OFFSET,
                     PARTITION_HEADER_CHECKSUM_OFFSET, PARTITION_HEADER_SIZE,
                     HeaderKind, decode_length, encode_encryption_header,
                     encode_verification_header)

logger = logging.getLogger(__name__)

BIN_EXT = "bin"
INTEL_HEX_EXT = "hex"

SIGNATURE_SIZE = keys.SIGNATURE_SIZE
IV_HEX_SIZE = 2 * cipher.AES_BLOCK_SIZE
IV_ASCII_SIZE = IV_HEX_SIZE + 1
DECRYPTION_INFO_SIZE = IV_ASCII_SIZE + cipher.SALT_HEADER_SIZE

# Recovery images of the supported devices have at most 13 partitions.
MAX_PARTITIONS = 16

# IV used by the vendor tooling for every factory image.
FACTORY_IV = bytes([0x99, 0x38, 0x0c, 0x25, 0xae, 0xcc, 0x79, 0xd3,
                    0x9b, 0x14, 0x5a, 0xc0, 0x43, 0x53, 0xbb, 0xe9])


class Span(namedtuple('Span', ['offset', 'length'])):
    """A bounds checked (offset, length) window into a buffer."""

    @classmethod
    def check(cls, buf, offset, length, what="Block"):
        if offset < 0 or length < 0 or offset + length > len(buf):
            raise FormatError(
                "{} (offset 0x{:X}, length 0x{:X}) exceeds the buffer "
                "size 0x{:X}".format(what, offset, length, len(buf)))
        return cls(offset, length)

    @property
    def end(self):
        return self.offset + self.length

    def view(self, buf):
        return memoryview(buf)[self.offset:self.end]


class DebugConfig(namedtuple('DebugConfig', ['directory'])):
    """Where intermediate buffers are written, if anywhere."""

    def write(self, name, data):
        path = os.path.join(self.directory, name)
        try:
            with open(path, 'wb') as f:
                f.write(data)
        except OSError as e:
            raise FileAccessError(path, e.strerror or str(e)) from e
        logger.debug("Wrote debug file %s (%d bytes)", path, len(data))


def encode_iv(iv):
    return iv.hex().encode('ascii') + b'\n'


def decode_iv(ascii_iv):
    raw = bytes(ascii_iv)
    if len(raw) < IV_HEX_SIZE:
        raise FormatError("IV truncated ({} bytes)".format(len(raw)))
    try:
        iv = binascii.unhexlify(raw[:IV_HEX_SIZE])
    except binascii.Error as e:
        raise FormatError("Invalid ASCII IV {!r}".format(
            raw[:IV_HEX_SIZE])) from e
    if raw[IV_HEX_SIZE:IV_ASCII_SIZE] != b'\n':
        logger.warning("IV is not terminated by a line feed")
    return iv


def find_partitions(image, magic):
    """Return the offsets of up to MAX_PARTITIONS partition headers.

    Every offset that leaves room for a full header is compared against
    the magic, so a copy of the magic inside partition data is taken for
    a header as well.
    """
    if isinstance(magic, str):
        magic = magic.encode('ascii')
    limit = len(image) - PARTITION_HEADER_SIZE
    offsets = []
    pos = image.find(magic)
    while 0 <= pos < limit:
        logger.info("Found partition header at address 0x%08X", pos)
        offsets.append(pos)
        if len(offsets) == MAX_PARTITIONS:
            logger.warning("Reached maximum of %d partitions, stopping search",
                           MAX_PARTITIONS)
            break
        pos = image.find(magic, pos + 1)
    return offsets


def partition_layout(image, magic):
    """Return (header offset, data length) for each partition found.

    A partition extends up to the next header, the last one up to the end
    of the image.
    """
    offsets = find_partitions(image, magic)
    layout = []
    for index, start in enumerate(offsets):
        if index + 1 < len(offsets):
            end = offsets[index + 1]
        else:
            end = len(image)
        length = end - start - PARTITION_HEADER_SIZE
        if length < 0:
            raise FormatError("Partition {} at 0x{:08X} is shorter than its "
                              "header".format(index, start))
        layout.append((start, length))
    return layout


class ImagePipeline:
    """Conversions between recovery and factory images of one device."""

    def __init__(self, device, debug=None):
        self.device = device
        self.debug = debug

    def __repr__(self):
        return "<ImagePipeline device={}, debug={}>".format(
            self.device.name,
            self.debug.directory if self.debug is not None else None)

    def _debug_file(self, name, data):
        if self.debug is not None:
            self.debug.write(name, data)

    def repair_headers(self, image):
        """Fix data length and checksums of every partition header."""
        buf = bytearray(image)
        layout = partition_layout(buf, self.device.recovery_header_start)
        if not layout:
            raise FormatError("No partitions found in input file")

        for index, (start, length) in enumerate(layout):
            length_off = start + PARTITION_DATA_LENGTH_OFFSET
            old_length = struct.unpack_from('<I', buf, length_off)[0]
            if old_length != length:
                logger.info("Updating data length in partition %d from %d "
                            "(0x%08X) to %d (0x%08X)", index, old_length,
                            old_length, length, length)
                struct.pack_into('<I', buf, length_off, length)

            # An odd sized partition borrows the byte following it for its
            # last checksum word.
            data_start = start + PARTITION_HEADER_SIZE
            data = bytes(buf[data_start:data_start + length + 1])
            update_checksum(buf, start + PARTITION_DATA_CHECKSUM_OFFSET,
                            sum16_carry(data, length), "data", index)

            header = bytes(buf[start:start + PARTITION_HEADER_CHECKSUM_OFFSET])
            update_checksum(buf, start + PARTITION_HEADER_CHECKSUM_OFFSET,
                            sum16_carry(header, inverted=True), "header",
                            index)
        return bytes(buf)

    def build_factory_image(self, recovery):
        """Sign, encrypt and sign again a recovery image."""
        recovery = bytes(recovery)
        device = self.device

        inner_signature = keys.sign(recovery, device)
        self._debug_file("Sig1.bin", inner_signature)
        inner = (encode_verification_header(len(recovery)) + recovery +
                 inner_signature)
        self._debug_file("FW_and_Sig1.bin", inner)

        salt_header, ciphertext = cipher.encrypt(inner, device.firmware_key,
                                                 FACTORY_IV)
        encrypted = salt_header + ciphertext
        self._debug_file("FWenc.bin", encrypted)
        logger.info("Encrypted %d bytes of recovery image and signature",
                    len(inner))

        ascii_iv = encode_iv(FACTORY_IV)
        self._debug_file("IV.bin", ascii_iv)
        signed = encode_encryption_header(len(encrypted)) + ascii_iv + encrypted

        outer_signature = keys.sign(signed, device)
        factory = encode_verification_header(len(signed)) + signed + \
            outer_signature
        logger.info("Created factory image of %d bytes for %s", len(factory),
                    device.name)
        return factory

    def split_factory_image(self, factory):
        """Verify and decrypt a factory image, returning the recovery image."""
        buf = bytes(factory)
        device = self.device

        outer = Span.check(buf, 0, HEADER_SIZE, "Factory image header")
        signed_len = decode_length(outer.view(buf), HeaderKind.VERIFICATION)
        signed = Span.check(buf, outer.end, signed_len, "Encrypted image")
        signature = Span.check(buf, signed.end, SIGNATURE_SIZE,
                               "Encrypted image signature")
        if not keys.verify(signed.view(buf), signature.view(buf), device):
            raise CryptoError("Verification of IV and encrypted firmware "
                              "failed")
        logger.info("Verified signature of the encrypted image")

        enc_header = Span.check(buf, signed.offset, HEADER_SIZE,
                                "Encryption header")
        encrypted_len = decode_length(enc_header.view(buf),
                                      HeaderKind.ENCRYPTION)
        ascii_iv = Span.check(buf, enc_header.end, IV_ASCII_SIZE, "IV")
        iv = decode_iv(ascii_iv.view(buf))
        encrypted = Span.check(buf, ascii_iv.end, encrypted_len,
                               "Encrypted firmware")

        inner = cipher.decrypt(encrypted.view(buf), device.firmware_key, iv)
        self._debug_file("FWdec.bin", inner)
        logger.info("Decrypted %d bytes", len(inner))

        inner_header = Span.check(inner, 0, HEADER_SIZE, "Firmware header")
        payload_len = decode_length(inner_header.view(inner),
                                    HeaderKind.VERIFICATION)
        payload = Span.check(inner, inner_header.end, payload_len,
                             "Recovery image")
        signature = Span.check(inner, payload.end, SIGNATURE_SIZE,
                               "Recovery image signature")
        if not keys.verify(payload.view(inner), signature.view(inner), device):
            raise CryptoError("Verification of the recovery image failed")
        logger.info("Verified signature of the recovery image")
        return bytes(payload.view(inner))


Operation = namedtuple('Operation', ['argument', 'description', 'run',
                                     'min_size'])

OPERATIONS = (
    Operation('--UpdateFirmwareHeader',
              "Updates data length information and checksum in an existing "
              "header in a recovery image",
              ImagePipeline.repair_headers,
              PARTITION_HEADER_SIZE),
    # At least 1kB of payload.
    Operation('--CreateFactoryImage',
              "Create a factory image from a recovery image",
              ImagePipeline.build_factory_image,
              1024),
    # Header and signature for the inner and outer image plus 1kB payload.
    Operation('--DecryptFactoryImage',
              "Decrypts a factory image",
              ImagePipeline.split_factory_image,
              2 * (SIGNATURE_SIZE + HEADER_SIZE) + 1024),
)


def find_operation(argument):
    for op in OPERATIONS:
        if op.argument == argument:
            return op
    return None


def load_image(path, min_size=0):
    """Read an image, refusing files smaller than min_size bytes.

    Files with a .hex extension are parsed as Intel HEX, and the size
    check applies to the decoded data.
    """
    ext = os.path.splitext(path)[1][1:].lower()
    try:
        if ext == INTEL_HEX_EXT:
            ih = IntelHex(path)
            data = ih.tobinstr() if len(ih) else b''
        else:
            size = os.stat(path).st_size
            if size < min_size:
                raise SizeError("File {} is smaller than {} bytes"
                                .format(path, min_size))
            with open(path, 'rb') as f:
                data = f.read()
    except OSError as e:
        raise FileAccessError(path, e.strerror or str(e)) from e
    except IntelHexError as e:
        raise FormatError("Unable to parse {}: {}".format(path, e)) from e
    if len(data) < min_size:
        raise SizeError("File {} is smaller than {} bytes"
                        .format(path, min_size))
    logger.debug("Read %d bytes from %s", len(data), path)
    return data


def save_image(path, data):
    """Write an image, replacing `path` only once it is complete.

    The data goes to a temporary file next to `path` first, so a failed
    write never leaves a truncated output behind.
    """
    ext = os.path.splitext(path)[1][1:].lower()
    tmp = path + ".tmp"
    try:
        if ext == INTEL_HEX_EXT:
            h = IntelHex()
            h.frombytes(bytes(data), offset=0)
            h.tofile(tmp, 'hex')
        else:
            with open(tmp, 'wb') as f:
                f.write(data)
        os.replace(tmp, path)
    except OSError as e:
        with contextlib.suppress(OSError):
            os.remove(tmp)
        raise FileAccessError(path, e.strerror or str(e)) from e
    logger.info("Wrote %d bytes to %s", len(data), path)
