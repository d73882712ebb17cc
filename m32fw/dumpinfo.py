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
Parse and print the framing of a factory image or the partition headers
of a recovery image.
"""
import os.path
import struct

import click
import yaml

from m32fw import cipher, image, keys
from m32fw.checksum import sum16_carry
from m32fw.errors import FirmwareUtilError
from m32fw.header import (HEADER_MAGIC, HEADER_SIZE, PARTITION_HEADER_SIZE,
                          FrameHeader, HeaderKind, PartitionHeader)

_LINE_LENGTH = 60

PARTITION_ITEMS = ('magic', 'erase_start', 'erase_length', 'write_start',
                   'write_length', 'data_checksum', 'header_id', 'major',
                   'minor', 'sid', 'image_info_type', 'fmid',
                   'header_checksum')


def print_in_frame(header_text, content):
    sepc = " "
    header = "#### " + header_text + sepc
    post_header = "#" * (_LINE_LENGTH - len(header))
    print(header + post_header)

    print("|", sepc * (_LINE_LENGTH - 2), "|", sep="")
    offset = (_LINE_LENGTH - len(content)) // 2
    pre = "|" + (sepc * (offset - 1))
    post = sepc * (_LINE_LENGTH - len(pre) - len(content) - 1) + "|"
    print(pre, content, post, sep="")
    print("|", sepc * (_LINE_LENGTH - 2), "|", sep="")
    print("#" * _LINE_LENGTH)


def print_in_row(row_text):
    row_text = "#### " + row_text + " "
    fill = "#" * (_LINE_LENGTH - len(row_text))
    print(row_text + fill)


def print_items(items):
    for key, value in items.items():
        if isinstance(value, bool):
            value = "yes" if value else "no"
        elif not isinstance(value, str):
            value = hex(value)
        print(key, ":", " " * (19 - len(key)), value, sep="")


def frame_header_info(hdr):
    return {"magic": hdr.magic.decode('ascii', errors='replace'),
            "length": hdr.length,
            "tag": hdr.tag.hex(),
            "marker": hdr.marker.hex(),
            "checksum_ok": hdr.checksum_ok}


def partition_info(buf, layout):
    partitions = []
    for start, length in layout:
        hdr = PartitionHeader.parse(buf, start)
        data_start = start + PARTITION_HEADER_SIZE
        data = buf[data_start:data_start + length + 1]
        entry = {"offset": start, "data_length": length}
        for key in PARTITION_ITEMS:
            value = getattr(hdr, key)
            entry[key] = hdr.magic_text if key == "magic" else value
        entry["length_ok"] = hdr.write_length == length
        entry["data_checksum_ok"] = \
            sum16_carry(data, length) == hdr.data_checksum
        entry["header_checksum_ok"] = hdr.word_sum == 0xffff
        partitions.append(entry)
    return partitions


def parse_factory(b):
    outer = FrameHeader.parse(b, HeaderKind.VERIFICATION)
    enc = FrameHeader.parse(b[HEADER_SIZE:], HeaderKind.ENCRYPTION)
    iv_off = 2 * HEADER_SIZE
    salt_off = iv_off + image.IV_ASCII_SIZE
    salt_header = b[salt_off:salt_off + cipher.SALT_HEADER_SIZE]
    sig_off = HEADER_SIZE + outer.length
    return {
        "outer_header": frame_header_info(outer),
        "encryption_header": frame_header_info(enc),
        "iv": b[iv_off:iv_off + image.IV_HEX_SIZE].decode('ascii',
                                                         errors='replace'),
        "salt_magic": salt_header[:len(cipher.SALTED_MAGIC)].decode(
            'ascii', errors='replace'),
        "salt": salt_header[len(cipher.SALTED_MAGIC):].hex(),
        "ciphertext_length": enc.length - cipher.SALT_HEADER_SIZE,
        "signature_offset": sig_off,
        "signature_present":
            len(b[sig_off:sig_off + keys.SIGNATURE_SIZE]) ==
            keys.SIGNATURE_SIZE,
    }


def dump_imginfo(imgfile, device=None, outfile=None, silent=False):
    """Parse a factory or recovery image and print/save its layout."""
    try:
        with open(imgfile, "rb") as f:
            b = f.read()
    except FileNotFoundError:
        raise click.UsageError("Image file not found ({})".format(imgfile))
    except OSError as e:
        raise click.ClickException("Unable to read {}: {}".format(
            imgfile, e.strerror or e))

    factory = None
    partitions = None
    try:
        if b[:len(HEADER_MAGIC)] == HEADER_MAGIC:
            factory = parse_factory(b)
            if device is not None:
                recovery = image.ImagePipeline(device).split_factory_image(b)
                partitions = partition_info(recovery, image.partition_layout(
                    recovery, device.recovery_header_start))
        elif device is not None:
            partitions = partition_info(b, image.partition_layout(
                b, device.recovery_header_start))
        else:
            raise click.UsageError("Not a factory image, a device is needed "
                                   "to locate recovery image partitions")
    except (FirmwareUtilError, struct.error) as e:
        raise click.ClickException("Unable to parse {}: {}".format(imgfile, e))

    imgdata = {"image": {"file": os.path.basename(imgfile),
                         "size": len(b),
                         "device": device.name if device else None}}
    if factory is not None:
        imgdata["factory"] = factory
    if partitions is not None:
        imgdata["partitions"] = partitions

    if outfile is not None:
        try:
            with open(outfile, "w") as outf:
                yaml.dump(imgdata, outf, sort_keys=False)
        except OSError as e:
            raise click.ClickException("Unable to write {}: {}".format(
                outfile, e.strerror or e))

    if silent:
        return imgdata

    print("Printing content of image:", os.path.basename(imgfile), "\n")

    if factory is not None:
        print_in_row("Factory image header (offset: 0x0)")
        print_items(factory["outer_header"])
        print_in_row("Encryption header (offset: {})".format(hex(HEADER_SIZE)))
        print_items(factory["encryption_header"])
        print_in_row("Decryption info (offset: {})".format(
            hex(2 * HEADER_SIZE)))
        print_items({"iv": factory["iv"],
                     "salt magic": factory["salt_magic"],
                     "salt": factory["salt"]})
        print("#" * _LINE_LENGTH)
        frame_header_text = "Encrypted firmware (offset: {})".format(
            hex(2 * HEADER_SIZE + image.DECRYPTION_INFO_SIZE))
        frame_content = "ciphertext (size: {} Bytes)".format(
            hex(factory["ciphertext_length"]))
        print_in_frame(frame_header_text, frame_content)
        frame_header_text = "Signature (offset: {})".format(
            hex(factory["signature_offset"]))
        frame_content = "RSA-2048 SHA-512 ({})".format(
            "present" if factory["signature_present"] else "missing")
        print_in_frame(frame_header_text, frame_content)

    for index, partition in enumerate(partitions or []):
        print_in_row("Partition {} (offset: {})".format(
            index, hex(partition["offset"])))
        print_items({k: v for k, v in partition.items() if k != "offset"})
        print("#" * _LINE_LENGTH)

    print_in_row("End of Image ")
    return imgdata
