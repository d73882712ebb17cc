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

import random

from m32fw import devices, image
from m32fw.header import PARTITION_HEADER_SIZE

DEVICE_NAMES = devices.device_names()
OPERATIONS = [op.argument for op in image.OPERATIONS]

# 1 kB, 1 kB + 1, a multiple of the AES block size and one byte more
ROUND_TRIP_SIZES = [1024, 1025, 1040, 1041]

# R32 shares its keys with M32, so isolation is checked across these two.
ISOLATED_DEVICES = ("M32", "M60")


def get_device(name):
    return devices.find_device(name)


def random_bytes(size, seed=0):
    rng = random.Random(seed)
    return bytes(rng.getrandbits(8) for _ in range(size))


def make_partition(magic, payload):
    """A partition with a zeroed header carrying only the magic."""
    header = bytearray(PARTITION_HEADER_SIZE)
    header[:len(magic)] = magic.encode('ascii')
    return bytes(header) + bytes(payload)


def flip_bit(data, bit):
    buf = bytearray(data)
    buf[bit // 8] ^= 1 << (bit % 8)
    return bytes(buf)


def tmp_name(tmp_path, base, ext):
    return tmp_path / (base + ext)
