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
Error types raised while converting firmware images.

Every stage of a conversion raises one of these on failure; the first
failure aborts the whole operation and reaches the command line unchanged.
"""


class FirmwareUtilError(Exception):
    """Base class of all conversion failures."""
    kind = 'error'


class SizeError(FirmwareUtilError):
    """The input is smaller than the operation requires."""
    kind = 'size'


class FormatError(FirmwareUtilError):
    """A header or container does not have the expected layout."""
    kind = 'format'


class CryptoError(FirmwareUtilError):
    """Key loading, signing, verification or ciphering failed."""
    kind = 'crypto'


class FileAccessError(FirmwareUtilError):
    """A file could not be opened, read or written."""
    kind = 'io'

    def __init__(self, path, reason):
        super().__init__("{}: {}".format(path, reason))
        self.path = path
        self.reason = reason
