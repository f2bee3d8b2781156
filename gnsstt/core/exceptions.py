# Copyright 2024 inuex35
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

"""Exceptions raised by gnsstt"""

__all__ = [
    'GnssTTError', 'RinexFormatError', 'RinexVersionError',
    'CapacityExceededError', 'CggttsFormatError', 'MissingObservationError'
]


class GnssTTError(Exception):
    """Base class for gnsstt errors"""


class RinexFormatError(GnssTTError, ValueError):
    """Malformed or unsupported RINEX observation input"""


class RinexVersionError(RinexFormatError):
    """RINEX major version not handled by the selected reader"""


class CapacityExceededError(RinexFormatError):
    """More epochs than the preallocated observation capacity"""


class CggttsFormatError(GnssTTError, ValueError):
    """Malformed or unsupported CGGTTS input"""


class MissingObservationError(GnssTTError, KeyError):
    """Requested observation type or constellation is not available"""

    def __str__(self):
        # KeyError quotes its argument
        return str(self.args[0]) if self.args else ''
