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

"""I/O for gnsstt."""

from .cggtts import (CggttsFormat, CggttsHeader, CggttsReader, cggtts_filename,
                     parse_cggtts, read_cggtts)
from .rinex import (Rinex2ObsReader, Rinex3ObsReader, RinexFormat, RinexHeader,
                    RinexObsReader, parse_rinex)

__all__ = [
    'RinexObsReader', 'Rinex2ObsReader', 'Rinex3ObsReader', 'RinexFormat',
    'RinexHeader', 'parse_rinex',
    'CggttsReader', 'CggttsFormat', 'CggttsHeader', 'read_cggtts',
    'parse_cggtts', 'cggtts_filename'
]
