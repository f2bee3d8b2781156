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

"""GNSS Constants and Time-Transfer Parameters"""

# Time constants
SECONDS_PER_DAY = 86400.0
SECONDS_PER_HOUR = 3600

# GNSS System IDs
SYS_NONE = 0x00   # no/unknown system
SYS_GPS = 0x01    # GPS
SYS_GLO = 0x02    # GLONASS
SYS_GAL = 0x04    # Galileo
SYS_BDS = 0x08    # BeiDou
SYS_ALL = SYS_GPS | SYS_GLO | SYS_GAL | SYS_BDS

# Systems in storage order
SYSTEMS = (SYS_GPS, SYS_GLO, SYS_GAL, SYS_BDS)

# Default maximum PRN per constellation (satellite axis of the observation cube)
MAXPRN_GPS = 32
MAXPRN_GLO = 32
MAXPRN_GAL = 32
MAXPRN_BDS = 64

DEFAULT_MAX_PRN = {
    SYS_GPS: MAXPRN_GPS,
    SYS_GLO: MAXPRN_GLO,
    SYS_GAL: MAXPRN_GAL,
    SYS_BDS: MAXPRN_BDS,
}

# RINEX parameters
MISSING_OBS = 0.0              # RINEX "no observation" sentinel
DEFAULT_OBS_INTERVAL = 30.0    # assumed sampling interval (s) when INTERVAL is absent
CAPACITY_DAYS = 1.01           # epoch capacity in days, slack for duplicate records
RINEX_LABEL_COLUMN = 60        # header labels start at this column
RINEX_OBS_WIDTH = 16           # F14.3 value + LLI + signal strength
RINEX_OBS_VALUE_WIDTH = 14
RINEX2_OBS_PER_LINE = 5
RINEX2_SATS_PER_LINE = 12

# Valid second characters of RINEX 2.xx observation codes per constellation
RINEX2_BAND_CODES = {
    SYS_GPS: ('1', 'A', 'B', '2', 'C', '5'),
    SYS_GLO: ('1', 'A', '2', 'D'),
    SYS_GAL: ('1', '5', '6', '7', '8'),
    SYS_BDS: ('1', '2', '6', '7'),
}

# CGGTTS parameters
BAD_DSG = 9999                 # DSG sentinel
BAD_MSIO = 9999                # MSIO sentinel (dual frequency)
BAD_SMSI = 999                 # |SMSI| sentinel (dual frequency)
BAD_ISG = 999                  # ISG sentinel (dual frequency)
MAX_TRACK_LENGTH = 780         # standard BIPM track length (s)
MISSING_DATA_MARKER = '*'      # overflowed CGGTTS field
DUAL_FREQUENCY_MARKER = 'MSIO SMSI'
