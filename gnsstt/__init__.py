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

"""
gnsstt - GNSS time-transfer data processing

Reads CGGTTS track files and RINEX observation files, filters tracks by
quality, and time-aligns the data of two receivers so that their clock
differences can be computed.
"""

__version__ = "1.0.0"
__title__ = "gnsstt"
__description__ = "GNSS time-transfer data processing"

from .core import *
from .io import *
from .timetransfer import *
