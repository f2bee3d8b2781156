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

"""Matching and averaging of time-transfer data."""

from .averaging import (average_tracks, averaged_difference, difference_series,
                        series_to_frame)
from .matching import (match_observations, match_tracks, merge_join_epochs,
                       merge_join_track_times, merge_join_tracks)

__all__ = [
    'match_observations', 'match_tracks', 'merge_join_epochs',
    'merge_join_tracks', 'merge_join_track_times',
    'averaged_difference', 'difference_series', 'average_tracks',
    'series_to_frame'
]
