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

"""Reader and matcher configuration"""

from dataclasses import dataclass, field
from enum import Enum

from .constants import MAXPRN_BDS, MAXPRN_GAL, MAXPRN_GLO, MAXPRN_GPS
from .satellite_numbering import to_sys

__all__ = [
    'NamingConvention', 'MatchMode', 'PrnRanges', 'RinexReadConfig',
    'CggttsReadConfig', 'TrackMatchConfig', 'as_enum'
]


class NamingConvention(Enum):
    """CGGTTS file naming conventions"""
    SIMPLE = "simple"  # {MJD}{stub}
    BIPM = "bipm"      # {stub}{YY}.{DDD}


class MatchMode(Enum):
    """CGGTTS track matching granularity"""
    TRACKS = "tracks"        # identical (MJD, STTIME, satellite)
    TRACKTIME = "tracktime"  # identical (MJD, STTIME) blocks


def _as_bool(value):
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ('yes', 'true', '1'):
            return True
        if lowered in ('no', 'false', '0'):
            return False
        raise ValueError(f"bad argument {value}")
    return bool(value)


def _check_options(cls, config: dict, known: tuple):
    unknown = [key for key in config if key not in known]
    if unknown:
        raise ValueError(f"unknown option {unknown[0]} for {cls.__name__}")


def as_enum(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        raise ValueError(f"bad argument {value} for {enum_cls.__name__}") from None


@dataclass
class PrnRanges:
    """Maximum PRN per constellation.

    The maximum PRN fixes the width of the satellite axis of an observation
    cube. BeiDou defaults to 64; the other constellations to 32.
    """
    gps: int = MAXPRN_GPS
    glonass: int = MAXPRN_GLO
    galileo: int = MAXPRN_GAL
    beidou: int = MAXPRN_BDS

    def as_dict(self) -> dict[int, int]:
        """Maximum PRN keyed by system id"""
        return {
            to_sys('G'): self.gps,
            to_sys('R'): self.glonass,
            to_sys('E'): self.galileo,
            to_sys('C'): self.beidou,
        }

    def max_prn(self, system) -> int:
        return self.as_dict()[to_sys(system)]

    @classmethod
    def from_dict(cls, config: dict) -> "PrnRanges":
        """Build from a mapping of system (id, character or field name) to maximum PRN"""
        names = {to_sys('G'): 'gps', to_sys('R'): 'glonass',
                 to_sys('E'): 'galileo', to_sys('C'): 'beidou'}
        kwargs = {}
        for key, value in config.items():
            if key in names.values():
                kwargs[key] = int(value)
            else:
                kwargs[names[to_sys(key)]] = int(value)
        return cls(**kwargs)


@dataclass
class RinexReadConfig:
    """RINEX observation reader options"""
    show_progress: bool = False
    prn_ranges: PrnRanges = field(default_factory=PrnRanges)

    @classmethod
    def from_dict(cls, config: dict) -> "RinexReadConfig":
        """Configure from dictionary

        Example config:
        {
            'show_progress': 'yes',
            'prn_ranges': {'C': 63}
        }
        """
        _check_options(cls, config, ('show_progress', 'prn_ranges'))
        kwargs = {}
        if 'show_progress' in config:
            kwargs['show_progress'] = _as_bool(config['show_progress'])
        if 'prn_ranges' in config:
            ranges = config['prn_ranges']
            kwargs['prn_ranges'] = ranges if isinstance(ranges, PrnRanges) else PrnRanges.from_dict(ranges)
        return cls(**kwargs)


@dataclass
class CggttsReadConfig:
    """CGGTTS multi-day loader options"""
    remove_bad_tracks: bool = True
    naming_convention: NamingConvention = NamingConvention.SIMPLE

    def __post_init__(self):
        self.naming_convention = as_enum(NamingConvention, self.naming_convention)

    @classmethod
    def from_dict(cls, config: dict) -> "CggttsReadConfig":
        _check_options(cls, config, ('remove_bad_tracks', 'naming_convention'))
        kwargs = {}
        if 'remove_bad_tracks' in config:
            kwargs['remove_bad_tracks'] = _as_bool(config['remove_bad_tracks'])
        if 'naming_convention' in config:
            kwargs['naming_convention'] = config['naming_convention']
        return cls(**kwargs)


@dataclass
class TrackMatchConfig:
    """CGGTTS track matching options"""
    match_ephemeris: bool = False
    match_mode: MatchMode = MatchMode.TRACKS

    def __post_init__(self):
        self.match_mode = as_enum(MatchMode, self.match_mode)

    @classmethod
    def from_dict(cls, config: dict) -> "TrackMatchConfig":
        _check_options(cls, config, ('match_ephemeris', 'match_mode'))
        kwargs = {}
        if 'match_ephemeris' in config:
            kwargs['match_ephemeris'] = _as_bool(config['match_ephemeris'])
        if 'match_mode' in config:
            kwargs['match_mode'] = config['match_mode']
        return cls(**kwargs)
