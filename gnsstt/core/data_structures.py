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

"""Core data structures for GNSS time-transfer processing"""

import copy
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from typing import Optional

import numpy as np
import pandas as pd

from .constants import (BAD_DSG, BAD_ISG, BAD_MSIO, BAD_SMSI, MAX_TRACK_LENGTH,
                        MISSING_OBS, SECONDS_PER_DAY, SYS_GPS)
from .exceptions import CapacityExceededError, MissingObservationError
from .satellite_numbering import sys_name, sys_to_char, to_sys

__all__ = [
    'SatSysObservations', 'RinexObservations', 'ColumnLayout', 'CggttsTracks',
    'bad_track_mask', 'empty_tracks', 'system_code'
]


class SatSysObservations:
    """Observations of one satellite system.

    The observations are held in a 3-D array indexed by
    [epoch index, PRN - 1, observation type index]. The observation type
    index is the position of the code in ``obs_types``, which follows the
    order of the file header; look it up with :meth:`obs_column` rather than
    assuming a position. Zero is the RINEX convention for a missing
    observation and is what an allocated cube is filled with.

    Attributes
    ----------
    sys : int
        System id
    name : str
        System name
    obs_types : list[Optional[str]]
        Observation codes; the index is the data column. ``None`` marks a
        column that is not valid for this system (RINEX 2.xx headers list
        the codes of all systems together)
    obs : Optional[np.ndarray]
        Observation cube, shape (epochs, max PRN, observation types)
    empty : bool
        True until an observation has been inserted
    """

    def __init__(self, sys: int, obs_types: Optional[list] = None):
        self.sys = sys
        self.name = sys_name(sys)
        self.obs_types = list(obs_types) if obs_types else []
        self.obs = None
        self.empty = True

    def __repr__(self):
        shape = None if self.obs is None else self.obs.shape
        return f"SatSysObservations({self.name}, types={self.codes}, shape={shape})"

    @property
    def nobs_types(self) -> int:
        return len(self.obs_types)

    @property
    def codes(self) -> list[str]:
        """Observation codes valid for this system, in column order"""
        return [code for code in self.obs_types if code]

    @property
    def capacity(self) -> int:
        return 0 if self.obs is None else self.obs.shape[0]

    @property
    def max_prn(self) -> int:
        return 0 if self.obs is None else self.obs.shape[1]

    def allocate(self, max_epochs: int, max_prn: int):
        """Allocate the observation cube, filled with the missing sentinel.

        Raises
        ------
        ValueError
            If the observation types have not been set, since they fix the
            number of columns
        """
        if not self.codes:
            raise ValueError(f"{self.name}: observation types must be set before allocation")
        self.obs = np.full((max_epochs, max_prn, self.nobs_types), MISSING_OBS)

    def has_observation(self, code: str) -> bool:
        return self.obs_column(code) is not None

    def obs_column(self, code: str) -> Optional[int]:
        """Data column holding the observation code, or None if absent"""
        for i, obs_type in enumerate(self.obs_types):
            if obs_type == code:
                return i
        return None

    def insert(self, epoch_index: int, prn: int, column: int, value: float):
        """Store one observation value.

        This is the only mutation of the cube after allocation; the cube is
        never resized while a file is being read.
        """
        if self.obs is None:
            raise ValueError(f"{self.name}: observations have not been allocated")
        if epoch_index >= self.capacity:
            raise CapacityExceededError(
                f"{self.name}: epoch {epoch_index + 1} exceeds the allocated capacity of {self.capacity} epochs")
        self.obs[epoch_index, prn - 1, column] = value
        self.empty = False

    def values(self, code: str) -> np.ndarray:
        """Observations of one type, shape (epochs, max PRN)"""
        column = self.obs_column(code)
        if column is None:
            raise MissingObservationError(f"{self.name}: observation {code} missing")
        return self.obs[:, :, column].copy()

    def take_epochs(self, rows) -> "SatSysObservations":
        """Copy restricted to the given epoch rows (index array or boolean mask)"""
        other = SatSysObservations(self.sys, self.obs_types)
        other.empty = self.empty
        if self.obs is not None:
            other.obs = self.obs[rows].copy()
        return other


@dataclass
class RinexObservations:
    """Observations decoded from one RINEX observation file.

    Attributes
    ----------
    version : str
        RINEX version as written in the header, e.g. '2.11'
    t : np.ndarray
        Epochs in seconds of the observation day (RINEX 3.xx adds whole days
        relative to the first observation). Strictly increasing, aligned with
        the first axis of every observation cube
    observations : dict[int, SatSysObservations]
        Observations keyed by system id
    interval : float
        Observation interval (s)
    """
    version: str
    t: np.ndarray
    observations: dict
    interval: float
    leap_seconds: Optional[int] = None
    time_of_first_obs: Optional[datetime] = None
    time_of_last_obs: Optional[datetime] = None
    time_system: str = 'GPS'
    marker_name: str = ''
    file_name: str = ''

    @property
    def major_ver(self) -> int:
        return int(float(self.version))

    @property
    def minor_ver(self) -> int:
        _, _, minor = self.version.strip().partition('.')
        return int(minor) if minor.isdigit() else 0

    @property
    def n_epochs(self) -> int:
        return len(self.t)

    @property
    def satellite_systems(self) -> list[int]:
        return list(self.observations.keys())

    def system_observations(self, system) -> SatSysObservations:
        sys = to_sys(system)
        if sys not in self.observations:
            raise MissingObservationError(f"{self.file_name}: no {sys_name(sys)} observations")
        return self.observations[sys]

    def has_observation(self, system, obs_type: str) -> bool:
        """Whether the observation type is available for the satellite system"""
        sys = to_sys(system)
        return sys in self.observations and self.observations[sys].has_observation(obs_type)

    def obs_column(self, system, obs_type: str) -> Optional[int]:
        """Data column of the observation type, None if it is missing"""
        sys = to_sys(system)
        if sys not in self.observations:
            return None
        return self.observations[sys].obs_column(obs_type)

    def copy(self) -> "RinexObservations":
        return copy.deepcopy(self)

    def match(self, other: "RinexObservations", system=SYS_GPS, obs_type: str = 'C1') -> np.ndarray:
        """Time-matched observations, shape (matches, max PRN, 3).

        The last axis holds (epoch, this dataset's value, other's value).
        See :func:`gnsstt.timetransfer.matching.match_observations`.
        """
        from ..timetransfer.matching import match_observations
        return match_observations(self, other, system, obs_type)

    def averaged_difference(self, other: "RinexObservations", system=SYS_GPS,
                            obs_type: str = 'C1') -> np.ndarray:
        """Averaged differences (this - other) at each matched epoch, shape (n, 2)"""
        from ..timetransfer.averaging import averaged_difference
        return averaged_difference(self, other, system, obs_type)


@dataclass(frozen=True)
class ColumnLayout:
    """Column indices of a CGGTTS track table.

    A layout is produced once, when the format of a CGGTTS file is known, and
    every access to a track table goes through it. The leading columns are the
    same for every format (a SATSYS column is synthesized for formats without
    one); the ionospheric, frequency and checksum columns move with the
    version and with dual-frequency mode. Absent columns are None. FRC
    occupies three columns holding character codes.
    """
    SATSYS: int = 0
    PRN: int = 1
    CL: int = 2
    MJD: int = 3
    STTIME: int = 4
    TRKL: int = 5
    ELV: int = 6
    AZTH: int = 7
    REFSV: int = 8
    SRSV: int = 9
    REFSYS: int = 10
    SRSYS: int = 11
    DSG: int = 12
    IOE: int = 13
    MDTR: int = 14
    SMDT: int = 15
    MDIO: int = 16
    SMDI: int = 17
    MSIO: Optional[int] = None
    SMSI: Optional[int] = None
    ISG: Optional[int] = None
    FR: Optional[int] = None
    HC: Optional[int] = None
    FRC: Optional[int] = None
    CK: int = 18
    ncols: int = 19

    FRC_WIDTH = 3

    @classmethod
    def for_format(cls, has_frequency_fields: bool, dual_frequency: bool) -> "ColumnLayout":
        """Layout for a format variant.

        Parameters
        ----------
        has_frequency_fields : bool
            True for version 2 and 2E files, which carry FR, HC and FRC
        dual_frequency : bool
            True if the MSIO, SMSI and ISG columns are present
        """
        kwargs = {}
        col = 18
        if dual_frequency:
            kwargs.update(MSIO=col, SMSI=col + 1, ISG=col + 2)
            col += 3
        if has_frequency_fields:
            kwargs.update(FR=col, HC=col + 1, FRC=col + 2)
            col += 2 + cls.FRC_WIDTH
        return cls(CK=col, ncols=col + 1, **kwargs)

    @property
    def REFGPS(self) -> int:
        return self.REFSYS

    @property
    def SRGPS(self) -> int:
        return self.SRSYS

    @property
    def dual_frequency(self) -> bool:
        return self.MSIO is not None

    def index(self, name: str) -> int:
        """Column index of a named field.

        Raises
        ------
        MissingObservationError
            If the field is not present in this layout
        """
        col = getattr(self, name.upper(), None)
        if not isinstance(col, int):
            raise MissingObservationError(f"CGGTTS column {name} is not present")
        return col

    def names(self) -> list[str]:
        """Present fields in column order"""
        present = [(f.name, getattr(self, f.name)) for f in fields(self) if f.name != 'ncols']
        return [name for name, col in sorted((p for p in present if p[1] is not None), key=lambda p: p[1])]


def bad_track_mask(tracks: np.ndarray, layout: ColumnLayout) -> np.ndarray:
    """Boolean mask of tracks carrying a bad-data sentinel.

    A track is bad if DSG is 9999 or, for dual-frequency data, if ISG is 999,
    MSIO is 9999 or |SMSI| is 999.
    """
    bad = tracks[:, layout.DSG] == BAD_DSG
    if layout.dual_frequency:
        bad |= tracks[:, layout.ISG] == BAD_ISG
        bad |= tracks[:, layout.MSIO] == BAD_MSIO
        bad |= np.abs(tracks[:, layout.SMSI]) == BAD_SMSI
    return bad


@dataclass
class CggttsTracks:
    """A table of CGGTTS tracks, one row per track.

    The table is a 2-D float array whose columns are given by ``layout``.
    STTIME holds the start time as seconds of day, SATSYS the character code
    of the system letter. Transformations return new instances; the table of
    an instance is never modified after construction.

    Attributes
    ----------
    tracks : np.ndarray
        Track table, shape (tracks, layout.ncols)
    layout : ColumnLayout
        Column indices for this table
    version : str
        CGGTTS version: '01', '02' or '2E'
    dual_frequency : bool
        True if ionospheric measurements (MSIO, SMSI, ISG) are present
    bad_tracks : int
        Number of tracks removed by bad-track filtering
    missing_lines : int
        Number of track lines skipped because of missing-data markers
    """
    tracks: np.ndarray
    layout: ColumnLayout
    version: str = '01'
    dual_frequency: bool = False
    lab: str = ''
    cable_delay: float = 0.0
    reference_delay: float = 0.0
    ca_delay: float = 0.0
    p1_delay: float = 0.0
    p2_delay: float = 0.0
    system_delay: Optional[float] = None
    total_delay: Optional[float] = None
    int_delays: dict = field(default_factory=dict)
    header: dict = field(default_factory=dict)
    bad_tracks: int = 0
    missing_lines: int = 0
    sorted: bool = False

    def __len__(self):
        return self.tracks.shape[0]

    def __getattr__(self, name):
        # CGGTTS labels resolve to this table's column indices, eg d.DSG
        if name.isupper() and not name.startswith('_'):
            layout = self.__dict__.get('layout')
            col = getattr(layout, name, None) if layout is not None else None
            if col is not None:
                return col
        raise AttributeError(f"{type(self).__name__!s} has no attribute {name!r}")

    def with_tracks(self, tracks: np.ndarray, **changes) -> "CggttsTracks":
        """New instance sharing this one's metadata, holding a copy of ``tracks``"""
        return replace(self, tracks=np.array(tracks, dtype=np.float64, copy=True),
                       int_delays=dict(self.int_delays), header=dict(self.header), **changes)

    def column(self, name) -> np.ndarray:
        """Values of a field, looked up through this table's layout"""
        col = name if isinstance(name, (int, np.integer)) else self.layout.index(name)
        return self.tracks[:, col].copy()

    def satellite_systems(self) -> np.ndarray:
        """System character of each track"""
        return np.array([chr(int(c)) for c in self.tracks[:, self.layout.SATSYS]], dtype='<U1')

    def filter(self, column, min_value: float, max_value: float) -> "CggttsTracks":
        """Keep only tracks whose ``column`` lies in [min_value, max_value].

        Parameters
        ----------
        column : str or int
            Field name (eg 'ELV') or column index from this table's layout
        """
        values = self.column(column)
        keep = (values >= min_value) & (values <= max_value)
        return self.with_tracks(self.tracks[keep])

    def filter_tracks(self, max_dsg: float, min_track_length: float) -> "CggttsTracks":
        """Basic quality filtering on DSG and track length"""
        return self.filter('DSG', 0, max_dsg).filter('TRKL', min_track_length, MAX_TRACK_LENGTH)

    def remove_bad_tracks(self) -> "CggttsTracks":
        """Drop tracks carrying bad-data sentinels.

        The returned instance records the number of tracks dropped by this
        pass in ``bad_tracks``; applying it again drops nothing.
        """
        bad = bad_track_mask(self.tracks, self.layout)
        return self.with_tracks(self.tracks[~bad], bad_tracks=int(np.count_nonzero(bad)))

    def sort_by_prn(self) -> "CggttsTracks":
        """Sort tracks by PRN within each block of identical (MJD, STTIME).

        Blocks are runs of consecutive rows and keep their order; the sort is
        stable so tracks with equal PRNs keep their relative order.
        """
        n = len(self)
        if n == 0:
            return self.with_tracks(self.tracks, sorted=True)
        mjd = self.tracks[:, self.layout.MJD]
        sttime = self.tracks[:, self.layout.STTIME]
        new_block = np.ones(n, dtype=bool)
        new_block[1:] = (mjd[1:] != mjd[:-1]) | (sttime[1:] != sttime[:-1])
        block = np.cumsum(new_block)
        order = np.lexsort((self.tracks[:, self.layout.PRN], block))
        return self.with_tracks(self.tracks[order], sorted=True)

    def match(self, other: "CggttsTracks", match_ephemeris: bool = False,
              match_mode='tracks') -> tuple:
        """Matched copies of this table and ``other``.

        See :func:`gnsstt.timetransfer.matching.match_tracks`.
        """
        from ..timetransfer.matching import match_tracks
        return match_tracks(self, other, match_ephemeris=match_ephemeris, match_mode=match_mode)

    def averaged_single_series(self, system='G', column: str = 'REFSYS',
                               iono_column: Optional[str] = None) -> np.ndarray:
        """Average of ``column`` over the tracks at each track time, shape (n, 2)"""
        from ..timetransfer.averaging import average_tracks
        return average_tracks(self, system=system, column=column, iono_column=iono_column)

    def to_dataframe(self) -> pd.DataFrame:
        """Track table as a DataFrame with one column per CGGTTS field.

        SATSYS is decoded to the system letter and FRC to its three-character
        code. STTIME stays in seconds of day.
        """
        data = {}
        for name in self.layout.names():
            col = getattr(self.layout, name)
            if name == 'SATSYS':
                data[name] = self.satellite_systems()
            elif name == 'FRC':
                codes = self.tracks[:, col:col + ColumnLayout.FRC_WIDTH].astype(int)
                data[name] = [''.join(chr(c) for c in row).strip() for row in codes]
            else:
                data[name] = self.tracks[:, col]
        df = pd.DataFrame(data)
        integer_fields = ['PRN', 'CL', 'MJD', 'STTIME', 'TRKL', 'IOE', 'CK']
        df[integer_fields] = df[integer_fields].astype(np.int64)
        return df

    def epochs(self) -> np.ndarray:
        """Track times as fractional MJD"""
        return self.tracks[:, self.layout.MJD] + self.tracks[:, self.layout.STTIME] / SECONDS_PER_DAY


def empty_tracks(layout: ColumnLayout) -> np.ndarray:
    return np.zeros((0, layout.ncols), dtype=np.float64)


def system_code(system) -> float:
    """SATSYS column value for a system given as id or character"""
    return float(ord(sys_to_char(to_sys(system))))