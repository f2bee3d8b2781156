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

"""RINEX observation file reader.

Decodes RINEX 2.xx and 3.xx observation files into one observation cube per
satellite system (see :class:`~gnsstt.core.data_structures.SatSysObservations`).
The cubes are sized for a day of data (or the span given by TIME OF LAST OBS)
at the header's observation interval, which makes matching observations of
two receivers a matter of walking two epoch vectors.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional

import numpy as np

from ..core.config import RinexReadConfig
from ..core.constants import (CAPACITY_DAYS, DEFAULT_OBS_INTERVAL, MISSING_OBS,
                              RINEX2_BAND_CODES, RINEX2_OBS_PER_LINE,
                              RINEX2_SATS_PER_LINE, RINEX_LABEL_COLUMN,
                              RINEX_OBS_VALUE_WIDTH, RINEX_OBS_WIDTH,
                              SECONDS_PER_DAY, SECONDS_PER_HOUR, SYS_BDS,
                              SYS_GAL, SYS_GLO, SYS_GPS, SYSTEMS)
from ..core.data_structures import RinexObservations, SatSysObservations
from ..core.exceptions import (CapacityExceededError, RinexFormatError,
                               RinexVersionError)
from ..core.satellite_numbering import (CHAR_TO_SYS, char_to_sys, is_valid_prn,
                                        sys_name)

logger = logging.getLogger(__name__)

# Satellite system field of RINEX VERSION / TYPE
HEADER_SYSTEMS = {
    ' ': (SYS_GPS,),
    'G': (SYS_GPS,),
    'R': (SYS_GLO,),
    'E': (SYS_GAL,),
    'C': (SYS_BDS,),
    'M': SYSTEMS,
}


class RinexFormat(Enum):
    """Record framing of a RINEX observation file"""
    V2 = 2  # satellites listed on the epoch line, observations wrapped 5 per line
    V3 = 3  # '>' epoch line, one line per satellite


@dataclass
class RinexHeader:
    """Fields decoded from a RINEX observation header"""
    version: str = ''
    file_type: str = ''
    sat_system: str = ' '
    systems: tuple = ()
    marker_name: str = ''
    interval: Optional[float] = None
    leap_seconds: Optional[int] = None
    time_of_first_obs: Optional[datetime] = None
    time_of_last_obs: Optional[datetime] = None
    time_system: str = 'GPS'
    types_v2: list = field(default_factory=list)
    types_v3: dict = field(default_factory=dict)
    obs_types: dict = field(default_factory=dict)
    n_types_v2: int = 0
    n_types_v3: dict = field(default_factory=dict)
    _v3_system: str = ''

    @property
    def major_ver(self) -> int:
        return int(float(self.version))

    @property
    def format(self) -> RinexFormat:
        try:
            return RinexFormat(self.major_ver)
        except ValueError:
            raise RinexVersionError(f"RINEX version {self.version} is not supported") from None


def _parse_time(text: str) -> datetime:
    year, month, day, hour, minute, sec = text.split()[:6]
    seconds = float(sec)
    whole = int(seconds)
    return datetime(int(year), int(month), int(day), int(hour), int(minute),
                    whole, int(round((seconds - whole) * 1e6)) % 1000000)


def _version_type(header: RinexHeader, line: str, path: Path):
    header.version = line[0:9].strip()
    header.file_type = line[20:21]
    header.sat_system = line[40:41] or ' '
    try:
        float(header.version)
    except ValueError:
        raise RinexFormatError(f"{path}: bad RINEX version '{header.version}'") from None
    if header.file_type not in ('O', 'o'):
        raise RinexFormatError(f"{path}: not an observation file (type '{header.file_type}')")
    if header.sat_system not in HEADER_SYSTEMS:
        raise RinexFormatError(f"{path}: satellite system '{header.sat_system}' is unknown")
    header.systems = HEADER_SYSTEMS[header.sat_system]


def _marker_name(header: RinexHeader, line: str, path: Path):
    header.marker_name = line[0:RINEX_LABEL_COLUMN].strip()


def _interval(header: RinexHeader, line: str, path: Path):
    header.interval = float(line[0:10])


def _leap_seconds(header: RinexHeader, line: str, path: Path):
    header.leap_seconds = int(line[0:6])


def _time_of_first_obs(header: RinexHeader, line: str, path: Path):
    header.time_of_first_obs = _parse_time(line[0:43])
    header.time_system = line[48:51].strip() or header.time_system


def _time_of_last_obs(header: RinexHeader, line: str, path: Path):
    header.time_of_last_obs = _parse_time(line[0:43])


def _types_of_observ(header: RinexHeader, line: str, path: Path):
    # RINEX 2.xx: all systems share one list, continued 9 codes per line
    count = line[0:6].strip()
    if count:
        header.n_types_v2 = int(count)
        header.types_v2 = []
    header.types_v2.extend(line[6:RINEX_LABEL_COLUMN].split())


def _sys_obs_types(header: RinexHeader, line: str, path: Path):
    # RINEX 3.xx: one list per system, continued 13 codes per line
    system_char = line[0:1]
    if system_char.strip():
        header._v3_system = system_char
        header.n_types_v3[system_char] = int(line[3:6])
        header.types_v3[system_char] = []
    elif not header._v3_system:
        raise RinexFormatError(f"{path}: SYS / # / OBS TYPES continuation without a system")
    header.types_v3[header._v3_system].extend(line[6:RINEX_LABEL_COLUMN].split())


HEADER_HANDLERS = {
    'RINEX VERSION / TYPE': _version_type,
    'MARKER NAME': _marker_name,
    'INTERVAL': _interval,
    'LEAP SECONDS': _leap_seconds,
    'TIME OF FIRST OBS': _time_of_first_obs,
    'TIME OF LAST OBS': _time_of_last_obs,
    '# / TYPES OF OBSERV': _types_of_observ,
    'SYS / # / OBS TYPES': _sys_obs_types,
}


def _resolve_obs_types(header: RinexHeader, path: Path):
    """Build the per-system observation type lists once the header is read"""
    if header.format is RinexFormat.V2:
        if len(header.types_v2) != header.n_types_v2:
            raise RinexFormatError(
                f"{path}: {header.n_types_v2} observation types declared, {len(header.types_v2)} found")
        # Column identity is the position in the shared list; codes that are
        # not valid for a system leave a gap in that system's list
        for sys in header.systems:
            bands = RINEX2_BAND_CODES[sys]
            header.obs_types[sys] = [code if len(code) > 1 and code[1] in bands else None
                                     for code in header.types_v2]
        for code in header.types_v2:
            if not any(code in header.obs_types[sys] for sys in header.systems):
                logger.warning(f"{path.name}: ignoring observation type {code}")
    else:
        for system_char, codes in header.types_v3.items():
            if len(codes) != header.n_types_v3[system_char]:
                raise RinexFormatError(
                    f"{path}: {header.n_types_v3[system_char]} {system_char} observation types declared, "
                    f"{len(codes)} found")
            sys = CHAR_TO_SYS.get(system_char)
            if sys is None or sys not in header.systems:
                logger.warning(f"{path.name}: ignoring {system_char} observations")
                continue
            header.obs_types[sys] = list(codes)


def read_header(lines: Iterator[str], path: Path) -> RinexHeader:
    """Decode the header, consuming lines up to END OF HEADER"""
    path = Path(path)
    header = RinexHeader()
    for line in lines:
        label = line[RINEX_LABEL_COLUMN:].strip()
        if label == 'END OF HEADER':
            break
        handler = HEADER_HANDLERS.get(label)
        if handler is None:
            continue
        if label != 'RINEX VERSION / TYPE' and not header.version:
            raise RinexFormatError(f"{path}: header does not start with RINEX VERSION / TYPE")
        try:
            handler(header, line, path)
        except (ValueError, IndexError) as exc:
            if isinstance(exc, RinexFormatError):
                raise
            raise RinexFormatError(f"{path}: bad header record '{label}': {exc}") from exc
    else:
        raise RinexFormatError(f"{path}: END OF HEADER not found")

    if not header.version:
        raise RinexFormatError(f"{path}: RINEX VERSION / TYPE missing")
    _resolve_obs_types(header, path)
    return header


def epoch_capacity(header: RinexHeader, interval: float) -> int:
    """Number of epochs to allocate: a day (or the declared span) plus 1%"""
    span = SECONDS_PER_DAY
    if header.time_of_first_obs is not None and header.time_of_last_obs is not None:
        declared = (header.time_of_last_obs - header.time_of_first_obs).total_seconds() + interval
        span = max(span, declared)
    return int(math.ceil(CAPACITY_DAYS * span / interval))


def _parse_obs(record: str, start: int) -> float:
    text = record[start:start + RINEX_OBS_VALUE_WIDTH].strip()
    if not text:
        return MISSING_OBS
    try:
        return float(text)
    except ValueError:
        # Unreadable fields are treated like blank ones
        logger.debug(f"unreadable observation field '{text}'")
        return MISSING_OBS


class _EpochIndex:
    """Maps epochs to rows of the observation cubes"""

    def __init__(self, capacity: int, path: Path):
        self.capacity = capacity
        self.path = path
        self.times: list[float] = []
        self._warned_order = False

    def row(self, epoch: float) -> int:
        if self.times:
            last = self.times[-1]
            if epoch == last:
                # repeated record for the same epoch shares the row
                return len(self.times) - 1
            if epoch < last and not self._warned_order:
                logger.warning(f"{self.path.name}: epoch {epoch} s precedes {last} s; "
                               "epochs past the end of the day are not supported")
                self._warned_order = True
        if len(self.times) >= self.capacity:
            raise CapacityExceededError(
                f"{self.path}: more than {self.capacity} epochs, the capacity allocated for the observation interval")
        self.times.append(epoch)
        return len(self.times) - 1


class RinexObsReader:
    """RINEX observation file reader (versions 2.xx and 3.xx).

    Parameters
    ----------
    filename : str or Path
        RINEX observation file
    config : RinexReadConfig, optional
        Reader options
    """

    supported_formats = (RinexFormat.V2, RinexFormat.V3)

    def __init__(self, filename, config: Optional[RinexReadConfig] = None):
        self.filename = Path(filename)
        self.config = config or RinexReadConfig()
        self.prn_ranges = self.config.prn_ranges.as_dict()
        self._bad_prns = set()
        self._last_hour = -1

    def read(self) -> RinexObservations:
        """Decode the file.

        Returns
        -------
        RinexObservations
            Epoch vector and one observation cube per satellite system

        Raises
        ------
        FileNotFoundError
            If the file does not exist
        RinexVersionError
            If the file's major version is not handled by this reader
        RinexFormatError
            If the file is malformed
        """
        if not self.filename.is_file():
            raise FileNotFoundError(f"unable to open {self.filename}")

        with self.filename.open('r', encoding='ascii', errors='replace') as fh:
            lines = (line.rstrip('\r\n') for line in fh)
            header = read_header(lines, self.filename)
            fmt = header.format
            if fmt not in self.supported_formats:
                raise RinexVersionError(
                    f"{self.filename}: RINEX version {header.version} is not handled by {type(self).__name__}")

            interval = header.interval
            if interval is None or interval <= 0:
                interval = DEFAULT_OBS_INTERVAL
                logger.warning(f"{self.filename.name}: INTERVAL not defined, assuming {interval:g} s")

            capacity = epoch_capacity(header, interval)
            observations = self._allocate(header, capacity)
            epochs = _EpochIndex(capacity, self.filename)

            if fmt is RinexFormat.V2:
                self._read_v2(lines, header, observations, epochs)
            else:
                self._read_v3(lines, header, observations, epochs)

        if self.config.show_progress:
            logger.info(f"{self.filename.name}: ... done")

        t, observations = self._trim(epochs.times, observations)
        logger.info(f"Loaded {len(t)} epochs from {self.filename.name} "
                    f"({', '.join(sys_name(s) for s in observations)})")

        return RinexObservations(
            version=header.version,
            t=t,
            observations=observations,
            interval=interval,
            leap_seconds=header.leap_seconds,
            time_of_first_obs=header.time_of_first_obs,
            time_of_last_obs=header.time_of_last_obs,
            time_system=header.time_system,
            marker_name=header.marker_name,
            file_name=str(self.filename),
        )

    def _allocate(self, header: RinexHeader, capacity: int) -> dict:
        observations = {}
        for sys in header.systems:
            sat_obs = SatSysObservations(sys, header.obs_types.get(sys))
            if not sat_obs.codes:
                logger.warning(f"{self.filename.name}: no observation types for {sat_obs.name}, ignoring it")
                continue
            sat_obs.allocate(capacity, self.prn_ranges[sys])
            observations[sys] = sat_obs
        return observations

    def _trim(self, times: list, observations: dict):
        """Drop epochs at which no satellite has any observation"""
        n = len(times)
        occupied = np.zeros(n, dtype=bool)
        for sat_obs in observations.values():
            occupied |= np.any(sat_obs.obs[:n] != MISSING_OBS, axis=(1, 2))
        rows = np.flatnonzero(occupied)
        trimmed = {sys: sat_obs.take_epochs(rows) for sys, sat_obs in observations.items()}
        return np.asarray(times, dtype=np.float64)[rows], trimmed

    def _next_line(self, lines: Iterator[str]) -> str:
        line = next(lines, None)
        if line is None:
            raise RinexFormatError(f"{self.filename}: unexpected end of file inside an epoch record")
        return line

    def _skip(self, lines: Iterator[str], count: int):
        for _ in range(count):
            self._next_line(lines)

    def _satellite(self, sys: int, prn: int, observations: dict) -> Optional[SatSysObservations]:
        if sys not in observations:
            return None
        if not is_valid_prn(sys, prn, self.prn_ranges):
            if (sys, prn) not in self._bad_prns:
                logger.warning(f"{self.filename.name}: {sys_name(sys)} PRN {prn} is out of range, skipping it")
                self._bad_prns.add((sys, prn))
            return None
        return observations[sys]

    def _progress(self, hour: int):
        if self.config.show_progress and hour != self._last_hour:
            logger.info(f"{self.filename.name}: hour {hour}")
            self._last_hour = hour

    def _read_v2(self, lines, header: RinexHeader, observations: dict, epochs: _EpochIndex):
        ntypes = len(header.types_v2)
        nlines = max(1, math.ceil(ntypes / RINEX2_OBS_PER_LINE))
        width = RINEX2_OBS_PER_LINE * RINEX_OBS_WIDTH

        for line in lines:
            if not line.strip():
                continue
            try:
                flag = int(line[28:29].strip() or 0)
                nsats = int(line[29:32])
            except ValueError:
                raise RinexFormatError(f"{self.filename}: bad epoch record '{line}'") from None

            if 1 < flag < 6:
                # the count field holds the number of header lines that follow
                logger.warning(f"{self.filename.name}: skipping event record (flag {flag})")
                self._skip(lines, nsats)
                continue

            # satellite list, continued 12 per line
            sats = line[32:68]
            for _ in range(max(0, math.ceil((nsats - RINEX2_SATS_PER_LINE) / RINEX2_SATS_PER_LINE))):
                sats += self._next_line(lines)[32:68]

            if flag > 1:
                # cycle slip records share the observation layout
                logger.warning(f"{self.filename.name}: skipping cycle slip record")
                self._skip(lines, nsats * nlines)
                continue

            try:
                hour = int(line[10:12])
                epoch = hour * SECONDS_PER_HOUR + int(line[13:15]) * 60 + float(line[15:26])
            except ValueError:
                raise RinexFormatError(f"{self.filename}: bad epoch record '{line}'") from None
            self._progress(hour)
            row = epochs.row(epoch)

            for k in range(nsats):
                svid = sats[3 * k:3 * k + 3]
                record = ''.join(f"{self._next_line(lines):<{width}}"[:width] for _ in range(nlines))
                try:
                    prn = int(svid[1:3])
                except ValueError:
                    raise RinexFormatError(f"{self.filename}: bad satellite '{svid}' in '{line}'") from None
                sat_obs = self._satellite(char_to_sys(svid[0:1] or ' '), prn, observations)
                if sat_obs is None:
                    continue
                for col, code in enumerate(sat_obs.obs_types):
                    if code is None:
                        continue
                    value = _parse_obs(record, col * RINEX_OBS_WIDTH)
                    if value != MISSING_OBS:
                        sat_obs.insert(row, prn, col, value)

    def _read_v3(self, lines, header: RinexHeader, observations: dict, epochs: _EpochIndex):
        first_date: Optional[date] = None
        if header.time_of_first_obs is not None:
            first_date = header.time_of_first_obs.date()

        for line in lines:
            if not line.strip():
                continue
            if not line.startswith('>'):
                raise RinexFormatError(f"{self.filename}: expected an epoch record, got '{line}'")
            try:
                flag = int(line[31:32].strip() or 0)
                nsats = int(line[32:35])
            except ValueError:
                raise RinexFormatError(f"{self.filename}: bad epoch record '{line}'") from None

            if flag > 1:
                logger.warning(f"{self.filename.name}: skipping event record (flag {flag})")
                self._skip(lines, nsats)
                continue

            try:
                day = date(int(line[2:6]), int(line[7:9]), int(line[10:12]))
                hour = int(line[13:15])
                epoch = hour * SECONDS_PER_HOUR + int(line[16:18]) * 60 + float(line[18:29])
            except ValueError:
                raise RinexFormatError(f"{self.filename}: bad epoch record '{line}'") from None
            if first_date is None:
                first_date = day
            epoch += (day - first_date).days * SECONDS_PER_DAY
            self._progress(hour)
            if nsats <= 0:
                continue
            row = epochs.row(epoch)

            for _ in range(nsats):
                sat_line = self._next_line(lines)
                sys = CHAR_TO_SYS.get(sat_line[0:1])
                if sys is None:
                    continue
                try:
                    prn = int(sat_line[1:3])
                except ValueError:
                    raise RinexFormatError(f"{self.filename}: bad satellite record '{sat_line}'") from None
                sat_obs = self._satellite(sys, prn, observations)
                if sat_obs is None:
                    continue
                # trailing missing observations may be absent from the line
                max_obs = min(math.ceil((len(sat_line) - 3) / RINEX_OBS_WIDTH), sat_obs.nobs_types)
                for col in range(max_obs):
                    value = _parse_obs(sat_line, 3 + col * RINEX_OBS_WIDTH)
                    if value != MISSING_OBS:
                        sat_obs.insert(row, prn, col, value)


class Rinex2ObsReader(RinexObsReader):
    """Reader accepting RINEX 2.xx observation files only"""

    supported_formats = (RinexFormat.V2,)


class Rinex3ObsReader(RinexObsReader):
    """Reader accepting RINEX 3.xx observation files only"""

    supported_formats = (RinexFormat.V3,)


def parse_rinex(filename, config: Optional[RinexReadConfig] = None, **options) -> RinexObservations:
    """Decode a RINEX observation file.

    Parameters
    ----------
    filename : str or Path
        RINEX observation file (version 2.xx or 3.xx)
    config : RinexReadConfig, optional
        Reader options
    **options
        Reader options given by name, e.g. ``show_progress=True``; used when
        ``config`` is not given

    Returns
    -------
    RinexObservations
        Decoded observations
    """
    if config is None:
        config = RinexReadConfig.from_dict(options)
    return RinexObsReader(filename, config).read()
