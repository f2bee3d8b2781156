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

"""CGGTTS track file reader.

Reads CGGTTS version 01, 02 and 2E files, single or dual frequency, into a
:class:`~gnsstt.core.data_structures.CggttsTracks` table. Every file of a
multi-day load must have the same format variant.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

import numpy as np

from ..core.config import CggttsReadConfig, NamingConvention, as_enum
from ..core.constants import DUAL_FREQUENCY_MARKER, MISSING_DATA_MARKER
from ..core.data_structures import (ColumnLayout, CggttsTracks, empty_tracks,
                                    system_code)
from ..core.exceptions import CggttsFormatError

logger = logging.getLogger(__name__)

# Numeric fields between STTIME and the optional ionospheric block
TRACK_FIELDS = ('TRKL', 'ELV', 'AZTH', 'REFSV', 'SRSV', 'REFSYS', 'SRSYS',
                'DSG', 'IOE', 'MDTR', 'SMDT', 'MDIO', 'SMDI')
IONO_FIELDS = ('MSIO', 'SMSI', 'ISG')

# INT DLY codes of the C/A code delay; other band 1 codes are P1
CA_CODES = ('C1', 'C1C', 'L1C')

_NUMBER = r'[+-]?\d+\.?\d*'


class CggttsFormat(Enum):
    """CGGTTS format variants"""
    V1 = '01'   # GPS only, no SAT system letter
    V2 = '02'   # numeric PRN, frequency fields
    V2E = '2E'  # SAT system letter, frequency fields

    @property
    def has_sat_system(self) -> bool:
        return self is CggttsFormat.V2E

    @property
    def has_frequency_fields(self) -> bool:
        return self is not CggttsFormat.V1

    def layout(self, dual_frequency: bool) -> ColumnLayout:
        return ColumnLayout.for_format(self.has_frequency_fields, dual_frequency)

    @classmethod
    def from_token(cls, token: str) -> "CggttsFormat":
        normalized = {'1': '01', '01': '01', '2': '02', '02': '02', '2E': '2E'}.get(token.upper())
        if normalized is None:
            raise ValueError(token)
        return cls(normalized)


@dataclass
class CggttsHeader:
    """Header of one CGGTTS file"""
    format: Optional[CggttsFormat] = None
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
    fields: dict = field(default_factory=dict)
    comments: list = field(default_factory=list)


def _first_number(text: str) -> Optional[float]:
    match = re.search(_NUMBER, text.partition('=')[2])
    return float(match.group(0)) if match else None


def _delay(header: CggttsHeader, line: str, path: Path, line_no: int, name: str) -> float:
    value = _first_number(line)
    if value is None:
        logger.warning(f"{path.name} line {line_no}: unable to read {name}, using 0")
        return 0.0
    return value


def _set_version(header, match, line, path, line_no):
    try:
        header.format = CggttsFormat.from_token(match.group(1))
    except ValueError:
        raise CggttsFormatError(
            f"{path} line {line_no}: unable to determine the CGGTTS version from '{match.group(1)}'") from None
    header.fields['version'] = header.format.value


def _set_field(name):
    def setter(header, match, line, path, line_no):
        header.fields[name] = match.group(1).strip()
    return setter


def _set_lab(header, match, line, path, line_no):
    header.lab = match.group(1).strip()
    header.fields['lab'] = header.lab


def _add_comment(header, match, line, path, line_no):
    header.comments.append(match.group(1).strip())


def _set_int_delay(header, match, line, path, line_no):
    text = line.partition('=')[2].partition('CAL_ID')[0]
    labelled = re.findall(rf'({_NUMBER})\s*ns\s*\(([^)]*)\)', text)
    if labelled:
        for value, label in labelled:
            code = label.split()[-1] if label.split() else ''
            header.int_delays[code] = float(value)
            if code in CA_CODES:
                header.ca_delay = float(value)
            elif (len(code) > 1 and code[1] == '2') or code.startswith('P2'):
                header.p2_delay = float(value)
            else:
                header.p1_delay = float(value)
        return
    values = [float(v) for v in re.findall(_NUMBER, text)]
    if len(values) == 1:
        header.ca_delay = values[0]
    elif len(values) >= 2:
        header.p1_delay, header.p2_delay = values[:2]
    else:
        logger.warning(f"{path.name} line {line_no}: unable to read INT DLY, using 0")


def _set_cable_delay(header, match, line, path, line_no):
    header.cable_delay = _delay(header, line, path, line_no, 'CAB DLY')


def _set_reference_delay(header, match, line, path, line_no):
    header.reference_delay = _delay(header, line, path, line_no, 'REF DLY')


def _set_system_delay(header, match, line, path, line_no):
    header.system_delay = _delay(header, line, path, line_no, 'SYS DLY')


def _set_total_delay(header, match, line, path, line_no):
    header.total_delay = _delay(header, line, path, line_no, 'TOT DLY')


# (pattern, setter) pairs; the first matching pattern classifies the line
HEADER_CLASSIFIERS = (
    (re.compile(r'DATA\s*FORMAT\s*VERSION\s*=\s*(\S+)'), _set_version),
    (re.compile(r'^\s*REV\s+DATE\s*=(.*)'), _set_field('rev date')),
    (re.compile(r'^\s*RCVR\s*=(.*)'), _set_field('rcvr')),
    (re.compile(r'^\s*CH\s*=(.*)'), _set_field('ch')),
    (re.compile(r'^\s*IMS\s*=(.*)'), _set_field('ims')),
    (re.compile(r'^\s*LAB\s*=(.*)'), _set_lab),
    (re.compile(r'^\s*X\s*=(.*)'), _set_field('x')),
    (re.compile(r'^\s*Y\s*=(.*)'), _set_field('y')),
    (re.compile(r'^\s*Z\s*=(.*)'), _set_field('z')),
    (re.compile(r'^\s*FRAME\s*=(.*)'), _set_field('frame')),
    (re.compile(r'^\s*COMMENTS\s*=(.*)'), _add_comment),
    (re.compile(r'^\s*INT\s+DLY\s*=(.*)'), _set_int_delay),
    (re.compile(r'^\s*CAB\s+DLY\s*=(.*)'), _set_cable_delay),
    (re.compile(r'^\s*REF\s+DLY\s*=(.*)'), _set_reference_delay),
    (re.compile(r'^\s*SYS\s+DLY\s*=(.*)'), _set_system_delay),
    (re.compile(r'^\s*TOT\s+DLY\s*=(.*)'), _set_total_delay),
    (re.compile(r'^\s*REF\s*=(.*)'), _set_field('ref')),
    (re.compile(r'^\s*CKSUM\s*=(.*)'), _set_field('cksum')),
)


def classify_header_line(header: CggttsHeader, line: str, path: Path, line_no: int) -> bool:
    """Apply the first matching classifier to a header line.

    Returns
    -------
    bool
        True if the line was recognized
    """
    for pattern, setter in HEADER_CLASSIFIERS:
        match = pattern.search(line)
        if match:
            setter(header, match, line, path, line_no)
            return True
    return False


def sttime_seconds(token: str) -> int:
    """Convert an hhmmss start time to seconds of day from its digit codes"""
    if len(token) != 6 or not token.isdigit():
        raise ValueError(f"bad STTIME '{token}'")
    d = [ord(c) - 48 for c in token]
    return (d[0] * 10 + d[1]) * 3600 + (d[2] * 10 + d[3]) * 60 + d[4] * 10 + d[5]


class CggttsReader:
    """Reader for a single CGGTTS file.

    Parameters
    ----------
    filename : str or Path
        CGGTTS file
    """

    def __init__(self, filename):
        self.filename = Path(filename)
        self.header = CggttsHeader()
        self.layout: Optional[ColumnLayout] = None
        self.missing_lines = 0

    def read(self) -> CggttsTracks:
        """Read the header and all tracks.

        Bad tracks are kept and tracks are left in file order.

        Raises
        ------
        FileNotFoundError
            If the file does not exist
        CggttsFormatError
            If the version is unknown or a track line is malformed
        """
        if not self.filename.is_file():
            raise FileNotFoundError(f"unable to open {self.filename}")

        rows = []
        with self.filename.open('r', encoding='ascii', errors='replace') as fh:
            lines = enumerate((line.rstrip('\r\n') for line in fh), start=1)
            self._read_header(lines)
            for line_no, line in lines:
                if not line.strip():
                    continue
                if MISSING_DATA_MARKER in line:
                    self.missing_lines += 1
                    continue
                rows.append(self._scan_track(line, line_no))

        tracks = np.array(rows, dtype=np.float64) if rows else empty_tracks(self.layout)
        if self.missing_lines:
            logger.info(f"{self.filename.name}: skipped {self.missing_lines} lines with missing data")
        logger.debug(f"{self.filename.name}: {len(rows)} tracks")

        header = self.header
        return CggttsTracks(
            tracks=tracks,
            layout=self.layout,
            version=header.format.value,
            dual_frequency=header.dual_frequency,
            lab=header.lab,
            cable_delay=header.cable_delay,
            reference_delay=header.reference_delay,
            ca_delay=header.ca_delay,
            p1_delay=header.p1_delay,
            p2_delay=header.p2_delay,
            system_delay=header.system_delay,
            total_delay=header.total_delay,
            int_delays=dict(header.int_delays),
            header=dict(header.fields, comments=list(header.comments)),
            missing_lines=self.missing_lines,
        )

    @property
    def format(self) -> Optional[CggttsFormat]:
        return self.header.format

    def _read_header(self, lines):
        # the header ends with the column label line and the units line
        for line_no, line in lines:
            if line_no == 1 and not re.search(r'DATA\s*FORMAT\s*VERSION', line):
                raise CggttsFormatError(f"{self.filename} line 1: unable to determine the CGGTTS version")
            if 'STTIME' in line:
                if self.header.format is None:
                    raise CggttsFormatError(f"{self.filename}: unable to determine the CGGTTS version")
                self.header.dual_frequency = DUAL_FREQUENCY_MARKER in line
                self.layout = self.header.format.layout(self.header.dual_frequency)
                next(lines, None)
                return
            classify_header_line(self.header, line, self.filename, line_no)
        raise CggttsFormatError(f"{self.filename}: track column labels not found")

    def _scan_track(self, line: str, line_no: int) -> np.ndarray:
        layout = self.layout
        fmt = self.header.format
        row = np.zeros(layout.ncols, dtype=np.float64)
        try:
            if fmt.has_sat_system:
                # SAT may not be zero padded, eg 'G 5'
                row[layout.SATSYS] = float(ord(line[0]))
                row[layout.PRN] = int(line[1:3])
                tokens = line[3:].split()
            else:
                tokens = line.split()
                row[layout.SATSYS] = system_code('G')
                row[layout.PRN] = int(tokens.pop(0))

            expected = 3 + len(TRACK_FIELDS) + 1
            if layout.dual_frequency:
                expected += len(IONO_FIELDS)
            if fmt.has_frequency_fields:
                expected += 3
            if len(tokens) != expected:
                raise ValueError(f"expected {expected} fields after SAT, found {len(tokens)}")

            row[layout.CL] = int(tokens[0], 16)
            row[layout.MJD] = int(tokens[1])
            row[layout.STTIME] = sttime_seconds(tokens[2])
            pos = 3
            names = TRACK_FIELDS + (IONO_FIELDS if layout.dual_frequency else ())
            for name in names:
                row[getattr(layout, name)] = float(tokens[pos])
                pos += 1
            if fmt.has_frequency_fields:
                row[layout.FR] = float(tokens[pos])
                row[layout.HC] = float(tokens[pos + 1])
                frc = f"{tokens[pos + 2]:<{ColumnLayout.FRC_WIDTH}}"[:ColumnLayout.FRC_WIDTH]
                row[layout.FRC:layout.FRC + ColumnLayout.FRC_WIDTH] = [ord(c) for c in frc]
                pos += 3
            row[layout.CK] = int(tokens[pos], 16)
        except (ValueError, IndexError) as exc:
            raise CggttsFormatError(f"{self.filename} line {line_no}: bad track '{line}': {exc}") from exc
        return row


def read_cggtts(filename) -> CggttsTracks:
    """Read one CGGTTS file without filtering or sorting"""
    return CggttsReader(filename).read()


def cggtts_filename(directory, stub: str, mjd: int,
                    convention=NamingConvention.SIMPLE) -> Path:
    """Path of the CGGTTS file for an MJD.

    Parameters
    ----------
    directory : str or Path
        Directory holding the files
    stub : str
        Part of the file name besides the MJD
    mjd : int
        Modified Julian Day
    convention : NamingConvention or str
        'simple' gives ``{MJD}{stub}``, 'bipm' gives ``{stub}{YY}.{DDD}``
        where YYDDD is the MJD
    """
    convention = as_enum(NamingConvention, convention)
    mjd = int(mjd)
    if convention is NamingConvention.BIPM:
        name = f"{stub}{mjd // 1000:02d}.{mjd % 1000:03d}"
    else:
        name = f"{mjd}{stub}"
    return Path(directory) / name


def parse_cggtts(start_mjd: int, stop_mjd: int, directory, stub: str,
                 config: Optional[CggttsReadConfig] = None, **options) -> CggttsTracks:
    """Load the CGGTTS files of an inclusive MJD range.

    Missing files are skipped with a warning. Tracks of all files are
    concatenated, bad tracks are removed once over the whole table (unless
    disabled) and the tracks are sorted by PRN within each track time.

    Parameters
    ----------
    start_mjd, stop_mjd : int
        First and last MJD to load
    directory : str or Path
        Directory holding the files
    stub : str
        Part of the file name besides the MJD
    config : CggttsReadConfig, optional
        Loader options
    **options
        Loader options given by name, e.g. ``naming_convention='bipm'``;
        used when ``config`` is not given

    Returns
    -------
    CggttsTracks
        Track table; empty if no file could be read

    Raises
    ------
    CggttsFormatError
        If a file is malformed or its format variant differs from the
        first file read
    """
    if config is None:
        config = CggttsReadConfig.from_dict(options)

    loaded = []
    for mjd in range(int(start_mjd), int(stop_mjd) + 1):
        fname = cggtts_filename(directory, stub, mjd, config.naming_convention)
        if not fname.is_file():
            logger.warning(f"{fname} is missing")
            continue
        data = read_cggtts(fname)
        if loaded and (data.version, data.dual_frequency) != (loaded[0].version, loaded[0].dual_frequency):
            raise CggttsFormatError(
                f"{fname}: format {data.version} (dual frequency {data.dual_frequency}) differs from "
                f"{loaded[0].version} (dual frequency {loaded[0].dual_frequency})")
        loaded.append(data)

    if not loaded:
        logger.warning(f"no CGGTTS data for MJD {start_mjd} to {stop_mjd}")
        layout = CggttsFormat.V1.layout(False)
        return CggttsTracks(tracks=empty_tracks(layout), layout=layout, sorted=True)

    # header values of the last file read apply to the whole table
    last = loaded[-1]
    data = last.with_tracks(np.vstack([d.tracks for d in loaded]),
                            missing_lines=sum(d.missing_lines for d in loaded))
    if config.remove_bad_tracks:
        data = data.remove_bad_tracks()
    data = data.sort_by_prn()

    logger.info(f"Loaded {len(data)} tracks from {len(loaded)} files "
                f"(bad tracks {data.bad_tracks}, missing lines {data.missing_lines})")
    return data
