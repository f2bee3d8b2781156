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
Observation and track matching.

Both matchers are ordered merge-joins: the two inputs are walked once with
one cursor each, relying on each input being sorted in time. Nothing is
ever compared against a full cross product.

- RINEX observations are matched on identical epochs. Every matched epoch
  yields one record per satellite slot holding (epoch, value A, value B).
- CGGTTS tracks are matched either on identical (MJD, STTIME, satellite)
  ('tracks' mode) or on identical (MJD, STTIME) blocks ('tracktime' mode).

Inputs are never modified; matched tracks are returned as new tables.
"""

import logging
from typing import Optional

import numpy as np
from numba import njit

from ..core.config import MatchMode, TrackMatchConfig
from ..core.constants import SYS_GPS
from ..core.data_structures import CggttsTracks, RinexObservations
from ..core.exceptions import MissingObservationError
from ..core.satellite_numbering import sys_name, to_sys

logger = logging.getLogger(__name__)

# satellite identity key: SATSYS character code * SV_KEY_SCALE + PRN
SV_KEY_SCALE = 1000.0


@njit(cache=True, fastmath=True)
def merge_join_epochs(t1, t2):
    """
    Indices of the epochs common to two sorted epoch vectors.

    Parameters
    ----------
    t1, t2 : ndarray
        Strictly increasing epoch vectors

    Returns
    -------
    idx1, idx2 : ndarray
        Index pairs with t1[idx1] == t2[idx2], in increasing epoch order
    """
    n1 = t1.shape[0]
    n2 = t2.shape[0]
    nmax = min(n1, n2)
    idx1 = np.empty(nmax, dtype=np.int64)
    idx2 = np.empty(nmax, dtype=np.int64)
    n = 0
    i = 0
    j = 0
    while i < n1 and j < n2:
        if t2[j] == t1[i]:
            idx1[n] = i
            idx2[n] = j
            n += 1
            i += 1
            j += 1
        elif t2[j] < t1[i]:
            j += 1
        else:
            i += 1
    return idx1[:n], idx2[:n]


@njit(cache=True, fastmath=True)
def merge_join_tracks(mjd1, st1, sv1, ioe1, mjd2, st2, sv2, ioe2, match_ephemeris):
    """
    Pair tracks with identical (MJD, STTIME, satellite).

    The cursor into the second table only moves forward and always rests on
    the first track of a time block; within a block the satellite is searched
    from that track on. A track of the second table is paired at most once.
    When ``match_ephemeris`` is set, candidates whose IOE differs are passed
    over, and a track left unpaired because of them is counted.

    Returns
    -------
    idx1, idx2 : ndarray
        Row pairs of matched tracks
    mismatches : int
        Number of tracks rejected for differing IOE
    """
    n1 = mjd1.shape[0]
    n2 = mjd2.shape[0]
    idx1 = np.empty(n1, dtype=np.int64)
    idx2 = np.empty(n1, dtype=np.int64)
    used2 = np.zeros(n2, dtype=np.bool_)
    n = 0
    mismatches = 0
    j = 0
    for i in range(n1):
        while j < n2:
            if mjd2[j] > mjd1[i]:
                break
            if mjd2[j] < mjd1[i]:
                j += 1
                continue
            if st2[j] > st1[i]:
                break
            if st2[j] < st1[i]:
                j += 1
                continue
            found = -1
            rejected = False
            k = j
            while k < n2 and mjd2[k] == mjd1[i] and st2[k] == st1[i]:
                if sv2[k] == sv1[i] and not used2[k]:
                    if match_ephemeris and ioe1[i] != ioe2[k]:
                        rejected = True
                    else:
                        found = k
                        break
                k += 1
            if found >= 0:
                used2[found] = True
                idx1[n] = i
                idx2[n] = found
                n += 1
            elif rejected:
                mismatches += 1
            break
    return idx1[:n], idx2[:n], mismatches


@njit(cache=True, fastmath=True)
def merge_join_track_times(mjd1, st1, mjd2, st2):
    """
    Mark the tracks of time blocks present in both tables.

    Returns
    -------
    keep1, keep2 : ndarray
        Boolean masks of the tracks in common (MJD, STTIME) blocks
    """
    n1 = mjd1.shape[0]
    n2 = mjd2.shape[0]
    keep1 = np.zeros(n1, dtype=np.bool_)
    keep2 = np.zeros(n2, dtype=np.bool_)
    i = 0
    j = 0
    while i < n1 and j < n2:
        if mjd1[i] == mjd2[j] and st1[i] == st2[j]:
            mjd = mjd1[i]
            st = st1[i]
            while i < n1 and mjd1[i] == mjd and st1[i] == st:
                keep1[i] = True
                i += 1
            while j < n2 and mjd2[j] == mjd and st2[j] == st:
                keep2[j] = True
                j += 1
        elif mjd2[j] < mjd1[i] or (mjd2[j] == mjd1[i] and st2[j] < st1[i]):
            j += 1
        else:
            i += 1
    return keep1, keep2


def _check_observation(data: RinexObservations, sys: int, obs_type: str):
    if not data.has_observation(sys, obs_type):
        name = data.file_name or 'observations'
        raise MissingObservationError(f"{name}: {sys_name(sys)} observation {obs_type} missing")


def match_observations(obs1: RinexObservations, obs2: RinexObservations,
                       system=SYS_GPS, obs_type: str = 'C1') -> np.ndarray:
    """Match the observations of two receivers on identical epochs.

    Parameters
    ----------
    obs1, obs2 : RinexObservations
        Observations to match
    system : int or str
        Satellite system, as id or character
    obs_type : str
        Observation code, e.g. 'C1' or 'C1C'

    Returns
    -------
    np.ndarray
        Shape (matched epochs, max PRN, 3) holding (epoch, obs1 value,
        obs2 value) for every satellite slot. Missing observations are 0.

    Raises
    ------
    MissingObservationError
        If either input lacks the observation type for the system
    """
    sys = to_sys(system)
    _check_observation(obs1, sys, obs_type)
    _check_observation(obs2, sys, obs_type)

    values1 = obs1.observations[sys].obs[:, :, obs1.obs_column(sys, obs_type)]
    values2 = obs2.observations[sys].obs[:, :, obs2.obs_column(sys, obs_type)]

    t1 = np.ascontiguousarray(obs1.t, dtype=np.float64)
    t2 = np.ascontiguousarray(obs2.t, dtype=np.float64)
    idx1, idx2 = merge_join_epochs(t1, t2)

    nsv = max(values1.shape[1], values2.shape[1])
    matches = np.zeros((len(idx1), nsv, 3), dtype=np.float64)
    matches[:, :, 0] = t1[idx1][:, np.newaxis]
    matches[:, :values1.shape[1], 1] = values1[idx1]
    matches[:, :values2.shape[1], 2] = values2[idx2]

    logger.info(f"{len(idx1)} matched epochs ({sys_name(sys)} {obs_type})")
    return matches


def _sv_keys(data: CggttsTracks) -> np.ndarray:
    return data.tracks[:, data.layout.SATSYS] * SV_KEY_SCALE + data.tracks[:, data.layout.PRN]


def _key_columns(data: CggttsTracks, name: str) -> np.ndarray:
    return np.ascontiguousarray(data.tracks[:, data.layout.index(name)])


def match_tracks(tracks1: CggttsTracks, tracks2: CggttsTracks, match_ephemeris: bool = False,
                 match_mode='tracks', config: Optional[TrackMatchConfig] = None) -> tuple:
    """Match two CGGTTS track tables.

    Parameters
    ----------
    tracks1, tracks2 : CggttsTracks
        Track tables; each is sorted by PRN within its time blocks first if
        it is not already
    match_ephemeris : bool
        In 'tracks' mode, also require identical IOE
    match_mode : MatchMode or str
        'tracks' pairs tracks of the same satellite at the same track time;
        'tracktime' keeps every track of the time blocks present in both
    config : TrackMatchConfig, optional
        Overrides ``match_ephemeris`` and ``match_mode``

    Returns
    -------
    tuple[CggttsTracks, CggttsTracks]
        New tables holding the matched tracks. In 'tracks' mode row k of
        both tables is the same satellite; in 'tracktime' mode rows are not
        aligned. Both are empty when nothing matches.

    Raises
    ------
    ValueError
        If the match mode is unknown
    """
    if config is None:
        config = TrackMatchConfig(match_ephemeris=match_ephemeris, match_mode=match_mode)

    if not tracks1.sorted:
        tracks1 = tracks1.sort_by_prn()
    if not tracks2.sorted:
        tracks2 = tracks2.sort_by_prn()

    mjd1, st1 = _key_columns(tracks1, 'MJD'), _key_columns(tracks1, 'STTIME')
    mjd2, st2 = _key_columns(tracks2, 'MJD'), _key_columns(tracks2, 'STTIME')

    if config.match_mode is MatchMode.TRACKS:
        idx1, idx2, mismatches = merge_join_tracks(
            mjd1, st1, _sv_keys(tracks1), _key_columns(tracks1, 'IOE'),
            mjd2, st2, _sv_keys(tracks2), _key_columns(tracks2, 'IOE'),
            config.match_ephemeris)
        if config.match_ephemeris:
            logger.info(f"{mismatches} ephemeris mismatches")
        matched1 = tracks1.with_tracks(tracks1.tracks[idx1])
        matched2 = tracks2.with_tracks(tracks2.tracks[idx2])
    else:
        keep1, keep2 = merge_join_track_times(mjd1, st1, mjd2, st2)
        matched1 = tracks1.with_tracks(tracks1.tracks[keep1])
        matched2 = tracks2.with_tracks(tracks2.tracks[keep2])

    logger.info(f"{len(matched1)} and {len(matched2)} matched tracks ({config.match_mode.value})")
    return matched1, matched2
