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

"""Averaged series of matched observations and CGGTTS tracks.

Means are unweighted and taken over the satellites actually contributing at
each epoch. Epochs without any contribution are absent from the output.
"""

import logging
from typing import Optional

import numpy as np
import pandas as pd

from ..core.constants import MISSING_OBS, SECONDS_PER_DAY, SYS_GPS
from ..core.data_structures import CggttsTracks, RinexObservations, system_code
from .matching import match_observations

logger = logging.getLogger(__name__)


def difference_series(matches: np.ndarray) -> np.ndarray:
    """Mean of (value A - value B) at each matched epoch.

    Parameters
    ----------
    matches : np.ndarray
        Output of :func:`match_observations`, shape (n, nsv, 3)

    Returns
    -------
    np.ndarray
        Shape (m, 2) of (epoch, mean difference), m <= n. A satellite
        contributes only where both its values are present.
    """
    if matches.shape[1] == 0:
        return np.zeros((0, 2))
    value1 = matches[:, :, 1]
    value2 = matches[:, :, 2]
    valid = (value1 != MISSING_OBS) & (value2 != MISSING_OBS)
    count = np.count_nonzero(valid, axis=1)
    total = np.where(valid, value1 - value2, 0.0).sum(axis=1)
    rows = count > 0
    return np.column_stack((matches[rows, 0, 0], total[rows] / count[rows]))


def averaged_difference(obs1: RinexObservations, obs2: RinexObservations,
                        system=SYS_GPS, obs_type: str = 'C1') -> np.ndarray:
    """Match two receivers' observations and average their differences.

    Returns
    -------
    np.ndarray
        Shape (n, 2) of (epoch, mean of obs1 - obs2)
    """
    series = difference_series(match_observations(obs1, obs2, system, obs_type))
    logger.debug(f"{len(series)} epochs with common observations")
    return series


def average_tracks(data: CggttsTracks, system='G', column: str = 'REFSYS',
                   iono_column: Optional[str] = None) -> np.ndarray:
    """Average a track field over the tracks of each track time.

    Parameters
    ----------
    data : CggttsTracks
        Track table
    system : str or int
        Satellite system of the tracks to average
    column : str
        Field to average
    iono_column : str, optional
        Field added to ``column`` before averaging, e.g. 'MDIO' to undo the
        modelled ionospheric correction

    Returns
    -------
    np.ndarray
        Shape (n, 2) of (fractional MJD, mean), one row per run of tracks
        with identical (MJD, STTIME)
    """
    if not data.sorted:
        data = data.sort_by_prn()
    layout = data.layout
    tracks = data.tracks[data.tracks[:, layout.SATSYS] == system_code(system)]
    if tracks.shape[0] == 0:
        return np.zeros((0, 2))

    values = tracks[:, layout.index(column)].copy()
    if iono_column is not None:
        values += tracks[:, layout.index(iono_column)]

    mjd = tracks[:, layout.MJD]
    sttime = tracks[:, layout.STTIME]
    new_block = np.ones(len(tracks), dtype=bool)
    new_block[1:] = (mjd[1:] != mjd[:-1]) | (sttime[1:] != sttime[:-1])
    block = np.cumsum(new_block) - 1
    sums = np.bincount(block, weights=values)
    counts = np.bincount(block)
    first = np.flatnonzero(new_block)
    return np.column_stack((mjd[first] + sttime[first] / SECONDS_PER_DAY, sums / counts))


def series_to_frame(series: np.ndarray, value_name: str = 'value',
                    epoch_name: str = 'epoch') -> pd.DataFrame:
    """Two-column series as a DataFrame"""
    series = np.asarray(series, dtype=np.float64).reshape(-1, 2)
    return pd.DataFrame({epoch_name: series[:, 0], value_name: series[:, 1]})
