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

"""Satellite identification for gnsstt.

A satellite is identified by its constellation and its PRN/SVN within that
constellation. Constellations are referred to either by their system id
(``SYS_GPS`` ...) or by the single character used in RINEX and CGGTTS files:

- GPS (G)
- GLONASS (R)
- Galileo (E)
- BeiDou (C)
"""

from .constants import (DEFAULT_MAX_PRN, SYS_BDS, SYS_GAL, SYS_GLO, SYS_GPS,
                        SYS_NONE)

__all__ = [
    'SYS_TO_CHAR', 'CHAR_TO_SYS', 'SYS_TO_NAME', 'char_to_sys', 'sys_to_char',
    'sys_name', 'to_sys', 'is_valid_prn'
]

# System ID to character mapping
SYS_TO_CHAR = {
    SYS_GPS: 'G',
    SYS_GLO: 'R',
    SYS_GAL: 'E',
    SYS_BDS: 'C',
}

# Character to system ID mapping
CHAR_TO_SYS = {v: k for k, v in SYS_TO_CHAR.items()}

SYS_TO_NAME = {
    SYS_GPS: 'GPS',
    SYS_GLO: 'GLONASS',
    SYS_GAL: 'Galileo',
    SYS_BDS: 'BeiDou',
}


def char_to_sys(system_char):
    """Convert a system character to a system id.

    Parameters
    ----------
    system_char : str
        Single character system identifier ('G', 'R', 'E', 'C'). A blank
        character is GPS, as in RINEX 2.xx.

    Returns
    -------
    int
        System id, or SYS_NONE if the character is not a supported system

    Examples
    --------
    >>> char_to_sys('R') == SYS_GLO
    True
    >>> char_to_sys('J') == SYS_NONE
    True
    """
    if system_char == ' ':
        return SYS_GPS
    return CHAR_TO_SYS.get(system_char.upper(), SYS_NONE)


def sys_to_char(sys):
    """Convert a system id to its single character identifier"""
    return SYS_TO_CHAR.get(sys, '?')


def sys_name(sys):
    """Human readable name of a satellite system"""
    return SYS_TO_NAME.get(sys, 'unknown')


def to_sys(system):
    """Normalize a system given as id or character to a system id.

    Raises
    ------
    ValueError
        If the system is not one of the supported constellations
    """
    if isinstance(system, str):
        sys = char_to_sys(system) if len(system) == 1 else SYS_NONE
    else:
        sys = system if system in SYS_TO_CHAR else SYS_NONE
    if sys == SYS_NONE:
        raise ValueError(f"Unsupported satellite system: {system!r}")
    return sys


def is_valid_prn(sys, prn, prn_ranges=None):
    """Check a PRN against the PRN range of its constellation.

    Parameters
    ----------
    sys : int
        System id
    prn : int
        PRN/SVN within the constellation
    prn_ranges : dict, optional
        Maximum PRN per system id, defaults to DEFAULT_MAX_PRN

    Returns
    -------
    bool
        True if 1 <= prn <= maximum PRN of the system
    """
    ranges = DEFAULT_MAX_PRN if prn_ranges is None else prn_ranges
    max_prn = ranges.get(sys, 0)
    return 1 <= prn <= max_prn
