#!/usr/bin/env python3
"""Test suite for the RINEX observation readers"""

import os
import shutil
import tempfile
import unittest
from datetime import datetime

import numpy as np

from gnsstt.core.config import PrnRanges, RinexReadConfig
from gnsstt.core.constants import SYS_BDS, SYS_GAL, SYS_GLO, SYS_GPS
from gnsstt.core.exceptions import (CapacityExceededError, RinexFormatError,
                                    RinexVersionError)
from gnsstt.io.rinex import (Rinex2ObsReader, Rinex3ObsReader, RinexObsReader,
                             epoch_capacity, parse_rinex, read_header)


def header_line(content, label):
    return f"{content:<60}{label:<20}"


def obs_field(value):
    return ' ' * 16 if value is None or value == 0 else f"{value:14.3f}  "


def rinex2_header(types, system='G', interval=30.0, extra=()):
    lines = [header_line(f"{'2.11':>9}{'':11}{'O':<20}{system:<20}", 'RINEX VERSION / TYPE'),
             header_line('TEST', 'MARKER NAME')]
    for k in range(0, len(types), 9):
        count = f"{len(types):6d}" if k == 0 else ' ' * 6
        lines.append(header_line(count + ''.join(f"{code:>6}" for code in types[k:k + 9]),
                                 '# / TYPES OF OBSERV'))
    if interval is not None:
        lines.append(header_line(f"{interval:10.3f}", 'INTERVAL'))
    lines.extend(extra)
    lines.append(header_line('', 'END OF HEADER'))
    return lines


def rinex2_epoch(seconds, sats, flag=0):
    """Epoch record; sats is a list of (svid, [values])"""
    hh, rem = divmod(seconds, 3600)
    mi, sec = divmod(rem, 60)
    ids = ''.join(svid for svid, _ in sats)
    lines = [f" 20  1  1 {int(hh):2d} {int(mi):2d}{sec:11.7f}  {flag:1d}{len(sats):3d}{ids[:36]}"]
    for k in range(36, len(ids), 36):
        lines.append(f"{'':32}{ids[k:k + 36]}")
    for _, values in sats:
        for k in range(0, len(values), 5):
            lines.append(''.join(obs_field(v) for v in values[k:k + 5]).rstrip())
    return lines


def rinex3_header(types_by_system, system='M', interval=30.0, first=(2020, 1, 1, 0, 0, 0.0)):
    lines = [header_line(f"{'3.04':>9}{'':11}{'OBSERVATION DATA':<20}{system:<20}", 'RINEX VERSION / TYPE')]
    for sys_char, types in types_by_system.items():
        for k in range(0, len(types), 13):
            head = f"{sys_char}  {len(types):3d}" if k == 0 else ' ' * 6
            lines.append(header_line(head + ''.join(f" {code:>3}" for code in types[k:k + 13]),
                                     'SYS / # / OBS TYPES'))
    if interval is not None:
        lines.append(header_line(f"{interval:10.3f}", 'INTERVAL'))
    if first is not None:
        y, mo, d, h, mi, s = first
        lines.append(header_line(f"{y:6d}{mo:6d}{d:6d}{h:6d}{mi:6d}{s:13.7f}     GPS", 'TIME OF FIRST OBS'))
    lines.append(header_line('    18', 'LEAP SECONDS'))
    lines.append(header_line('', 'END OF HEADER'))
    return lines


def rinex3_epoch(seconds, sats, day=1, flag=0):
    """Epoch record; sats is a list of (svid, [values])"""
    hh, rem = divmod(seconds, 3600)
    mi, sec = divmod(rem, 60)
    lines = [f"> 2020 01 {day:02d} {int(hh):02d} {int(mi):02d}{sec:11.7f}  {flag:1d}{len(sats):3d}"]
    for svid, values in sats:
        lines.append((svid + ''.join(obs_field(v) for v in values)).rstrip())
    return lines


class RinexTestCase(unittest.TestCase):

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def write(self, name, lines):
        path = os.path.join(self.test_dir, name)
        with open(path, 'w') as f:
            f.write('\n'.join(lines) + '\n')
        return path


class TestRinexHeader(RinexTestCase):
    """Test header decoding"""

    def test_version2_types_with_continuation(self):
        types = ['C1', 'L1', 'L2', 'P1', 'P2', 'D1', 'D2', 'S1', 'S2', 'C5', 'L5', 'C7']
        lines = rinex2_header(types, system='M')
        header = read_header(iter(lines), self.test_dir)
        self.assertEqual(header.types_v2, types)
        # C7 is a Galileo/BeiDou band only
        self.assertIsNone(header.obs_types[SYS_GPS][11])
        self.assertEqual(header.obs_types[SYS_GAL][11], 'C7')
        self.assertIsNone(header.obs_types[SYS_GAL][2])
        self.assertEqual(header.obs_types[SYS_GLO][2], 'L2')
        self.assertEqual(header.obs_types[SYS_BDS][11], 'C7')

    def test_version3_types_with_continuation(self):
        gps = ['C1C', 'L1C', 'D1C', 'S1C', 'C2W', 'L2W', 'D2W', 'S2W', 'C5Q', 'L5Q', 'D5Q', 'S5Q', 'C1W', 'L1W']
        lines = rinex3_header({'G': gps, 'E': ['C1C', 'L1C'], 'J': ['C1C']})
        header = read_header(iter(lines), self.test_dir)
        self.assertEqual(header.obs_types[SYS_GPS], gps)
        self.assertEqual(header.obs_types[SYS_GAL], ['C1C', 'L1C'])
        self.assertEqual(header.leap_seconds, 18)
        self.assertEqual(header.time_of_first_obs, datetime(2020, 1, 1))
        self.assertEqual(header.time_system, 'GPS')

    def test_unknown_header_system(self):
        lines = rinex2_header(['C1'], system='X')
        with self.assertRaises(RinexFormatError):
            read_header(iter(lines), self.test_dir)

    def test_missing_end_of_header(self):
        lines = rinex2_header(['C1'])[:-1]
        with self.assertRaises(RinexFormatError):
            read_header(iter(lines), self.test_dir)

    def test_capacity(self):
        header = read_header(iter(rinex2_header(['C1'])), self.test_dir)
        self.assertEqual(epoch_capacity(header, 30.0), 2909)
        self.assertEqual(epoch_capacity(header, 1.0), 87264)


class TestRinex2Reader(RinexTestCase):
    """Test RINEX 2.xx observation decoding"""

    def test_read(self):
        types = ['C1', 'L1', 'L2', 'P2', 'S1', 'S2']
        lines = rinex2_header(types, extra=[header_line('  2020     1     1     0     0    0.0000000     GPS',
                                                        'TIME OF FIRST OBS')])
        lines += rinex2_epoch(0, [('G05', [2.0e7, 1.1e8, 8.5e7, 2.0e7 + 5, 45.0, 40.0]),
                                  ('G12', [2.1e7, 0, 0, 0, 0, 0])])
        lines += rinex2_epoch(30, [('G05', [2.0e7 + 30, 0, 0, 0, 0, 41.0])])
        data = parse_rinex(self.write('test.20o', lines))

        self.assertEqual(data.version, '2.11')
        self.assertEqual(data.interval, 30.0)
        self.assertEqual(data.marker_name, 'TEST')
        np.testing.assert_array_equal(data.t, [0.0, 30.0])
        gps = data.observations[SYS_GPS]
        self.assertEqual(gps.obs.shape, (2, 32, 6))
        c1 = data.obs_column(SYS_GPS, 'C1')
        np.testing.assert_allclose(gps.obs[:, 4, c1], [2.0e7, 2.0e7 + 30])
        np.testing.assert_allclose(gps.obs[:, 11, c1], [2.1e7, 0.0])
        self.assertEqual(gps.obs[1, 4, data.obs_column(SYS_GPS, 'S2')], 41.0)
        self.assertEqual(gps.obs[1, 4, data.obs_column(SYS_GPS, 'L1')], 0.0)

    def test_satellite_continuation_line(self):
        sats = [(f"G{prn:02d}", [1000.0 + prn]) for prn in range(1, 15)]
        lines = rinex2_header(['C1']) + rinex2_epoch(0, sats)
        data = parse_rinex(self.write('many.20o', lines))
        np.testing.assert_allclose(data.observations[SYS_GPS].obs[0, :14, 0], 1000.0 + np.arange(1, 15))

    def test_blank_system_is_gps(self):
        lines = rinex2_header(['C1']) + rinex2_epoch(0, [(' 07', [123.0])])
        data = parse_rinex(self.write('blank.20o', lines))
        self.assertEqual(data.observations[SYS_GPS].obs[0, 6, 0], 123.0)

    def test_mixed_file_skips_unknown_systems(self):
        lines = rinex2_header(['C1', 'L1'], system='M')
        lines += rinex2_epoch(0, [('G01', [1.0, 2.0]), ('S20', [5.0, 6.0]), ('R03', [3.0, 4.0])])
        data = parse_rinex(self.write('mixed.20o', lines))
        self.assertEqual(data.observations[SYS_GPS].obs[0, 0, 0], 1.0)
        self.assertEqual(data.observations[SYS_GLO].obs[0, 2, 1], 4.0)

    def test_missing_interval_defaults(self):
        lines = rinex2_header(['C1'], interval=None) + rinex2_epoch(0, [('G01', [1.0])])
        with self.assertLogs('gnsstt.io.rinex', level='WARNING') as logs:
            data = parse_rinex(self.write('nointerval.20o', lines))
        self.assertEqual(data.interval, 30.0)
        self.assertTrue(any('INTERVAL' in message for message in logs.output))

    def test_empty_epochs_are_purged(self):
        lines = rinex2_header(['C1'])
        lines += rinex2_epoch(0, [('G01', [1.0])])
        lines += rinex2_epoch(30, [('G01', [0])])
        lines += rinex2_epoch(60, [('G01', [3.0])])
        data = parse_rinex(self.write('gap.20o', lines))
        np.testing.assert_array_equal(data.t, [0.0, 60.0])
        self.assertEqual(data.observations[SYS_GPS].obs.shape[0], 2)
        np.testing.assert_array_equal(data.observations[SYS_GPS].obs[:, 0, 0], [1.0, 3.0])

    def test_repeated_epoch_shares_row(self):
        lines = rinex2_header(['C1'])
        lines += rinex2_epoch(0, [('G01', [1.0])])
        lines += rinex2_epoch(0, [('G02', [2.0])])
        data = parse_rinex(self.write('repeat.20o', lines))
        np.testing.assert_array_equal(data.t, [0.0])
        np.testing.assert_array_equal(data.observations[SYS_GPS].obs[0, :2, 0], [1.0, 2.0])

    def test_event_records_are_skipped(self):
        lines = rinex2_header(['C1'])
        lines += rinex2_epoch(0, [('G01', [1.0])])
        lines.append(f"{'':28}4{2:3d}")
        lines.append(header_line('EVENT', 'COMMENT'))
        lines.append(header_line('EVENT', 'COMMENT'))
        lines += rinex2_epoch(30, [('G01', [2.0])])
        data = parse_rinex(self.write('event.20o', lines))
        np.testing.assert_array_equal(data.t, [0.0, 30.0])

    def test_out_of_range_prn_skipped(self):
        lines = rinex2_header(['C1']) + rinex2_epoch(0, [('G40', [9.0]), ('G02', [2.0])])
        with self.assertLogs('gnsstt.io.rinex', level='WARNING'):
            data = parse_rinex(self.write('prn.20o', lines))
        self.assertEqual(data.observations[SYS_GPS].obs[0, 1, 0], 2.0)

    def test_capacity_exceeded(self):
        lines = rinex2_header(['C1'], interval=3600.0)
        for k in range(26):
            lines += rinex2_epoch(k * 60, [('G01', [1.0 + k])])
        with self.assertRaises(CapacityExceededError):
            parse_rinex(self.write('full.20o', lines))

    def test_truncated_record(self):
        lines = rinex2_header(['C1']) + rinex2_epoch(0, [('G01', [1.0]), ('G02', [2.0])])[:-1]
        with self.assertRaises(RinexFormatError):
            parse_rinex(self.write('truncated.20o', lines))

    def test_rejects_version3(self):
        lines = rinex3_header({'G': ['C1C']}) + rinex3_epoch(0, [('G01', [1.0])])
        with self.assertRaises(RinexVersionError):
            Rinex2ObsReader(self.write('v3.rnx', lines)).read()

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            parse_rinex(os.path.join(self.test_dir, 'nonexistent.20o'))

    def test_progress_logging(self):
        lines = rinex2_header(['C1']) + rinex2_epoch(0, [('G01', [1.0])]) + rinex2_epoch(3600, [('G01', [2.0])])
        with self.assertLogs('gnsstt.io.rinex', level='INFO') as logs:
            parse_rinex(self.write('progress.20o', lines), show_progress=True)
        self.assertTrue(any('hour 1' in message for message in logs.output))


class TestRinex3Reader(RinexTestCase):
    """Test RINEX 3.xx observation decoding"""

    def test_read(self):
        lines = rinex3_header({'G': ['C1C', 'L1C', 'S1C'], 'E': ['C1X', 'C5X']})
        lines += rinex3_epoch(0, [('G05', [2.0e7, 1.1e8, 45.0]), ('E11', [2.3e7, 2.3e7 + 2])])
        lines += rinex3_epoch(30, [('G05', [2.0e7 + 30]), ('E11', [0, 2.3e7 + 5])])
        data = RinexObsReader(self.write('test.rnx', lines)).read()

        self.assertEqual(data.major_ver, 3)
        self.assertEqual(data.minor_ver, 4)
        self.assertEqual(data.leap_seconds, 18)
        self.assertEqual(data.satellite_systems, [SYS_GPS, SYS_GAL])
        np.testing.assert_array_equal(data.t, [0.0, 30.0])
        gps = data.observations[SYS_GPS]
        np.testing.assert_allclose(gps.obs[:, 4, 0], [2.0e7, 2.0e7 + 30])
        # trailing fields absent from the line are missing
        np.testing.assert_array_equal(gps.obs[1, 4, 1:], [0.0, 0.0])
        gal = data.observations[SYS_GAL]
        np.testing.assert_allclose(gal.obs[:, 10, 1], [2.3e7 + 2, 2.3e7 + 5])
        self.assertEqual(gal.obs[1, 10, 0], 0.0)

    def test_day_offset(self):
        lines = rinex3_header({'G': ['C1C']})
        lines += rinex3_epoch(86370, [('G01', [1.0])])
        lines += rinex3_epoch(0, [('G01', [2.0])], day=2)
        data = parse_rinex(self.write('days.rnx', lines))
        np.testing.assert_array_equal(data.t, [86370.0, 86400.0])

    def test_beidou_prn_range(self):
        lines = rinex3_header({'C': ['C2I']}, system='C') + rinex3_epoch(0, [('C60', [3.0e7])])
        data = parse_rinex(self.write('bds.rnx', lines))
        self.assertEqual(data.observations[SYS_BDS].obs.shape[1], 64)
        self.assertEqual(data.observations[SYS_BDS].obs[0, 59, 0], 3.0e7)

        config = RinexReadConfig(prn_ranges=PrnRanges(beidou=40))
        with self.assertLogs('gnsstt.io.rinex', level='WARNING'):
            data = parse_rinex(self.write('bds.rnx', lines), config=config)
        self.assertEqual(data.observations[SYS_BDS].obs.shape[1], 40)
        self.assertEqual(data.n_epochs, 0)

    def test_missing_epoch_marker(self):
        lines = rinex3_header({'G': ['C1C']}) + rinex3_epoch(0, [('G01', [1.0])])
        lines.append('G02  20000000.000')
        with self.assertRaises(RinexFormatError):
            parse_rinex(self.write('marker.rnx', lines))

    def test_rejects_version2(self):
        lines = rinex2_header(['C1']) + rinex2_epoch(0, [('G01', [1.0])])
        with self.assertRaises(RinexVersionError):
            Rinex3ObsReader(self.write('v2.20o', lines)).read()

    def test_unsupported_version(self):
        lines = rinex2_header(['C1'])
        lines[0] = header_line(f"{'4.00':>9}{'':11}{'O':<20}{'G':<20}", 'RINEX VERSION / TYPE')
        with self.assertRaises(RinexVersionError):
            parse_rinex(self.write('v4.rnx', lines))


if __name__ == '__main__':
    unittest.main()
