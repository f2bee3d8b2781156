#!/usr/bin/env python3
"""Test suite for observation cubes, column layouts and track tables"""

import unittest

import numpy as np

from gnsstt.core.constants import BAD_DSG, MISSING_OBS, SYS_GAL, SYS_GPS
from gnsstt.core.data_structures import (CggttsTracks, ColumnLayout,
                                         RinexObservations, SatSysObservations,
                                         bad_track_mask, system_code)
from gnsstt.core.exceptions import (CapacityExceededError,
                                    MissingObservationError)


def make_tracks(rows, layout=None, **kwargs):
    """Track table from (sys, prn, mjd, sttime, dsg, ioe) tuples"""
    layout = layout or ColumnLayout.for_format(False, False)
    tracks = np.zeros((len(rows), layout.ncols))
    for k, (sys, prn, mjd, sttime, dsg, ioe) in enumerate(rows):
        tracks[k, layout.SATSYS] = ord(sys)
        tracks[k, layout.PRN] = prn
        tracks[k, layout.MJD] = mjd
        tracks[k, layout.STTIME] = sttime
        tracks[k, layout.TRKL] = 780
        tracks[k, layout.DSG] = dsg
        tracks[k, layout.IOE] = ioe
        tracks[k, layout.REFSYS] = 10.0 * prn
    return CggttsTracks(tracks=tracks, layout=layout, **kwargs)


class TestSatSysObservations(unittest.TestCase):
    """Test the per-constellation observation cube"""

    def test_allocate_requires_types(self):
        sat_obs = SatSysObservations(SYS_GPS)
        with self.assertRaises(ValueError):
            sat_obs.allocate(10, 32)

    def test_allocate_fills_missing(self):
        sat_obs = SatSysObservations(SYS_GPS, ['C1', 'L1'])
        sat_obs.allocate(10, 32)
        self.assertEqual(sat_obs.obs.shape, (10, 32, 2))
        self.assertTrue(np.all(sat_obs.obs == MISSING_OBS))
        self.assertTrue(sat_obs.empty)
        self.assertEqual(sat_obs.capacity, 10)
        self.assertEqual(sat_obs.max_prn, 32)

    def test_column_lookup(self):
        sat_obs = SatSysObservations(SYS_GPS, ['C1', None, 'P2'])
        self.assertEqual(sat_obs.obs_column('P2'), 2)
        self.assertIsNone(sat_obs.obs_column('L5'))
        self.assertTrue(sat_obs.has_observation('C1'))
        self.assertFalse(sat_obs.has_observation('L5'))
        self.assertEqual(sat_obs.codes, ['C1', 'P2'])
        self.assertEqual(sat_obs.nobs_types, 3)

    def test_insert(self):
        sat_obs = SatSysObservations(SYS_GPS, ['C1'])
        sat_obs.allocate(4, 32)
        sat_obs.insert(1, 5, 0, 2.0e7)
        self.assertEqual(sat_obs.obs[1, 4, 0], 2.0e7)
        self.assertFalse(sat_obs.empty)
        np.testing.assert_array_equal(sat_obs.values('C1')[:, 4], [0.0, 2.0e7, 0.0, 0.0])

    def test_insert_past_capacity(self):
        sat_obs = SatSysObservations(SYS_GPS, ['C1'])
        sat_obs.allocate(2, 32)
        with self.assertRaises(CapacityExceededError):
            sat_obs.insert(2, 1, 0, 1.0)

    def test_values_missing_code(self):
        sat_obs = SatSysObservations(SYS_GPS, ['C1'])
        sat_obs.allocate(2, 32)
        with self.assertRaises(MissingObservationError):
            sat_obs.values('L2')

    def test_take_epochs_copies(self):
        sat_obs = SatSysObservations(SYS_GPS, ['C1'])
        sat_obs.allocate(3, 32)
        sat_obs.insert(2, 1, 0, 5.0)
        taken = sat_obs.take_epochs(np.array([2]))
        self.assertEqual(taken.obs.shape, (1, 32, 1))
        taken.obs[0, 0, 0] = 9.0
        self.assertEqual(sat_obs.obs[2, 0, 0], 5.0)


class TestRinexObservations(unittest.TestCase):
    """Test the RINEX observation dataset"""

    def setUp(self):
        gps = SatSysObservations(SYS_GPS, ['C1', 'L1'])
        gps.allocate(2, 32)
        self.data = RinexObservations(version='2.11', t=np.array([0.0, 30.0]),
                                      observations={SYS_GPS: gps}, interval=30.0)

    def test_version(self):
        self.assertEqual(self.data.major_ver, 2)
        self.assertEqual(self.data.minor_ver, 11)
        self.assertEqual(self.data.n_epochs, 2)

    def test_has_observation(self):
        self.assertTrue(self.data.has_observation(SYS_GPS, 'C1'))
        self.assertTrue(self.data.has_observation('G', 'L1'))
        self.assertFalse(self.data.has_observation(SYS_GPS, 'P2'))
        self.assertFalse(self.data.has_observation(SYS_GAL, 'C1'))
        self.assertEqual(self.data.obs_column('G', 'L1'), 1)
        self.assertIsNone(self.data.obs_column('E', 'C1'))

    def test_system_observations_missing(self):
        with self.assertRaises(MissingObservationError):
            self.data.system_observations(SYS_GAL)

    def test_copy_is_independent(self):
        other = self.data.copy()
        other.observations[SYS_GPS].obs[0, 0, 0] = 1.0
        self.assertEqual(self.data.observations[SYS_GPS].obs[0, 0, 0], 0.0)


class TestColumnLayout(unittest.TestCase):
    """Test CGGTTS column layouts"""

    def test_version1_single(self):
        layout = ColumnLayout.for_format(False, False)
        self.assertEqual(layout.CK, 18)
        self.assertEqual(layout.ncols, 19)
        self.assertIsNone(layout.MSIO)
        self.assertIsNone(layout.FRC)
        self.assertFalse(layout.dual_frequency)

    def test_version1_dual(self):
        layout = ColumnLayout.for_format(False, True)
        self.assertEqual((layout.MSIO, layout.SMSI, layout.ISG), (18, 19, 20))
        self.assertEqual(layout.CK, 21)
        self.assertTrue(layout.dual_frequency)

    def test_version2_single(self):
        layout = ColumnLayout.for_format(True, False)
        self.assertEqual((layout.FR, layout.HC, layout.FRC), (18, 19, 20))
        self.assertEqual(layout.CK, 23)
        self.assertEqual(layout.ncols, 24)

    def test_version2_dual(self):
        layout = ColumnLayout.for_format(True, True)
        self.assertEqual((layout.FR, layout.HC, layout.FRC), (21, 22, 23))
        self.assertEqual(layout.CK, 26)

    def test_common_columns(self):
        for freq in (False, True):
            for dual in (False, True):
                layout = ColumnLayout.for_format(freq, dual)
                self.assertEqual(layout.DSG, 12)
                self.assertEqual(layout.REFGPS, layout.REFSYS)
                self.assertEqual(layout.SRGPS, layout.SRSYS)

    def test_index(self):
        layout = ColumnLayout.for_format(False, False)
        self.assertEqual(layout.index('dsg'), 12)
        with self.assertRaises(MissingObservationError):
            layout.index('MSIO')

    def test_names_in_column_order(self):
        names = ColumnLayout.for_format(True, True).names()
        self.assertEqual(names[:3], ['SATSYS', 'PRN', 'CL'])
        self.assertEqual(names[-4:], ['FR', 'HC', 'FRC', 'CK'])
        self.assertIn('ISG', names)


class TestCggttsTracks(unittest.TestCase):
    """Test CGGTTS track tables"""

    def test_column_access_through_layout(self):
        single = make_tracks([('G', 5, 57800, 600, 12, 21)])
        dual = make_tracks([('G', 5, 57800, 600, 12, 21)],
                           layout=ColumnLayout.for_format(True, True))
        self.assertNotEqual(single.layout.CK, dual.layout.CK)
        for data in (single, dual):
            self.assertEqual(data.column('DSG')[0], 12)
            self.assertEqual(data.tracks[0, data.DSG], 12)

    def test_unknown_attribute(self):
        data = make_tracks([])
        with self.assertRaises(AttributeError):
            data.NOT_A_FIELD
        with self.assertRaises(AttributeError):
            data.MSIO

    def test_filter(self):
        data = make_tracks([('G', 1, 57800, 0, 5, 1), ('G', 2, 57800, 0, 50, 1),
                            ('G', 3, 57800, 0, 20, 1)])
        filtered = data.filter('DSG', 0, 20)
        self.assertEqual(len(filtered), 2)
        self.assertEqual(len(data), 3)
        np.testing.assert_array_equal(filtered.column('PRN'), [1, 3])

    def test_filter_tracks(self):
        data = make_tracks([('G', 1, 57800, 0, 5, 1), ('G', 2, 57800, 0, 50, 1)])
        tracks = data.tracks.copy()
        tracks[0, data.TRKL] = 300
        data = data.with_tracks(tracks)
        self.assertEqual(len(data.filter_tracks(100, 700)), 1)
        self.assertEqual(len(data.filter_tracks(20, 200)), 1)
        self.assertEqual(len(data.filter_tracks(100, 200)), 2)

    def test_bad_track_mask_dual(self):
        layout = ColumnLayout.for_format(True, True)
        data = make_tracks([('G', 1, 57800, 0, 5, 1)] * 4, layout=layout)
        tracks = data.tracks.copy()
        tracks[1, layout.ISG] = 999
        tracks[2, layout.MSIO] = 9999
        tracks[3, layout.SMSI] = -999
        np.testing.assert_array_equal(bad_track_mask(tracks, layout), [False, True, True, True])

    def test_remove_bad_tracks_idempotent(self):
        rows = [('G', prn, 57800, 0, 10, 1) for prn in range(1, 11)]
        rows[4] = ('G', 5, 57800, 0, BAD_DSG, 1)
        data = make_tracks(rows)
        once = data.remove_bad_tracks()
        self.assertEqual(len(once), 9)
        self.assertEqual(once.bad_tracks, 1)
        twice = once.remove_bad_tracks()
        np.testing.assert_array_equal(twice.tracks, once.tracks)
        self.assertEqual(twice.bad_tracks, 0)

    def test_sort_by_prn_within_blocks(self):
        data = make_tracks([('G', 9, 57800, 0, 1, 1), ('G', 2, 57800, 0, 1, 1),
                            ('G', 5, 57800, 0, 1, 1), ('G', 7, 57800, 960, 1, 1),
                            ('G', 1, 57800, 960, 1, 1), ('G', 3, 57800, 0, 1, 1)])
        ordered = data.sort_by_prn()
        self.assertTrue(ordered.sorted)
        self.assertFalse(data.sorted)
        # the last row is a new block even though its time repeats an earlier one
        np.testing.assert_array_equal(ordered.column('PRN'), [2, 5, 9, 1, 7, 3])
        np.testing.assert_array_equal(ordered.column('STTIME'), [0, 0, 0, 960, 960, 0])

    def test_satellite_systems(self):
        data = make_tracks([('G', 1, 57800, 0, 1, 1), ('E', 1, 57800, 0, 1, 1)])
        np.testing.assert_array_equal(data.satellite_systems(), ['G', 'E'])
        self.assertEqual(system_code('E'), float(ord('E')))
        self.assertEqual(system_code(SYS_GPS), float(ord('G')))

    def test_epochs(self):
        data = make_tracks([('G', 1, 57800, 43200, 1, 1)])
        np.testing.assert_allclose(data.epochs(), [57800.5])

    def test_to_dataframe(self):
        layout = ColumnLayout.for_format(True, False)
        data = make_tracks([('E', 11, 57800, 600, 12, 21)], layout=layout)
        tracks = data.tracks.copy()
        tracks[0, layout.FRC:layout.FRC + 3] = [ord(c) for c in 'E1 ']
        df = data.with_tracks(tracks).to_dataframe()
        self.assertEqual(df['SATSYS'].iloc[0], 'E')
        self.assertEqual(df['FRC'].iloc[0], 'E1')
        self.assertEqual(df['PRN'].iloc[0], 11)
        self.assertEqual(list(df.columns), layout.names())


if __name__ == '__main__':
    unittest.main()
