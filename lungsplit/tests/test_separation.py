# lungsplit/tests/test_separation.py
# Unit tests for core/separation.py: size limits, centroid labelling, opening search

import os
import sys
import unittest

import numpy as np

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from core.reporting import RecordingReporting
from core.separation import (
    DEFAULTS,
    LEFT_LUNG,
    OPENING_SIZES,
    RIGHT_LUNG,
    assign_region_labels,
    minimum_region_size,
    separate_lungs,
)


def _sphere(shape, center, radius) -> np.ndarray:
    """Boolean ball of the given radius inside a volume of the given shape."""
    zz, yy, xx = np.ogrid[:shape[0], :shape[1], :shape[2]]
    d2 = (zz - center[0])**2 + (yy - center[1])**2 + (xx - center[2])**2
    return d2 <= radius**2


def _two_spheres(shape=(20, 70, 20), cols=(17, 52), radius=6) -> np.ndarray:
    vol = _sphere(shape, (10, cols[0], 10), radius) | _sphere(shape, (10, cols[1], 10), radius)
    return vol.astype(np.uint8)


def _dumbbell(shape=(20, 70, 20), cols=(17, 52), radius=7) -> np.ndarray:
    """Two spheres joined by a 5x5 bridge: survives openings of radius 1 and 2, not 4."""
    vol = _two_spheres(shape, cols, radius)
    vol[8:13, cols[0]:cols[1] + 1, 8:13] = 1
    return vol


class TestOpeningSchedule(unittest.TestCase):

    def test_literal_values(self):
        self.assertEqual(tuple(OPENING_SIZES), (1, 2, 4, 7, 10, 14))
        self.assertEqual(tuple(DEFAULTS["separation"]["openingSizes"]), (1, 2, 4, 7, 10, 14))
        self.assertEqual(DEFAULTS["separation"]["flatFraction"], 10)
        self.assertEqual(DEFAULTS["separation"]["tracheaFraction"], 5)


class TestMinimumRegionSize(unittest.TestCase):
    """Tests for minimum_region_size() flat and trachea-relative rules."""

    def setUp(self):
        self.mask = np.zeros((4, 10, 4), dtype=np.uint8)
        self.mask[:, 0:2, :] = 1   # 32 voxels left of column 4
        self.mask[:, 6:10, :] = 1  # 64 voxels right of column 4

    def test_flat_fraction(self):
        self.assertAlmostEqual(minimum_region_size(self.mask), 96 / 10.0)

    def test_trachea_split(self):
        self.assertAlmostEqual(minimum_region_size(self.mask, (1, 4, 1)), 32 / 5.0)

    def test_trachea_column_is_inclusive_on_the_left(self):
        # column 1 goes to the left half: left = 32, right = 64
        self.assertAlmostEqual(minimum_region_size(self.mask, (0, 1, 0)), 32 / 5.0)
        # column 0: left = 16, right = 80
        self.assertAlmostEqual(minimum_region_size(self.mask, (0, 0, 0)), 16 / 5.0)

    def test_short_locus_ignored(self):
        self.assertAlmostEqual(minimum_region_size(self.mask, (3,)), 96 / 10.0)

    def test_locus_ignored_in_2d(self):
        self.assertAlmostEqual(minimum_region_size(self.mask[0], (1, 4, 1)), 24 / 10.0)

    def test_locus_outside_grid(self):
        with self.assertRaises(ValueError):
            minimum_region_size(self.mask, (0, 10, 0))


class TestAssignRegionLabels(unittest.TestCase):
    """Tests for assign_region_labels() ordering and same-side override."""

    def test_lower_is_right_lung(self):
        self.assertEqual(assign_region_labels((0, 2, 0), (0, 7, 0), 10, 1), (RIGHT_LUNG, LEFT_LUNG))

    def test_order_swapped(self):
        self.assertEqual(assign_region_labels((0, 7, 0), (0, 2, 0), 10, 1), (LEFT_LUNG, RIGHT_LUNG))

    def test_both_high_side(self):
        self.assertEqual(assign_region_labels((0, 6, 0), (0, 8, 0), 10, 1), (LEFT_LUNG, LEFT_LUNG))

    def test_both_low_side(self):
        self.assertEqual(assign_region_labels((0, 1, 0), (0, 3, 0), 10, 1), (RIGHT_LUNG, RIGHT_LUNG))

    def test_midline_sits_one_below_half_extent(self):
        # extent 10: the midline is 4, so 4.25 already counts as the high side
        self.assertEqual(assign_region_labels((0, 4.25, 0), (0, 8.0, 0), 10, 1), (LEFT_LUNG, LEFT_LUNG))
        self.assertEqual(assign_region_labels((0, 1.0, 0), (0, 3.75, 0), 10, 1), (RIGHT_LUNG, RIGHT_LUNG))

    def test_centroid_on_midline_keeps_order(self):
        self.assertEqual(assign_region_labels((0, 4.0, 0), (0, 8.0, 0), 10, 1), (RIGHT_LUNG, LEFT_LUNG))
        self.assertEqual(assign_region_labels((0, 8.0, 0), (0, 4.0, 0), 10, 1), (LEFT_LUNG, RIGHT_LUNG))

    def test_odd_extent_midline(self):
        # extent 9: midline 3.5
        self.assertEqual(assign_region_labels((3.6, 0), (7.0, 0), 9, 0), (LEFT_LUNG, LEFT_LUNG))
        self.assertEqual(assign_region_labels((3.4, 0), (7.0, 0), 9, 0), (RIGHT_LUNG, LEFT_LUNG))

    def test_axis_selects_coordinate(self):
        # axis 0 used in slice mode
        self.assertEqual(assign_region_labels((8, 1), (1, 8), 10, 0), (LEFT_LUNG, RIGHT_LUNG))


class TestSeparateLungs(unittest.TestCase):
    """Tests for separate_lungs() on synthetic volumes."""

    def test_already_separated(self):
        mask = _two_spheres()
        labels, success, iterations = separate_lungs(mask, np.zeros(mask.shape), mask)
        self.assertTrue(success)
        self.assertEqual(iterations, 0)
        self.assertEqual(labels.shape, mask.shape)
        self.assertEqual(labels[10, 17, 10], RIGHT_LUNG)
        self.assertEqual(labels[10, 52, 10], LEFT_LUNG)
        np.testing.assert_array_equal(labels > 0, mask > 0)

    def test_dumbbell_separates_at_radius_four(self):
        mask = _dumbbell()
        reporting = RecordingReporting()
        labels, success, iterations = separate_lungs(
            mask, np.zeros(mask.shape), mask, reporting=reporting
        )
        self.assertTrue(success)
        self.assertEqual(iterations, 3)
        self.assertEqual(OPENING_SIZES[iterations - 1], 4)
        self.assertEqual(labels[10, 17, 10], RIGHT_LUNG)
        self.assertEqual(labels[10, 52, 10], LEFT_LUNG)
        # voxels removed by the opening are given back
        self.assertTrue(np.all(labels[mask > 0] > 0))
        self.assertTrue(np.all(labels[mask == 0] == 0))
        self.assertEqual(len(reporting.verbose_messages), 4)
        self.assertEqual(reporting.verbose_messages[-1], "Lung regions found.")

    def test_dumbbell_fails_below_cap(self):
        mask = _dumbbell()
        labels, success, iterations = separate_lungs(
            mask, np.zeros(mask.shape), mask, max_iterations=2
        )
        self.assertFalse(success)
        self.assertEqual(iterations, 2)
        self.assertEqual(labels.shape, mask.shape)
        self.assertFalse(labels.any())

    def test_same_side_high(self):
        shape = (20, 80, 20)
        mask = (_sphere(shape, (10, 48, 10), 5) | _sphere(shape, (10, 68, 10), 5)).astype(np.uint8)
        labels, success, _ = separate_lungs(mask, np.zeros(shape), mask)
        self.assertTrue(success)
        self.assertEqual(set(np.unique(labels[mask > 0])), {LEFT_LUNG})

    def test_same_side_low(self):
        shape = (20, 80, 20)
        mask = (_sphere(shape, (10, 11, 10), 5) | _sphere(shape, (10, 31, 10), 5)).astype(np.uint8)
        labels, success, _ = separate_lungs(mask, np.zeros(shape), mask)
        self.assertTrue(success)
        self.assertEqual(set(np.unique(labels[mask > 0])), {RIGHT_LUNG})

    def test_slice_mode_compares_first_axis(self):
        img = np.zeros((40, 30), dtype=np.uint8)
        img[4:15, 5:25] = 1
        img[25:36, 5:25] = 1
        labels, success, iterations = separate_lungs(img, np.zeros(img.shape), img, is_slice_mode=True)
        self.assertTrue(success)
        self.assertEqual(iterations, 0)
        self.assertEqual(labels[10, 15], RIGHT_LUNG)
        self.assertEqual(labels[30, 15], LEFT_LUNG)

    def test_exterior_stays_zero(self):
        mask = _dumbbell()
        unclosed = mask.copy()
        unclosed[8:13, 30:40, 8:13] = 0  # cut a piece out of the bridge
        labels, success, _ = separate_lungs(mask, np.zeros(mask.shape), unclosed)
        self.assertTrue(success)
        self.assertFalse(np.any(labels[unclosed == 0]))
        self.assertTrue(set(np.unique(labels)).issubset({0, RIGHT_LUNG, LEFT_LUNG}))

    def test_inputs_not_modified(self):
        mask = _dumbbell()
        roi = np.zeros(mask.shape, dtype=np.int16)
        before = mask.copy()
        separate_lungs(mask, roi, mask)
        np.testing.assert_array_equal(mask, before)


class TestTracheaLocus(unittest.TestCase):
    """Trachea-relative size limit, applied only before the first opening."""

    shape = (24, 56, 24)

    def _big_and_small(self, small_radius):
        big = _sphere(self.shape, (12, 15, 12), 8)
        small = _sphere(self.shape, (12, 43, 12), small_radius)
        return big, small

    def test_small_lung_accepted_with_locus(self):
        big, small = self._big_and_small(2)
        mask = (big | small).astype(np.uint8)
        labels, success, iterations = separate_lungs(
            mask, np.zeros(self.shape), mask, trachea_locus=(12, 30, 12)
        )
        self.assertTrue(success)
        self.assertEqual(iterations, 0)
        self.assertEqual(labels[12, 15, 12], RIGHT_LUNG)
        self.assertEqual(labels[12, 43, 12], LEFT_LUNG)

    def test_small_lung_rejected_without_locus(self):
        big, small = self._big_and_small(2)
        mask = (big | small).astype(np.uint8)
        labels, success, iterations = separate_lungs(mask, np.zeros(self.shape), mask)
        self.assertFalse(success)
        self.assertEqual(iterations, len(OPENING_SIZES))

    def test_flat_limit_used_after_opening(self):
        # Once opened, the limit reverts to total / 10 even with a locus. The
        # small lung would pass the trachea-relative limit but never this one.
        big, small = self._big_and_small(3)
        mask = (big | small).astype(np.uint8)
        mask[12, 23:41, 12] = 1  # one voxel wide bridge, gone after the first opening
        labels, success, iterations = separate_lungs(
            mask, np.zeros(self.shape), mask, trachea_locus=(12, 30, 12)
        )
        self.assertFalse(success)
        self.assertEqual(iterations, len(OPENING_SIZES))


class TestSeparateLungsValidation(unittest.TestCase):
    """Malformed inputs fail fast."""

    def test_roi_shape_mismatch(self):
        mask = np.zeros((5, 5, 5), dtype=np.uint8)
        with self.assertRaises(ValueError):
            separate_lungs(mask, np.zeros((5, 5, 4)), mask)

    def test_exterior_shape_mismatch(self):
        mask = np.zeros((5, 5, 5), dtype=np.uint8)
        with self.assertRaises(ValueError):
            separate_lungs(mask, np.zeros(mask.shape), np.zeros((4, 5, 5)))

    def test_rejects_4d(self):
        mask = np.zeros((2, 2, 2, 2), dtype=np.uint8)
        with self.assertRaises(ValueError):
            separate_lungs(mask, np.zeros(mask.shape), mask)

    def test_negative_iteration_cap(self):
        mask = _two_spheres()
        with self.assertRaises(ValueError):
            separate_lungs(mask, np.zeros(mask.shape), mask, max_iterations=-1)


if __name__ == "__main__":
    unittest.main()
