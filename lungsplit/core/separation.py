# lungsplit/core/separation.py
# Single separation attempt: split a merged lung mask into its two largest
# components (opening it with growing spheres if needed), label them by
# centroid position, then give back the removed voxels by seeded watershed.

from __future__ import annotations
import numpy as np
from typing import Dict, Optional, Sequence, Tuple

from .morphology import connectedComponents, getCentroid, openMask, watershedFromSeeds
from .reporting import Reporting, ensure_reporting

# Output labels. The component lying at the lower coordinate is the patient's
# right lung in image orientation.
BACKGROUND = 0
RIGHT_LUNG = 1
LEFT_LUNG = 2
LABEL_NAMES = {RIGHT_LUNG: "right", LEFT_LUNG: "left"}

# Watershed barrier for voxels known to lie outside the lungs
EXTERIOR = -1

# Empirically tuned, keep literal values
OPENING_SIZES: Tuple[int, ...] = (1, 2, 4, 7, 10, 14)

# --------------------- Defaults (edit freely) ---------------------
DEFAULTS: Dict[str, Dict[str, object]] = {
    "separation": {
        "openingSizes": OPENING_SIZES,  # sphere radii tried in order
        "flatFraction": 10,             # second region >= total / flatFraction
        "tracheaFraction": 5,           # second region >= min(left, right) / tracheaFraction
    },
    "strategy": {
        "wideMaxIterations": 2,         # opening attempts allowed on the wide threshold
        "strictTier": 1,                # tier value of the strictest threshold
        "fillSliceHoles": True,         # imfill each coronal slice before 2D separation
    },
    "slices": {
        "maxWorkers": 1,                # >1 runs coronal slices in a process pool
    },
}
# ------------------------------------------------------------------

SeparationResult = Tuple[np.ndarray, bool, int]  # (labels uint8, success, iterations used)


def check_separation_inputs(mask: np.ndarray, roi: np.ndarray, unclosed_lungs: np.ndarray) -> None:
    """Raise ValueError unless mask, roi and unclosed_lungs share one 2D or 3D grid."""
    mask = np.asarray(mask)
    if mask.ndim not in (2, 3):
        raise ValueError(f"Lung mask must be 2D or 3D, got {mask.ndim} dimensions")
    for name, other in (("ROI", roi), ("unclosed lung mask", unclosed_lungs)):
        other_shape = np.shape(other)
        if other_shape != mask.shape:
            raise ValueError(
                f"Shape of {name} {other_shape} does not match lung mask shape {mask.shape}"
            )


def minimum_region_size(
    mask: np.ndarray,
    trachea_locus: Optional[Sequence[int]] = None,
    flat_fraction: float = 10,
    trachea_fraction: float = 5
) -> float:
    """
    Smallest voxel count the second largest component may have.

    With a trachea top locus on a 3D grid the mask is split at the locus column
    and the smaller half divided by trachea_fraction; otherwise the total
    foreground divided by flat_fraction.
    """
    fg = np.asarray(mask) > 0
    if trachea_locus is not None and len(trachea_locus) > 1 and fg.ndim > 2:
        column = int(trachea_locus[1])
        if column < 0 or column >= fg.shape[1]:
            raise ValueError(
                f"Trachea locus column {column} lies outside the grid (0..{fg.shape[1] - 1})"
            )
        left_sum = int(np.count_nonzero(fg[:, :column + 1, :]))
        right_sum = int(np.count_nonzero(fg[:, column + 1:, :]))
        return min(left_sum, right_sum) / float(trachea_fraction)
    return int(np.count_nonzero(fg)) / float(flat_fraction)


def assign_region_labels(
    centroid_1: Sequence[float],
    centroid_2: Sequence[float],
    extent: int,
    axis: int
) -> Tuple[int, int]:
    """
    Labels for two regions from their centroids along axis. The lower one is
    RIGHT_LUNG, the higher LEFT_LUNG, unless both centroids sit on the same
    side of the midline, in which case both take that side's label.
    """
    c1 = float(centroid_1[axis])
    c2 = float(centroid_2[axis])
    if c1 < c2:
        label_1, label_2 = RIGHT_LUNG, LEFT_LUNG
    else:
        label_1, label_2 = LEFT_LUNG, RIGHT_LUNG

    midline = extent / 2.0 - 1
    if c1 > midline and c2 > midline:
        return LEFT_LUNG, LEFT_LUNG
    if c1 < midline and c2 < midline:
        return RIGHT_LUNG, RIGHT_LUNG
    return label_1, label_2


def separate_lungs(
    mask: np.ndarray,
    roi: np.ndarray,
    unclosed_lungs: np.ndarray,
    is_slice_mode: bool = False,
    max_iterations: Optional[int] = None,
    trachea_locus: Optional[Sequence[int]] = None,
    reporting: Optional[Reporting] = None,
    opening_sizes: Optional[Sequence[int]] = None
) -> SeparationResult:
    """
    Try to separate the left and right lungs in mask.

    Parameters:
    -----------
    mask : np.ndarray
        Binary lung mask (2D coronal slice or 3D volume). Not modified.
    roi : np.ndarray
        Cost surface for the watershed, same shape as mask.
    unclosed_lungs : np.ndarray
        Original lung mask; voxels where it is 0 are never labelled.
    is_slice_mode : bool
        Compare centroids along axis 0 (2D coronal slice) instead of axis 1.
    max_iterations : int, optional
        Number of openings allowed. Defaults to the full opening schedule.
    trachea_locus : sequence of int, optional
        (row, column, slice) of the trachea top, used for the initial size limit.

    Returns:
    --------
    (labels, success, iterations) where labels is uint8 with values in
    {0, RIGHT_LUNG, LEFT_LUNG} (all zero when success is False) and iterations
    is the number of openings performed.
    """
    check_separation_inputs(mask, roi, unclosed_lungs)
    reporting = ensure_reporting(reporting)
    params = DEFAULTS["separation"]
    sizes = tuple(opening_sizes) if opening_sizes is not None else tuple(params["openingSizes"])
    flat_fraction = float(params["flatFraction"])

    if max_iterations is None:
        max_iterations = len(sizes)
    if max_iterations < 0:
        raise ValueError(f"max_iterations must be >= 0, got {max_iterations}")
    max_iterations = min(int(max_iterations), len(sizes))

    fg = np.asarray(mask) > 0
    components = connectedComponents(fg)
    minimum = minimum_region_size(
        fg, trachea_locus,
        flat_fraction=flat_fraction,
        trachea_fraction=float(params["tracheaFraction"])
    )

    # One large component means the lungs touch: open until they come apart
    iteration = 0
    while len(components) < 2 or components[1].size < minimum:
        if iteration >= max_iterations:
            return np.zeros(fg.shape, dtype=np.uint8), False, iteration
        iteration += 1
        reporting.log_verbose(
            "Failed to separate left and right lungs. Retrying after morphological "
            f"opening attempt {iteration}."
        )
        opened = openMask(fg, sizes[iteration - 1])
        components = connectedComponents(opened)
        # TODO: the trachea-relative limit is dropped once the mask has been opened;
        # confirm against clinical data whether it should be recomputed here.
        minimum = np.count_nonzero(opened) / flat_fraction

    reporting.log_verbose("Lung regions found.")

    region_1, region_2 = components[0], components[1]
    centroid_1 = getCentroid(fg.shape, region_1)
    centroid_2 = getCentroid(fg.shape, region_2)

    axis = 0 if is_slice_mode else 1
    label_1, label_2 = assign_region_labels(centroid_1, centroid_2, fg.shape[axis], axis)

    # Seeds: the two regions, barrier outside the original lungs
    seeds = np.zeros(fg.shape, dtype=np.int8)
    seeds.flat[region_1] = label_1
    seeds.flat[region_2] = label_2
    seeds[np.asarray(unclosed_lungs) == 0] = EXTERIOR

    labels = watershedFromSeeds(roi, seeds)
    return labels, True, iteration
