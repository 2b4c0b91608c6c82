# lungsplit/core/slices.py
# Coronal slice-by-slice fallback for lung separation.
# Worker functions are top-level and picklable for multiprocessing

from __future__ import annotations

import os
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .morphology import CORONAL_AXIS, fillHoles, getSlice, replaceSlice, watershedFromSeeds
from .reporting import Reporting, ensure_reporting
from .separation import DEFAULTS, EXTERIOR, check_separation_inputs, separate_lungs

# (index, labels, success, iterations, attempted mask)
SliceOutcome = Tuple[int, np.ndarray, bool, int, np.ndarray]


@dataclass
class SliceCompositeResult:
    labels: np.ndarray                 # final uint8 labels, after the global watershed if any slice failed
    slice_labels: np.ndarray           # per-slice labels before the global watershed
    failed_slices: List[int] = field(default_factory=list)
    attempt_masks: Dict[int, np.ndarray] = field(default_factory=dict, repr=False)

    @property
    def any_failure(self) -> bool:
        return bool(self.failed_slices)

    def remap_mask(self) -> np.ndarray:
        """Dense uint8 mask of the voxels that had to be remapped by the global watershed."""
        out = np.zeros(self.labels.shape, dtype=np.uint8)
        for index in self.failed_slices:
            replaceSlice(out, self.attempt_masks[index].astype(np.uint8), index, CORONAL_AXIS)
        return out


# ---------- Worker functions (must be top-level for pickle) ----------

def _separate_single_slice(
    index: int,
    mask_slice: np.ndarray,
    roi_slice: np.ndarray,
    unclosed_slice: np.ndarray,
    fill_holes: bool = True,
    opening_sizes: Optional[Sequence[int]] = None,
    reporting: Optional[Reporting] = None
) -> SliceOutcome:
    """
    Separate one coronal slice. Empty slices come back as zeros with success=True.
    Failed slices come back as zeros with success=False.
    """
    attempt = fillHoles(mask_slice) if fill_holes else (np.asarray(mask_slice) > 0).astype(np.uint8)
    if not np.any(attempt):
        return index, np.zeros(attempt.shape, dtype=np.uint8), True, 0, attempt

    labels, success, iterations = separate_lungs(
        attempt, roi_slice, unclosed_slice,
        is_slice_mode=True,
        max_iterations=None,
        reporting=reporting,
        opening_sizes=opening_sizes
    )
    return index, labels, success, iterations, attempt


def _separate_single_slice_wrapper(args: Tuple) -> SliceOutcome:
    """Unpacks args tuple for ProcessPoolExecutor."""
    return _separate_single_slice(*args)


# ---------- Public API ----------

def separate_coronal_slices(
    lung_mask: np.ndarray,
    roi: np.ndarray,
    unclosed_lungs: np.ndarray,
    reporting: Optional[Reporting] = None,
    fill_holes: Optional[bool] = None,
    max_workers: Optional[int] = None,
    opening_sizes: Optional[Sequence[int]] = None
) -> SliceCompositeResult:
    """
    Separate the lungs independently in every coronal slice, then flood the
    slices that failed from their successful neighbours with one watershed over
    the whole volume.

    Parameters:
    -----------
    lung_mask : np.ndarray
        3D binary mask to separate (typically the wide-threshold mask).
    roi : np.ndarray
        3D cost surface for the watersheds.
    unclosed_lungs : np.ndarray
        3D original lung mask; voxels outside it stay 0.
    fill_holes : bool, optional
        Fill enclosed holes in each slice first. Defaults to DEFAULTS["strategy"]["fillSliceHoles"].
    max_workers : int, optional
        Worker processes for the slice loop. Defaults to DEFAULTS["slices"]["maxWorkers"].

    Returns:
    --------
    SliceCompositeResult
    """
    check_separation_inputs(lung_mask, roi, unclosed_lungs)
    if np.ndim(lung_mask) != 3:
        raise ValueError(f"Slice separation needs a 3D volume, got shape {np.shape(lung_mask)}")
    reporting = ensure_reporting(reporting)

    if fill_holes is None:
        fill_holes = bool(DEFAULTS["strategy"]["fillSliceHoles"])
    if max_workers is None:
        max_workers = int(DEFAULTS["slices"]["maxWorkers"] or (os.cpu_count() or 1))

    mask = np.asarray(lung_mask)
    roi = np.asarray(roi)
    unclosed = np.asarray(unclosed_lungs)
    n = mask.shape[CORONAL_AXIS]

    slice_labels = np.zeros(mask.shape, dtype=np.uint8)
    failures: Dict[int, Tuple[int, np.ndarray]] = {}

    # Only slices with foreground need a worker
    occupied = [i for i in range(n) if np.any(getSlice(mask, i, CORONAL_AXIS))]
    max_workers = max(1, min(int(max_workers), max(1, len(occupied))))

    def _collect(outcome: SliceOutcome) -> None:
        idx, labels, success, iterations, attempt = outcome
        if not success:
            failures[idx] = (iterations, attempt)
            labels = np.zeros(attempt.shape, dtype=np.uint8)
        replaceSlice(slice_labels, labels, idx, CORONAL_AXIS)

    # For a couple of slices, skip multiprocessing overhead
    if len(occupied) <= 2 or max_workers <= 1:
        for i in occupied:
            _collect(_separate_single_slice(
                i,
                getSlice(mask, i, CORONAL_AXIS),
                getSlice(roi, i, CORONAL_AXIS),
                getSlice(unclosed, i, CORONAL_AXIS),
                fill_holes, opening_sizes, reporting
            ))
    else:
        args_list = [
            (i, getSlice(mask, i, CORONAL_AXIS), getSlice(roi, i, CORONAL_AXIS),
             getSlice(unclosed, i, CORONAL_AXIS), fill_holes, opening_sizes, None)
            for i in occupied
        ]
        with ProcessPoolExecutor(max_workers=max_workers) as executor:
            futures = [executor.submit(_separate_single_slice_wrapper, args) for args in args_list]
            for future in as_completed(futures):
                _collect(future.result())

    failed_slices = sorted(failures)
    for idx in failed_slices:
        reporting.log_verbose(
            f"Failed to separate left and right lungs in coronal slice {idx} after "
            f"{failures[idx][0]} opening attempts. Using nearest neighbour interpolation."
        )

    result = SliceCompositeResult(
        labels=slice_labels.copy(),
        slice_labels=slice_labels,
        failed_slices=failed_slices,
        attempt_masks={idx: failures[idx][1] for idx in failed_slices},
    )

    if result.any_failure:
        # Watershed to fill the failed slices from their neighbours
        seeds = slice_labels.astype(np.int8)
        seeds[unclosed == 0] = EXTERIOR
        result.labels = watershedFromSeeds(roi, seeds)

    return result
