# lungsplit/core/labelling.py
# Separates and labels the left and right lungs, escalating through
# threshold tiers and from 3D to coronal 2D separation.

from __future__ import annotations
import numpy as np
from typing import Optional, Sequence

from .reporting import Reporting, ensure_reporting
from .separation import DEFAULTS, separate_lungs
from .slices import separate_coronal_slices

MESSAGE_ID = "SeparateAndLabelLungs:OpeningLungs"


def check_input_volumes(
    unclosed_lungs: np.ndarray,
    threshold_tiers: np.ndarray,
    roi: np.ndarray
) -> None:
    """Fail fast on malformed inputs: all volumes 3D, same shape, some lung present."""
    unclosed_lungs = np.asarray(unclosed_lungs)
    if unclosed_lungs.ndim != 3:
        raise ValueError(f"Unclosed lung mask must be a 3D volume, got shape {unclosed_lungs.shape}")
    for name, other in (("threshold tier volume", threshold_tiers), ("ROI", roi)):
        if np.shape(other) != unclosed_lungs.shape:
            raise ValueError(
                f"Shape of {name} {np.shape(other)} does not match unclosed lung mask "
                f"shape {unclosed_lungs.shape}"
            )
    if not np.any(unclosed_lungs):
        raise ValueError("Unclosed lung mask is empty: nothing to separate")


def separate_and_label_lungs(
    unclosed_lungs: np.ndarray,
    threshold_tiers: np.ndarray,
    roi: np.ndarray,
    trachea_locus: Optional[Sequence[int]] = None,
    reporting: Optional[Reporting] = None,
    strict_tier: Optional[int] = None,
    max_workers: Optional[int] = None
) -> np.ndarray:
    """
    Separate left and right lungs from a lung segmentation.

    The lungs are split with morphological opening by spheres of increasing
    size until two components remain; the voxels removed by the opening are
    given back by a watershed over roi. A wide threshold is tried first with
    two openings, then the strict threshold with the full schedule, then a
    coronal slice-by-slice separation.

    Returns uint8 labels: 0 outside the lungs, RIGHT_LUNG (1), LEFT_LUNG (2).
    """
    check_input_volumes(unclosed_lungs, threshold_tiers, roi)
    reporting = ensure_reporting(reporting)
    params = DEFAULTS["strategy"]
    if strict_tier is None:
        strict_tier = int(params["strictTier"])

    unclosed = np.asarray(unclosed_lungs) > 0
    tiers = np.asarray(threshold_tiers)

    # Wide threshold, only readily separable lungs
    wide_mask = unclosed & (tiers > 0)
    labels, success, iterations = separate_lungs(
        wide_mask, roi, unclosed,
        is_slice_mode=False,
        max_iterations=int(params["wideMaxIterations"]),
        trachea_locus=trachea_locus,
        reporting=reporting
    )
    if success:
        return labels

    # Narrow threshold gets the full range of openings
    reporting.show_message(
        MESSAGE_ID,
        f"Failed to separate left and right lungs after {iterations} opening attempts. "
        "Trying narrower threshold."
    )
    narrow_mask = unclosed & (tiers == strict_tier)
    labels, success, iterations = separate_lungs(
        narrow_mask, roi, unclosed,
        is_slice_mode=False,
        max_iterations=None,
        trachea_locus=trachea_locus,
        reporting=reporting
    )
    if success:
        return labels

    reporting.show_message(
        MESSAGE_ID,
        f"Failed to separate left and right lungs after {iterations} opening attempts. "
        "Trying 2D approach."
    )
    result = separate_coronal_slices(
        wide_mask, roi, unclosed,
        reporting=reporting,
        fill_holes=bool(params["fillSliceHoles"]),
        max_workers=max_workers
    )
    return result.labels
