# lungsplit/core/morphology.py
# Volumetric primitives used by the lung separation: components, opening,
# hole filling, seeded watershed, coronal slicing and centroids.

from __future__ import annotations
import cv2
import numpy as np
from scipy import ndimage
from skimage.morphology import ball, disk
from skimage.segmentation import watershed
from typing import List, Sequence, Tuple

# Type aliases for clarity
BinaryMask = np.ndarray  # bool/uint8, shape (D1,D2,D3) or (H,W), nonzero = foreground
SeedVolume = np.ndarray  # int8, 0 = unlabeled, -1 = barrier, >0 = seed label
LabelVolume = np.ndarray  # uint8, 0 = background/unassigned, 1..N = labels
VoxelIndices = np.ndarray  # int64 linear (C-order) indices into a volume

# Coronal slices are taken across the first axis of the volume
CORONAL_AXIS = 0


# --------------------- Internal helpers ---------------------------

def _structuringElement(radius: int, ndim: int) -> np.ndarray:
    """Spherical (3D) or circular (2D) footprint of the given radius."""
    r = int(max(1, radius))
    if ndim == 3:
        return ball(r).astype(bool)
    if ndim == 2:
        return disk(r).astype(bool)
    raise ValueError(f"Unsupported mask dimensionality: {ndim}")


def _fullConnectivity(ndim: int) -> np.ndarray:
    # 26-connectivity in 3D, 8-connectivity in 2D
    return ndimage.generate_binary_structure(ndim, ndim)


# --------------------- Components ---------------------------------

def connectedComponents(mask: BinaryMask) -> List[VoxelIndices]:
    """
    Fully connected components of mask > 0 (26-neighbour in 3D, 8 in 2D).
    Returns linear index arrays sorted by voxel count, largest first. Ties keep
    discovery (raster scan) order.
    """
    fg = np.asarray(mask) > 0
    labels, num = ndimage.label(fg, structure=_fullConnectivity(fg.ndim))
    if num == 0:
        return []

    flat = labels.ravel()
    # voxel count for each label (index 0 = background)
    sizes = np.bincount(flat, minlength=num + 1)[1:]
    order = np.argsort(-sizes, kind="stable")

    # group linear indices by label in one pass
    fg_idx = np.flatnonzero(flat)
    fg_lab = flat[fg_idx]
    by_label = np.argsort(fg_lab, kind="stable")
    fg_idx = fg_idx[by_label]
    bounds = np.concatenate(([0], np.cumsum(np.bincount(fg_lab, minlength=num + 1)[1:])))

    return [fg_idx[bounds[k]:bounds[k + 1]] for k in order]


def getCentroid(shape: Sequence[int], indices: VoxelIndices) -> Tuple[float, ...]:
    """Mean coordinate of a set of linear voxel indices. indices must be non-empty."""
    coords = np.unravel_index(np.asarray(indices, dtype=np.int64), tuple(shape))
    return tuple(float(np.mean(c)) for c in coords)


# -------------------------- Morphology ----------------------------

def openMask(mask: BinaryMask, radius: int) -> np.ndarray:
    """
    Binary opening (erode then dilate) with a spherical element of the given radius.
    Works on a copy; the input is never modified. Returns bool, same shape.
    """
    fg = np.asarray(mask) > 0
    footprint = _structuringElement(radius, fg.ndim)
    return ndimage.binary_opening(fg, structure=footprint)


def fillHoles(binary: np.ndarray) -> np.ndarray:
    """Fill enclosed background regions of a 2D slice mask. Returns uint8 {0,1}."""
    mask = (np.asarray(binary) > 0).astype(np.uint8)
    if mask.ndim != 2:
        raise ValueError(f"fillHoles expects a 2D slice, got shape {mask.shape}")
    h, w = mask.shape
    pad = cv2.copyMakeBorder(mask, 1, 1, 1, 1, cv2.BORDER_CONSTANT, value=0)
    cv2.floodFill(pad, None, (0, 0), 1)  # fill outside from padded corner
    bg = pad[1:h+1, 1:w+1]
    holes = (bg == 0) & (mask == 0)
    out = mask.copy()
    out[holes] = 1
    return out


# -------------------------- Watershed -----------------------------

def watershedFromSeeds(cost: np.ndarray, seeds: SeedVolume) -> LabelVolume:
    """
    Flood the unlabeled (0) voxels of seeds from the positive seed labels across
    the cost surface. Voxels marked -1 are barriers: they are never entered and
    come back as 0, as do voxels no seed can reach.
    """
    cost = np.asarray(cost)
    seeds = np.asarray(seeds)
    if cost.shape != seeds.shape:
        raise ValueError(
            f"Cost volume shape {cost.shape} does not match seed volume shape {seeds.shape}"
        )

    markers = np.where(seeds > 0, seeds, 0).astype(np.int32)
    passable = seeds >= 0
    if not np.any(markers):
        return np.zeros(seeds.shape, dtype=np.uint8)

    labels = watershed(cost.astype(np.float64), markers=markers, mask=passable)
    labels[~passable] = 0
    return labels.astype(np.uint8)


# -------------------------- Slicing -------------------------------

def getSlice(volume: np.ndarray, index: int, axis: int = CORONAL_AXIS) -> np.ndarray:
    """Copy of a single 2D plane of a 3D volume."""
    return np.take(volume, int(index), axis=axis).copy()


def replaceSlice(volume: np.ndarray, slice_data: np.ndarray, index: int, axis: int = CORONAL_AXIS) -> None:
    """Overwrite a single 2D plane of a 3D volume in place."""
    target = [slice(None)] * volume.ndim
    target[axis] = int(index)
    plane = volume[tuple(target)]
    if plane.shape != slice_data.shape:
        raise ValueError(f"Slice shape {slice_data.shape} does not match volume plane {plane.shape}")
    volume[tuple(target)] = slice_data
