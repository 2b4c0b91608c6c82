# lungsplit/core/measure.py
# Per-lung measurements of a labelled volume + CSV export

from __future__ import annotations
from dataclasses import dataclass, asdict, fields
from typing import Iterable, List, Optional, Sequence
import csv
import numpy as np

from .separation import LABEL_NAMES

# ---------- Data Model ----------

@dataclass
class LungProps:
    # identity
    label: int
    name: str

    # voxel-space geometry
    voxel_count: int
    centroid: tuple           # mean (axis0, axis1, axis2) coordinate
    bbox_min: tuple           # inclusive
    bbox_max: tuple           # exclusive

    # scaled (optional)
    voxel_volume: Optional[float] = None   # product of voxel_size
    volume: Optional[float] = None         # voxel_count * voxel_volume

    # share of the lung mask (optional)
    lung_fraction: Optional[float] = None  # voxel_count / lung voxels


# ---------- Public API ----------

def measure_lungs(
    labels: np.ndarray,
    unclosed_lungs: Optional[np.ndarray] = None,
    voxel_size: Optional[Sequence[float]] = None
) -> List[LungProps]:
    """
    Measure each lung label present in labels (0 = background).
    unclosed_lungs optionally gives the lung mask the labels were built from;
    each record then carries its share of that mask as lung_fraction.
    voxel_size optionally gives the physical size of a voxel along each axis.
    Returns one LungProps per label > 0, in label order.
    """
    if labels is None:
        return []
    labs = np.asarray(labels)

    lung_total = None
    if unclosed_lungs is not None:
        lung = np.asarray(unclosed_lungs) > 0
        if lung.shape != labs.shape:
            raise ValueError(f"Label shape {labs.shape} does not match lung mask shape {lung.shape}")
        lung_total = int(np.count_nonzero(lung))

    voxel_volume = None
    if voxel_size is not None:
        if len(voxel_size) != labs.ndim:
            raise ValueError(
                f"voxel_size has {len(voxel_size)} entries for a {labs.ndim}D label volume"
            )
        voxel_volume = float(np.prod([float(s) for s in voxel_size]))

    props: List[LungProps] = []
    present = np.unique(labs)
    for lbl in present[present > 0]:
        coords = np.nonzero(labs == lbl)
        count = int(coords[0].size)
        rec = LungProps(
            label=int(lbl),
            name=LABEL_NAMES.get(int(lbl), f"label {int(lbl)}"),
            voxel_count=count,
            centroid=tuple(float(c.mean()) for c in coords),
            bbox_min=tuple(int(c.min()) for c in coords),
            bbox_max=tuple(int(c.max()) + 1 for c in coords),
        )
        if voxel_volume is not None:
            rec.voxel_volume = voxel_volume
            rec.volume = count * voxel_volume
        if lung_total:
            rec.lung_fraction = count / lung_total
        props.append(rec)
    return props


def unassigned_fraction(labels: np.ndarray, unclosed_lungs: np.ndarray) -> float:
    """Share of lung voxels (unclosed_lungs > 0) left unlabelled. 0.0 for an empty lung mask."""
    lung = np.asarray(unclosed_lungs) > 0
    if np.shape(labels) != lung.shape:
        raise ValueError(f"Label shape {np.shape(labels)} does not match lung mask shape {lung.shape}")
    total = int(np.count_nonzero(lung))
    if total == 0:
        return 0.0
    unassigned = int(np.count_nonzero(lung & (np.asarray(labels) == 0)))
    return unassigned / total


def save_props_csv(path: str, props: Iterable[LungProps]) -> None:
    """Write one CSV row per lung; an empty props list still writes the header."""
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=[fld.name for fld in fields(LungProps)])
        writer.writeheader()
        writer.writerows(asdict(p) for p in props)
