# lungsplit/__init__.py
# lungsplit package root
"""
lungsplit - Left/Right Lung Separation

Subpackages:
    core - Pure algorithms (opening search, centroid labelling, seeded watershed)

Quick start:
    from lungsplit import separate_and_label_lungs
    labels = separate_and_label_lungs(unclosed_lungs, threshold_tiers, roi)
"""

# Re-export commonly used items from core for convenience
from .core import (
    DEFAULTS,
    LEFT_LUNG,
    OPENING_SIZES,
    RIGHT_LUNG,
    CallbackReporting,
    ConsoleReporting,
    LungProps,
    RecordingReporting,
    Reporting,
    SliceCompositeResult,
    measure_lungs,
    save_props_csv,
    separate_and_label_lungs,
    separate_coronal_slices,
    separate_lungs,
    unassigned_fraction,
)

__all__ = [
    # Separation
    "DEFAULTS",
    "OPENING_SIZES",
    "RIGHT_LUNG",
    "LEFT_LUNG",
    "separate_and_label_lungs",
    "separate_lungs",
    "separate_coronal_slices",
    "SliceCompositeResult",
    # Reporting
    "Reporting",
    "ConsoleReporting",
    "RecordingReporting",
    "CallbackReporting",
    # Measurements
    "LungProps",
    "measure_lungs",
    "unassigned_fraction",
    "save_props_csv",
]
