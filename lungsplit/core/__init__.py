# lungsplit/core/__init__.py
# Core algorithms package - pure callables with no GUI dependencies
# Safe for headless testing, multiprocessing, and parallelism

from .labelling import (
    check_input_volumes,
    separate_and_label_lungs,
)
from .measure import (
    LungProps,
    measure_lungs,
    save_props_csv,
    unassigned_fraction,
)
from .morphology import (
    connectedComponents,
    fillHoles,
    getCentroid,
    getSlice,
    openMask,
    replaceSlice,
    watershedFromSeeds,
)
from .reporting import (
    CallbackReporting,
    ConsoleReporting,
    RecordingReporting,
    Reporting,
)
from .separation import (
    DEFAULTS,
    LEFT_LUNG,
    OPENING_SIZES,
    RIGHT_LUNG,
    assign_region_labels,
    minimum_region_size,
    separate_lungs,
)
from .slices import (
    SliceCompositeResult,
    separate_coronal_slices,
)

__all__ = [
    # labelling
    "separate_and_label_lungs",
    "check_input_volumes",
    # separation
    "DEFAULTS",
    "OPENING_SIZES",
    "RIGHT_LUNG",
    "LEFT_LUNG",
    "separate_lungs",
    "minimum_region_size",
    "assign_region_labels",
    # slices
    "SliceCompositeResult",
    "separate_coronal_slices",
    # morphology
    "connectedComponents",
    "openMask",
    "fillHoles",
    "watershedFromSeeds",
    "getSlice",
    "replaceSlice",
    "getCentroid",
    # reporting
    "Reporting",
    "ConsoleReporting",
    "RecordingReporting",
    "CallbackReporting",
    # measure
    "LungProps",
    "measure_lungs",
    "unassigned_fraction",
    "save_props_csv",
]
