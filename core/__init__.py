"""
Core module containing base classes, DTOs, errors and pipeline plumbing.

``core.pipeline`` and ``core.batch`` depend on loaders and processors and
are imported explicitly.
"""

from core.base import VolumeData, FileOutcome, BaseLoader, BaseProcessor
from core.errors import (
    ErrorKind,
    FoctError,
    VolumeReadError,
    FormatUnrecognized,
    SerializationFailure,
    Issue,
    error_kind_of,
)
from core.dto import CONVERSION_MODES, HistogramParams, ConversionDTO
from core.dag import DAGNode, SimpleDAGExecutor
from core.progress import (
    ProgressEvent,
    ProgressObserver,
    ProgressBus,
    TerminalProgressObserver,
)

__all__ = [
    'VolumeData', 'FileOutcome', 'BaseLoader', 'BaseProcessor',
    'ErrorKind', 'FoctError', 'VolumeReadError', 'FormatUnrecognized',
    'SerializationFailure', 'Issue', 'error_kind_of',
    'CONVERSION_MODES', 'HistogramParams', 'ConversionDTO',
    'DAGNode', 'SimpleDAGExecutor',
    'ProgressEvent', 'ProgressObserver', 'ProgressBus', 'TerminalProgressObserver',
]
