"""
Data loaders package.
"""

from loaders.dimensions import (
    VolumeShape,
    ShapeSource,
    ProbeStrategy,
    CandidateShape,
    CANDIDATE_SHAPES,
    ProbeResult,
    probe_shape,
)
from loaders.foct import FoctLoader, read_raw_buffer, decode_volume, encode_volume
from loaders.dummy import SyntheticFoctLoader
from loaders.reference import ReferenceCorpus, load_reference_image
from loaders.diagnostics import FileDiagnosis, diagnose_buffer, diagnose_file

__all__ = [
    'VolumeShape',
    'ShapeSource',
    'ProbeStrategy',
    'CandidateShape',
    'CANDIDATE_SHAPES',
    'ProbeResult',
    'probe_shape',
    'FoctLoader',
    'read_raw_buffer',
    'decode_volume',
    'encode_volume',
    'SyntheticFoctLoader',
    'ReferenceCorpus',
    'load_reference_image',
    'FileDiagnosis',
    'diagnose_buffer',
    'diagnose_file',
]
