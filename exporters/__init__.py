"""
Volume exporters package.
"""

from exporters.nifti import EXPORT_FORMATS, ExportResult, NiftiExporter, save_nifti, save_npy
from exporters.preview import save_preview
from exporters.vtk import VTKExporter

__all__ = [
    'EXPORT_FORMATS',
    'ExportResult',
    'NiftiExporter',
    'save_nifti',
    'save_npy',
    'save_preview',
    'VTKExporter',
]
