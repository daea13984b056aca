"""
NIfTI exporter with a raw-array fallback.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

import nibabel as nib
import numpy as np

from config import DEFAULT_EXPORT_FORMATS, FALLBACK_SUFFIX, NIFTI_SUFFIX, PREVIEW_SUFFIX, WRITE_PREVIEW
from core.base import VolumeData
from core.errors import ErrorKind, Issue, SerializationFailure

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("nii", "npy", "tiff", "vti")


def volume_affine(spacing: Sequence[float], origin: Sequence[float]) -> np.ndarray:
    """Diagonal voxel-to-world affine from spacing and origin."""
    affine = np.eye(4)
    affine[:3, :3] = np.diag([float(s) for s in spacing])
    affine[:3, 3] = [float(o) for o in origin]
    return affine


def save_nifti(data: VolumeData, path: str) -> str:
    """Write ``data.raw_data`` as NIfTI-1.  Any failure becomes SerializationFailure."""
    try:
        image = nib.Nifti1Image(np.asarray(data.raw_data), volume_affine(data.spacing, data.origin))
        nib.save(image, path)
    except Exception as exc:
        raise SerializationFailure(f"NIfTI write failed for {path}: {exc}") from exc
    return path


def save_npy(data: VolumeData, path: str) -> str:
    try:
        np.save(path, np.asarray(data.raw_data))
    except Exception as exc:
        raise SerializationFailure(f"NPY write failed for {path}: {exc}") from exc
    return path


def save_tiff(data: VolumeData, path: str) -> str:
    from tifffile import imwrite

    try:
        imwrite(path, np.ascontiguousarray(data.raw_data))
    except Exception as exc:
        raise SerializationFailure(f"TIFF write failed for {path}: {exc}") from exc
    return path


@dataclass
class ExportResult:
    written: List[str] = field(default_factory=list)
    issues: List[Issue] = field(default_factory=list)


class NiftiExporter:
    """
    Writes a converted volume in the requested formats.

    ``nii`` is the primary format.  When it cannot be written the volume is
    saved as ``.npy`` instead and a SerializationFailure issue is recorded;
    the file only fails when the fallback fails too.  Secondary formats
    (``npy``, ``tiff``, ``vti``) and the PNG preview are best effort.
    """

    def __init__(self,
                 output_dir: str,
                 formats: Sequence[str] = DEFAULT_EXPORT_FORMATS,
                 write_preview: bool = WRITE_PREVIEW):
        unknown = [f for f in formats if f not in EXPORT_FORMATS]
        if unknown:
            raise ValueError(f"Unknown export formats {unknown}. Supported: {', '.join(EXPORT_FORMATS)}")
        self.output_dir = output_dir
        self.formats = tuple(formats)
        self.write_preview = write_preview

    def _path(self, stem: str, suffix: str) -> str:
        return os.path.join(self.output_dir, stem + suffix)

    def _export_primary(self, data: VolumeData, stem: str, result: ExportResult) -> None:
        try:
            result.written.append(save_nifti(data, self._path(stem, NIFTI_SUFFIX)))
            return
        except SerializationFailure as exc:
            logger.warning("%s; falling back to %s", exc, FALLBACK_SUFFIX)
            result.issues.append(Issue(ErrorKind.SERIALIZATION_FAILURE, str(exc)))
        result.written.append(save_npy(data, self._path(stem, FALLBACK_SUFFIX)))

    def _export_secondary(self, fmt: str, data: VolumeData, stem: str, result: ExportResult) -> None:
        try:
            if fmt == "npy":
                path = save_npy(data, self._path(stem, FALLBACK_SUFFIX))
            elif fmt == "tiff":
                path = save_tiff(data, self._path(stem, ".tif"))
            else:
                from exporters.vtk import VTKExporter
                path = self._path(stem, ".vti")
                VTKExporter.export(data, path)
        except Exception as exc:
            logger.warning("Optional %s export of %s failed: %s", fmt, stem, exc)
            result.issues.append(Issue(ErrorKind.SERIALIZATION_FAILURE, f"{fmt} export failed: {exc}"))
            return
        if path not in result.written:
            result.written.append(path)

    def export(self, data: VolumeData, stem: str,
               callback: Optional[Callable[[int, str], None]] = None) -> ExportResult:
        """
        Export ``data`` under ``output_dir`` using ``stem`` as the base name.

        Raises:
            SerializationFailure: neither the primary format nor its fallback
                could be written.
        """
        if data is None or data.raw_data is None:
            raise ValueError("No volume to export.")
        os.makedirs(self.output_dir, exist_ok=True)
        result = ExportResult()

        steps = [f for f in self.formats if f != "nii"]
        total = 1 + len(steps) + int(self.write_preview)
        if callback: callback(0, f"Exporting {stem}...")

        if "nii" in self.formats:
            self._export_primary(data, stem, result)
        if callback: callback(int(100 / total), "Primary volume written.")

        for i, fmt in enumerate(steps, start=2):
            self._export_secondary(fmt, data, stem, result)
            if callback: callback(int(100 * i / total), f"{fmt} written.")

        if self.write_preview:
            from exporters.preview import save_preview
            try:
                result.written.append(save_preview(data.raw_data, self._path(stem, PREVIEW_SUFFIX)))
            except Exception as exc:
                logger.warning("Preview for %s failed: %s", stem, exc)
                result.issues.append(Issue(ErrorKind.SERIALIZATION_FAILURE, f"preview failed: {exc}"))

        logger.info("Exported %s: %s", stem, ", ".join(os.path.basename(p) for p in result.written))
        if callback: callback(100, "Export complete.")
        return result


__all__ = [
    "EXPORT_FORMATS",
    "volume_affine",
    "save_nifti",
    "save_npy",
    "save_tiff",
    "ExportResult",
    "NiftiExporter",
]
