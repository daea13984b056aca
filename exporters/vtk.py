"""
VTK image-data exporter for converted volumes.
"""

import logging

import numpy as np
import pyvista as pv

from core.base import VolumeData

logger = logging.getLogger(__name__)


class VTKExporter:
    """
    Writes VolumeData voxels to a VTK ``.vti`` file.

    The volume axes (depth, width, height) map onto the grid's x, y, z axes
    and the voxels are stored as cell data named ``intensity``.
    """

    @staticmethod
    def export(data: VolumeData, filepath: str) -> bool:
        if data is None or data.raw_data is None:
            raise ValueError("No volume data to export.")

        volume = np.asfortranarray(data.raw_data)
        grid = pv.ImageData()
        grid.dimensions = np.array(volume.shape) + 1
        grid.origin = data.origin
        grid.spacing = data.spacing
        grid.cell_data["intensity"] = volume.ravel(order="F")

        grid.save(filepath)
        logger.info("Volume saved to %s", filepath)
        return True


__all__ = ["VTKExporter"]
