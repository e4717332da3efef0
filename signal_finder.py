"""
signal_finder.py

Module for segmenting fluorescent signals within nuclei. Each nucleus is
processed on the crop of the signal channel under its bounding box; regions
above a threshold become signals when they lie within the nucleus and have
an allowed size.

Classes:
    SignalFinder: Finds signals of one channel within nuclei.
"""

import logging

import numpy as np

from skimage.filters import threshold_otsu
from skimage.measure import label, regionprops
from skimage.morphology import closing, disk

from exceptions import ComponentCreationError
from measurement import Measurement
from nuclear_signal import NuclearSignal
from nucleus import Nucleus
from nucleus_finder import region_border
from options import SignalDetectionOptions

logger = logging.getLogger(__name__)


class SignalFinder:
    """
    Finds signals within nuclei.

    Attributes:
        options (SignalDetectionOptions): Signal detection options.
    """

    def __init__(self, options: SignalDetectionOptions):
        self.options: SignalDetectionOptions = options

    def get_threshold(self, crop: np.ndarray, nucleus_mask: np.ndarray) -> float:
        """
        Threshold for one nucleus: fixed, or Otsu over the pixels inside the nucleus.
        """
        if self.options.method == 'otsu':
            values = crop[nucleus_mask]
            if values.size > 0 and np.min(values) < np.max(values):
                return float(threshold_otsu(values))
            logger.debug('Uniform nucleus intensity, using fixed signal threshold')
        return self.options.threshold

    def get_canvas(self, image: np.ndarray, n: Nucleus) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Crop of the image under the nucleus bounding box.

        Returns:
            tuple: (crop, nucleus mask of the crop shape, (row, col) of the crop top-left pixel).
        """
        tl = np.maximum(n.tl, 0)
        br = np.minimum(n.br, np.array(image.shape[:2]) - 1)
        crop = image[tl[0]:br[0] + 1, tl[1]:br[1] + 1]
        mask = n.get_bin_mask()
        offset = tl - n.tl
        mask = mask[offset[0]:offset[0] + crop.shape[0], offset[1]:offset[1] + crop.shape[1]]
        return crop, mask, tl

    def is_valid(self, s: NuclearSignal, pixel_area: float, n: Nucleus) -> bool:
        if not n.contains_original_point(s.com):
            return False
        if pixel_area < self.options.min_size:
            return False
        return pixel_area <= self.options.max_fraction * n.get_measurement(Measurement.AREA)

    def find_in_nucleus(self, image: np.ndarray, n: Nucleus) -> list[NuclearSignal]:
        """
        Find signals within one nucleus.

        Args:
            image (ndarray[H, W]): 2D image of the signal channel.
            n (Nucleus): Nucleus in the same image coordinates.

        Returns:
            list[NuclearSignal]: Valid signals.
        """
        crop, nucleus_mask, tl = self.get_canvas(image, n)
        mask = crop > self.get_threshold(crop, nucleus_mask)
        if self.options.use_gap_closing:
            mask = closing(mask, disk(self.options.closing_radius))

        signals = []
        for region in regionprops(label(mask)):
            min_row, min_col = region.bbox[:2]
            border = region_border(region) + np.array([tl[1], tl[0]])
            com = (region.centroid[1] + tl[1], region.centroid[0] + tl[0])
            try:
                s = NuclearSignal(border, com, source_file=n.source_file, channel=self.options.channel,
                                  scale=n.scale)
            except ComponentCreationError as e:
                logger.debug(f'Skipping signal region at ({min_row}, {min_col}) in {n}: {e}')
                continue
            if self.is_valid(s, region.area, n):
                signals.append(s)
        return signals

    def find_in_image(self, image: np.ndarray, nuclei: list[Nucleus]) -> dict[int, list[NuclearSignal]]:
        """
        Find signals within every nucleus of an image.

        Returns:
            dict[int, list[NuclearSignal]]: Signals by nucleus number.
        """
        return {n.nucleus_number: self.find_in_nucleus(image, n) for n in nuclei}

    def assign_signals(self, image: np.ndarray, nuclei: list[Nucleus], source_file: str = ''):
        """
        Find signals within every nucleus and add them to the nucleus as the options' signal group.
        """
        for n in nuclei:
            signals = self.find_in_nucleus(image, n)
            for s in signals:
                s.source_file = source_file or n.source_file
            n.add_signal_group(self.options.group_id, source_file or n.source_file, self.options.channel)
            n.add_signals(signals, self.options.group_id)
