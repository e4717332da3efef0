"""
nucleus_finder.py

Module providing image segmentation utilities for nucleus detection.
Includes normalization, Kuwahara smoothing, flattening, threshold and edge
based mask generation, watershed splitting of touching nuclei, and a
NucleusFinder class that turns labelled regions into profiled nuclei.

Functions:
    normalise_img(image): Normalise image intensities to [0,1].
    kuwahara_filter(image, radius): Edge-preserving smoothing.
    flatten_img(image, threshold): Clip bright pixels.
    threshold_mask(image, threshold, closing_radius): Binary mask by intensity threshold.
    canny_mask(image, sigma, low, high, closing_radius): Binary mask from closed edges.
    watershed_labels(mask, min_distance): Split touching objects of a mask.
    region_border(region): Border of a labelled region in image coordinates.
    touches_edge(region, shape): Whether a labelled region touches the image border.

Classes:
    NucleusFinder: Finds nuclei in an image channel.
"""

import logging

import numpy as np
import scipy.ndimage as spi

from skimage.feature import canny, peak_local_max
from skimage.measure import label, regionprops
from skimage.morphology import closing, disk
from skimage.segmentation import watershed

from cellular_component import border_from_mask
from exceptions import ComponentCreationError
from measurement import Measurement
from nucleus import Nucleus, create_nucleus
from options import NucleusDetectionOptions
from rules import RuleSetCollection

logger = logging.getLogger(__name__)


def normalise_img(image: np.ndarray) -> np.ndarray:
    """
    Normalize an image to the [0, 1] range.

    Args:
        image (ndarray): Input image array of any numeric type.

    Returns:
        ndarray: Floating-point image scaled so min maps to 0.0 and max to 1.0.
    """
    im = image.copy().astype(float)
    im -= im.min()
    if im.max() > 0:
        im /= im.max()
    return im


def kuwahara_filter(image: np.ndarray, radius: int) -> np.ndarray:
    """
    Smooth an image while keeping edges sharp.

    Each pixel takes the mean of whichever of the four (radius+1)-square
    quadrants around it has the lowest variance. Quadrant sums are read from
    summed-area tables of the reflect-padded image.

    Args:
        image (ndarray): 2D single-channel image.
        radius (int): Filter radius.

    Returns:
        ndarray[float]: Filtered image.
    """
    k = radius + 1
    h, w = image.shape
    padded = np.pad(image.astype(float), k, mode='reflect')
    sat = np.pad(np.cumsum(np.cumsum(padded, axis=0), axis=1), ((1, 0), (1, 0)))
    sat2 = np.pad(np.cumsum(np.cumsum(padded ** 2, axis=0), axis=1), ((1, 0), (1, 0)))

    rows = np.arange(h)[:, None]
    cols = np.arange(w)[None, :]

    def box(table, r, c):
        return table[r + k, c + k] - table[r, c + k] - table[r + k, c] + table[r, c]

    means, variances = [], []
    for dr, dc in ((1, 1), (1, k), (k, 1), (k, k)):
        r, c = rows + dr, cols + dc
        mean = box(sat, r, c) / (k * k)
        means.append(mean)
        variances.append(box(sat2, r, c) / (k * k) - mean ** 2)

    best = np.argmin(np.stack(variances), axis=0)
    return np.take_along_axis(np.stack(means), best[None, :, :], axis=0)[0]


def flatten_img(image: np.ndarray, threshold: float) -> np.ndarray:
    return np.minimum(image, threshold)


def threshold_mask(image: np.ndarray, threshold: float, closing_radius: int = 0) -> np.ndarray:
    """
    Binary mask of pixels above a threshold, with holes filled.

    Args:
        image (ndarray): 2D single-channel image.
        threshold (float): Intensity threshold.
        closing_radius (int): Radius of a closing disk, 0 to skip closing.

    Returns:
        ndarray[bool]: Binary mask.
    """
    mask = image > threshold
    if closing_radius > 0:
        mask = closing(mask, disk(closing_radius))
    return spi.binary_fill_holes(mask)


def canny_mask(image: np.ndarray, sigma: float, low: float, high: float, closing_radius: int) -> np.ndarray:
    """
    Binary mask of regions enclosed by Canny edges.

    Args:
        image (ndarray): 2D single-channel image.
        sigma (float): Gaussian sigma of the edge detector.
        low (float): Lower hysteresis threshold on the normalised image.
        high (float): Upper hysteresis threshold on the normalised image.
        closing_radius (int): Radius of the disk closing gaps in the edges.

    Returns:
        ndarray[bool]: Binary mask.
    """
    edges = canny(normalise_img(image), sigma=sigma, low_threshold=low, high_threshold=high)
    if closing_radius > 0:
        edges = closing(edges, disk(closing_radius))
    return spi.binary_fill_holes(edges)


def watershed_labels(mask: np.ndarray, min_distance: int) -> np.ndarray:
    """
    Label a mask, splitting touching objects at the ridges of their distance transform.

    Args:
        mask (ndarray[bool]): Binary mask.
        min_distance (int): Minimal distance between object centres.

    Returns:
        ndarray[int]: Label image, 0 for background.
    """
    distance = spi.distance_transform_edt(mask)
    coords = peak_local_max(distance, min_distance=min_distance, labels=label(mask))
    markers = np.zeros(mask.shape, dtype=int)
    markers[tuple(coords.T)] = np.arange(1, coords.shape[0] + 1)
    return watershed(-distance, markers, mask=mask)


def region_border(region) -> np.ndarray:
    """Border (x, y) of a labelled region in image coordinates."""
    min_row, min_col = region.bbox[:2]
    return border_from_mask(region.image, (min_row, min_col))


def touches_edge(region, shape: tuple) -> bool:
    min_row, min_col, max_row, max_col = region.bbox
    return min_row == 0 or min_col == 0 or max_row == shape[0] or max_col == shape[1]


class NucleusFinder:
    """
    Finds nuclei in a single-channel image.

    Attributes:
        options (NucleusDetectionOptions): Detection options.
        rule_set_collection (RuleSetCollection): Landmarks of the nucleus type.
        window_proportion (float): Angle window as a fraction of the perimeter.
        labels (ndarray[int]): Label image of the last processed image.
    """

    def __init__(self, options: NucleusDetectionOptions, rule_set_collection: RuleSetCollection,
                 window_proportion: float):
        self.options: NucleusDetectionOptions = options
        self.rule_set_collection: RuleSetCollection = rule_set_collection
        self.window_proportion: float = window_proportion
        self.labels: np.ndarray = None

    def get_mask(self, image: np.ndarray) -> np.ndarray:
        """
        Preprocess an image and build the binary nucleus mask.
        """
        o = self.options
        im = image.astype(float)
        if o.use_kuwahara:
            im = kuwahara_filter(im, o.kuwahara_radius)
        if o.use_flattening:
            im = flatten_img(im, o.flattening_threshold)
        if o.use_canny:
            return canny_mask(im, o.canny_sigma, o.canny_low_threshold, o.canny_high_threshold, o.closing_radius)
        return threshold_mask(im, o.threshold, o.closing_radius if o.use_gap_closing else 0)

    def get_labels(self, image: np.ndarray) -> np.ndarray:
        mask = self.get_mask(image)
        if self.options.use_watershed:
            return watershed_labels(mask, self.options.watershed_min_distance)
        return label(mask)

    def passes_edge_filter(self, n: Nucleus) -> bool:
        ef = self.rule_set_collection.edge_filter
        profile = n.profiles[ef.profile_type]
        if profile.max() > ef.max_value or profile.min() < ef.min_value:
            return False
        return profile.calculate_derivative().absolute().max() <= ef.delta_max

    def is_valid(self, n: Nucleus) -> bool:
        """
        Whether a nucleus has an allowed size and circularity, and passes the edge filter when used.
        """
        o = self.options
        area = n.get_measurement(Measurement.AREA)
        circ = n.get_measurement(Measurement.CIRCULARITY)
        if not (o.min_size < area < o.max_size):
            return False
        if not (o.min_circ < circ < o.max_circ):
            return False
        return not o.use_edge_filter or self.passes_edge_filter(n)

    def find_in_image(self, image: np.ndarray, source_file: str = '') -> list[Nucleus]:
        """
        Find the nuclei in an image.

        Regions touching the image edge are excluded. Regions whose border
        cannot be profiled are logged and skipped.

        Args:
            image (ndarray[H, W]): 2D image of the nucleus channel.
            source_file (str): Name of the image.

        Returns:
            list[Nucleus]: Valid nuclei, numbered from 0 in label order.
        """
        self.labels = self.get_labels(image)
        nuclei = []
        for region in regionprops(self.labels):
            if touches_edge(region, image.shape):
                continue
            # quick rejection on pixel area before tracing borders
            if region.area < self.options.min_size / 2 or region.area > self.options.max_size * 2:
                continue
            try:
                n = create_nucleus(region_border(region), (region.centroid[1], region.centroid[0]),
                                   self.rule_set_collection, self.window_proportion, len(nuclei),
                                   source_file, self.options.channel, self.options.scale)
            except ComponentCreationError as e:
                logger.warning(f'Skipping region {region.label} in {source_file}: {e}')
                continue
            if self.is_valid(n):
                nuclei.append(n)
        logger.info(f'Found {len(nuclei)} nuclei in {source_file}')
        return nuclei
