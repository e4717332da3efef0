"""
cellular_component.py

Module providing the geometry shared by nuclei and nuclear signals: a closed
border polygon with its centre of mass, cached measurements, rigid transforms
and a binary mask within its bounding box.

Functions:
    remove_duplicate_points(points): Drop consecutive repeated border points.
    interpolate_border(points): Resample a closed border at one pixel spacing.
    polygon_signed_area(points): Shoelace area with the sign of the border direction.
    polygon_area(points): Shoelace area of a closed polygon.
    polygon_perimeter(points): Length of a closed polygon.
    polygon_centroid(points): Area-weighted centroid of a closed polygon.
    border_from_mask(mask, tl): Trace the border of the largest object in a binary mask.

Classes:
    CellularComponent: Closed border with centre of mass, measurements and transforms.
"""

import copy
import uuid

import numpy as np
from skimage.draw import polygon
from skimage.measure import find_contours, points_in_poly

import component_measurer
from constants import MIN_PROFILE_LENGTH
from exceptions import ComponentCreationError
from measurement import Measurement, MeasurementScale


def remove_duplicate_points(points: np.ndarray) -> np.ndarray:
    keep = np.any(points != np.roll(points, 1, axis=0), axis=1)
    return points[keep]


def interpolate_border(points: np.ndarray) -> np.ndarray:
    """
    Resample a closed border so that neighbouring points are one pixel apart.

    Args:
        points (ndarray): Border points of shape (N,2), not repeating the first point at the end.

    Returns:
        ndarray[float]: Resampled border of round(perimeter) points starting at the first input point.

    Raises:
        ComponentCreationError: If the border is degenerate.
    """
    points = remove_duplicate_points(np.asarray(points, dtype=float))
    if points.shape[0] < MIN_PROFILE_LENGTH:
        raise ComponentCreationError(f'Border of {points.shape[0]} distinct points is too short')
    closed = np.vstack((points, points[:1]))
    cumulative = np.concatenate(([0.0], np.cumsum(np.linalg.norm(np.diff(closed, axis=0), axis=1))))
    perimeter = cumulative[-1]
    n = max(MIN_PROFILE_LENGTH, int(round(perimeter)))
    positions = np.arange(n) * perimeter / n
    return np.column_stack((np.interp(positions, cumulative, closed[:, 0]),
                            np.interp(positions, cumulative, closed[:, 1])))


def polygon_signed_area(points: np.ndarray) -> float:
    """Shoelace area, positive when the border runs anticlockwise with y pointing up."""
    x, y = points[:, 0], points[:, 1]
    return 0.5 * float(np.sum(x * np.roll(y, -1) - np.roll(x, -1) * y))


def polygon_area(points: np.ndarray) -> float:
    return abs(polygon_signed_area(points))


def polygon_perimeter(points: np.ndarray) -> float:
    return float(np.sum(np.linalg.norm(points - np.roll(points, -1, axis=0), axis=1)))


def polygon_centroid(points: np.ndarray) -> np.ndarray:
    """
    Area-weighted centroid of a closed polygon; the mean point for degenerate polygons.
    """
    x, y = points[:, 0], points[:, 1]
    x1, y1 = np.roll(x, -1), np.roll(y, -1)
    cross = x * y1 - x1 * y
    a = np.sum(cross) / 2
    if abs(a) < 1e-12:
        return np.mean(points, axis=0)
    return np.array([np.sum((x + x1) * cross) / (6 * a), np.sum((y + y1) * cross) / (6 * a)])


def border_from_mask(mask: np.ndarray, tl=(0, 0)) -> np.ndarray:
    """
    Trace the outer border of the largest object in a binary mask.

    The mask is padded so objects touching the mask edge are closed. Contours
    run along the half-pixel boundary between object and background.

    Args:
        mask (ndarray[bool]): 2D binary mask.
        tl (tuple[int, int]): (row, col) of the mask's top-left pixel in the image.

    Returns:
        ndarray[float]: Border points (x, y) in image coordinates.

    Raises:
        ComponentCreationError: If the mask is empty.
    """
    contours = find_contours(np.pad(mask.astype(float), 1), 0.5)
    if len(contours) == 0:
        raise ComponentCreationError('No border found in empty mask')
    contour = max(contours, key=lambda c: c.shape[0])
    if np.allclose(contour[0], contour[-1]):
        contour = contour[:-1]
    return np.column_stack((contour[:, 1] - 1 + tl[1], contour[:, 0] - 1 + tl[0]))


class CellularComponent:
    """
    Closed border of a cellular object in image coordinates (x = column, y = row).

    The border is resampled at one pixel spacing on creation. Transforms move
    `border` and `com`; the untransformed border is kept in `original_border`
    for mapping back onto the source image.

    Attributes:
        border (ndarray[float]): Border points of shape (N,2).
        original_border (ndarray[float]): Border points as found in the source image.
        com (ndarray[float]): Centre of mass (x, y).
        original_com (ndarray[float]): Centre of mass in the source image.
        source_file (str): Image the component was found in.
        channel (int): Image channel the component was found in.
        scale (float): Pixels per micron.
        id (UUID): Component identifier.
        measurements (dict[Measurement, float]): Cached measurements in pixels.
    """

    def __init__(self, points: np.ndarray, com=None, source_file: str = '', channel: int = 0, scale: float = 1.0,
                 interpolate: bool = True):
        """
        Args:
            points (ndarray): Border points of shape (N,2) as (x, y).
            com (array-like, optional): Centre of mass; polygon centroid by default.
            source_file (str): Image the component was found in.
            channel (int): Image channel.
            scale (float): Pixels per micron.
            interpolate (bool): Resample the border at one pixel spacing.
        """
        points = np.asarray(points, dtype=float)
        if points.ndim != 2 or points.shape[1] != 2:
            raise ComponentCreationError(f'Border must have shape (N,2), got {points.shape}')
        if scale <= 0:
            raise ValueError(f'Scale {scale} must be positive')
        self.border: np.ndarray = interpolate_border(points) if interpolate else points.copy()
        self.original_border: np.ndarray = self.border.copy()
        self.com: np.ndarray = polygon_centroid(self.border) if com is None else np.array(com, dtype=float)
        self.original_com: np.ndarray = self.com.copy()
        self.source_file: str = source_file
        self.channel: int = channel
        self.scale: float = scale
        self.id: uuid.UUID = uuid.uuid4()
        self.measurements: dict[Measurement, float] = {}

    def __len__(self):
        return self.border.shape[0]

    def __repr__(self):
        return (f'{type(self).__name__}(points: {len(self)}, com: ({self.com[0]:.1f}, {self.com[1]:.1f}), '
                f'source: {self.source_file})')

    ######################################Border access

    def wrap_index(self, i: int) -> int:
        return int(i) % len(self)

    def get_border_point(self, i: int) -> np.ndarray:
        return self.border[self.wrap_index(i)].copy()

    def get_original_border_point(self, i: int) -> np.ndarray:
        return self.original_border[self.wrap_index(i)].copy()

    @property
    def perimeter(self) -> float:
        return polygon_perimeter(self.border)

    @property
    def area(self) -> float:
        return polygon_area(self.border)

    def get_bounds(self) -> tuple[np.ndarray, np.ndarray]:
        """Minimum and maximum (x, y) of the border."""
        return np.min(self.border, axis=0), np.max(self.border, axis=0)

    @property
    def width(self) -> float:
        lo, hi = self.get_bounds()
        return float(hi[0] - lo[0])

    @property
    def height(self) -> float:
        lo, hi = self.get_bounds()
        return float(hi[1] - lo[1])

    @property
    def tl(self) -> np.ndarray:
        """(row, col) of the top-left pixel of the bounding box in the source image."""
        return np.floor(np.min(self.original_border, axis=0)[::-1]).astype(int)

    @property
    def br(self) -> np.ndarray:
        """(row, col) of the bottom-right pixel of the bounding box in the source image."""
        return np.ceil(np.max(self.original_border, axis=0)[::-1]).astype(int)

    def get_bin_mask(self) -> np.ndarray:
        """
        Rasterise the source-image border within its bounding box.

        Returns:
            ndarray[bool]: Mask of shape br - tl + 1 with True inside the border.
        """
        tl = self.tl
        res = self.br - tl + 1
        mask = np.zeros(res, dtype=bool)
        rr, cc = polygon(self.original_border[:, 1] - tl[0], self.original_border[:, 0] - tl[1], shape=res)
        mask[rr, cc] = True
        return mask

    def contains_points(self, points: np.ndarray) -> np.ndarray:
        return points_in_poly(np.atleast_2d(points), self.border)

    def contains_point(self, point) -> bool:
        return bool(self.contains_points(np.asarray(point, dtype=float))[0])

    def contains_original_point(self, point) -> bool:
        return bool(points_in_poly(np.atleast_2d(np.asarray(point, dtype=float)), self.original_border)[0])

    ######################################Measurements

    def get_measurement(self, m: Measurement, scale: MeasurementScale = MeasurementScale.PIXELS) -> float:
        """
        Value of a measurement, calculated on first request.

        Args:
            m (Measurement): Measurement to fetch.
            scale (MeasurementScale): Units of the returned value.

        Returns:
            float: Measurement value.
        """
        if m not in self.measurements:
            self.measurements[m] = component_measurer.calculate(m, self)
        return m.convert(self.measurements[m], self.scale, scale)

    def set_measurement(self, m: Measurement, value: float):
        self.measurements[m] = value

    def has_measurement(self, m: Measurement) -> bool:
        return m in self.measurements

    def clear_measurements(self):
        self.measurements = {}

    ######################################Transforms

    def offset(self, dx: float, dy: float):
        self.border = self.border + np.array([dx, dy])
        self.com = self.com + np.array([dx, dy])

    def move_centre_of_mass(self, x: float, y: float):
        self.offset(x - self.com[0], y - self.com[1])

    def rotate(self, degrees: float, anchor=None):
        """
        Rotate anticlockwise (with y pointing up) about an anchor point.

        Args:
            degrees (float): Rotation angle.
            anchor (array-like, optional): Centre of rotation; the centre of mass by default.
        """
        anchor = self.com.copy() if anchor is None else np.asarray(anchor, dtype=float)
        a = np.radians(degrees)
        rot = np.array([[np.cos(a), -np.sin(a)], [np.sin(a), np.cos(a)]])
        self.border = (self.border - anchor) @ rot.T + anchor
        self.com = (self.com - anchor) @ rot.T + anchor

    def flip_horizontal(self, x: float = None):
        x = self.com[0] if x is None else x
        self.border[:, 0] = 2 * x - self.border[:, 0]
        self.com[0] = 2 * x - self.com[0]

    def flip_vertical(self, y: float = None):
        y = self.com[1] if y is None else y
        self.border[:, 1] = 2 * y - self.border[:, 1]
        self.com[1] = 2 * y - self.com[1]

    def reverse(self):
        """Reverse the direction of the border; point i becomes point n - 1 - i."""
        self.border = self.border[::-1].copy()
        self.original_border = self.original_border[::-1].copy()
        self.clear_measurements()

    def duplicate(self) -> 'CellularComponent':
        return copy.deepcopy(self)
