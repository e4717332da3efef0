"""
component_measurer.py

Module calculating measurements of nuclei and signals from their borders,
profiles, landmarks and oriented copies. Values are returned in pixels;
unit conversion is done by the caller.

Functions:
    calculate(m, component): Calculate one measurement of a component.
    absolute_angle(a, vertex, b): Unsigned angle at a vertex between two points.
"""

import math

import numpy as np
from scipy.spatial.distance import pdist

from border_profile import ProfileType
from exceptions import MissingLandmarkError, MissingMeasurementError
from measurement import Measurement
from rules import OrientationMark


def absolute_angle(a: np.ndarray, vertex: np.ndarray, b: np.ndarray) -> float:
    """
    Angle at `vertex` between the lines to `a` and `b`.

    Returns:
        float: Angle in degrees in range [0, 180].
    """
    v1 = np.asarray(a, dtype=float) - vertex
    v2 = np.asarray(b, dtype=float) - vertex
    diff = math.atan2(v2[1], v2[0]) - math.atan2(v1[1], v1[0])
    diff = (diff + math.pi) % (2 * math.pi) - math.pi
    return abs(math.degrees(diff))


def _require_nucleus(m: Measurement, component):
    if not hasattr(component, 'get_oriented_nucleus'):
        raise ValueError(f'{m} cannot be measured on {type(component).__name__}')


def _hook_points(component) -> tuple[float, np.ndarray]:
    if not (component.has_landmark(OrientationMark.TOP) and component.has_landmark(OrientationMark.Y)):
        raise MissingLandmarkError('Hook measurements need top and Y landmarks')
    oriented = component.get_oriented_nucleus()
    return oriented.get_landmark_point(OrientationMark.TOP)[0], oriented.border[:, 0]


def calculate(m: Measurement, component) -> float:
    """
    Calculate a measurement of a component in pixels.

    Args:
        m (Measurement): Measurement to calculate.
        component (CellularComponent): Nucleus or signal.

    Returns:
        float: Measurement value.

    Raises:
        ValueError: If the measurement does not apply to this component.
        MissingLandmarkError: If a landmark the measurement needs is not set.
        MissingMeasurementError: If the measurement is only set from outside.
    """
    if m == Measurement.AREA:
        return component.area
    if m == Measurement.PERIMETER:
        return component.perimeter
    if m == Measurement.CIRCULARITY:
        p = component.perimeter
        return 4 * math.pi * component.area / (p * p)
    if m == Measurement.RADIUS:
        return math.sqrt(component.area / math.pi)
    if m == Measurement.MAX_FERET:
        return float(np.max(pdist(component.border)))

    if m in (Measurement.ANGLE, Measurement.DISTANCE_FROM_COM, Measurement.FRACT_DISTANCE_FROM_COM):
        raise MissingMeasurementError(f'{m} is set by the nucleus containing the signal')

    _require_nucleus(m, component)

    if m == Measurement.MIN_DIAMETER:
        return component.profiles[ProfileType.DIAMETER].min()
    if m == Measurement.VARIABILITY:
        # only defined against a population median
        return -1.0
    if m == Measurement.NUCLEUS_SIGNAL_COUNT:
        return float(component.signals.number_of_signals())
    if m == Measurement.OP_RP_ANGLE:
        if not component.has_landmark(OrientationMark.Y):
            raise MissingLandmarkError('No Y landmark to measure against the reference point')
        return absolute_angle(component.get_landmark_point(OrientationMark.REFERENCE), component.com,
                              component.get_landmark_point(OrientationMark.Y))
    if m == Measurement.HOOK_LENGTH:
        top_x, xs = _hook_points(component)
        return float(top_x - np.min(xs))
    if m == Measurement.BODY_WIDTH:
        top_x, xs = _hook_points(component)
        return float(np.max(xs) - top_x)

    oriented = component.get_oriented_nucleus()
    h, w = oriented.height, oriented.width
    if m == Measurement.BOUNDING_HEIGHT:
        return h
    if m == Measurement.BOUNDING_WIDTH:
        return w
    if m == Measurement.ELLIPTICITY:
        return h / w
    if m == Measurement.ASPECT:
        return w / h
    if m == Measurement.ELONGATION:
        return (h - w) / (h + w)
    if m == Measurement.REGULARITY:
        return math.pi * h * w / (4 * component.area)
    raise ValueError(f'Unknown measurement {m}')
