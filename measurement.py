"""
measurement.py

Module defining the statistics measured on nuclei and signals, their
physical dimensions, and conversion between pixel and micron scales.

Classes:
    MeasurementDimension: Physical dimension of a measurement.
    MeasurementScale: Units a measurement is reported in.
    Measurement: Statistics available on nuclei and signals.

Constants:
    COMPONENT_STATS (list[Measurement]): Statistics of any component.
    ROUND_STATS (list[Measurement]): Statistics of round nuclei.
    RODENT_SPERM_STATS (list[Measurement]): Statistics of rodent sperm nuclei.
    SIGNAL_STATS (list[Measurement]): Statistics of nuclear signals.
"""

from enum import Enum


class MeasurementDimension(Enum):
    LENGTH = 'Length'
    AREA = 'Area'
    ANGLE = 'Angle'
    NONE = 'None'


class MeasurementScale(Enum):
    PIXELS = 'Pixels'
    MICRONS = 'Microns'

    def convert(self, value: float, scale: float, dimension: MeasurementDimension) -> float:
        """
        Convert a value measured in pixels into these units.

        Args:
            value (float): Value in pixels.
            scale (float): Pixels per micron.
            dimension (MeasurementDimension): Dimension of the value.

        Returns:
            float: Converted value. Angles and dimensionless values are unchanged.
        """
        if self == MeasurementScale.PIXELS:
            return value
        if dimension == MeasurementDimension.LENGTH:
            return value / scale
        if dimension == MeasurementDimension.AREA:
            return value / (scale * scale)
        return value


class Measurement(Enum):
    """Statistics with their displayed name and dimension."""
    AREA = ('Area', MeasurementDimension.AREA)
    PERIMETER = ('Perimeter', MeasurementDimension.LENGTH)
    MAX_FERET = ('Max feret', MeasurementDimension.LENGTH)
    MIN_DIAMETER = ('Min diameter', MeasurementDimension.LENGTH)
    RADIUS = ('Radius', MeasurementDimension.LENGTH)
    ELLIPTICITY = ('Ellipticity', MeasurementDimension.NONE)
    ASPECT = ('Aspect', MeasurementDimension.NONE)
    CIRCULARITY = ('Circularity', MeasurementDimension.NONE)
    ELONGATION = ('Elongation', MeasurementDimension.NONE)
    REGULARITY = ('Regularity', MeasurementDimension.NONE)
    VARIABILITY = ('Difference from median', MeasurementDimension.NONE)
    BOUNDING_HEIGHT = ('Bounding height', MeasurementDimension.LENGTH)
    BOUNDING_WIDTH = ('Bounding width', MeasurementDimension.LENGTH)
    OP_RP_ANGLE = ('Angle between reference points', MeasurementDimension.ANGLE)
    HOOK_LENGTH = ('Width of hook', MeasurementDimension.LENGTH)
    BODY_WIDTH = ('Width of body', MeasurementDimension.LENGTH)
    NUCLEUS_SIGNAL_COUNT = ('Signal count', MeasurementDimension.NONE)
    ANGLE = ('Angle', MeasurementDimension.ANGLE)
    DISTANCE_FROM_COM = ('Distance from CoM', MeasurementDimension.LENGTH)
    FRACT_DISTANCE_FROM_COM = ('Fractional distance from CoM', MeasurementDimension.NONE)

    def __init__(self, label: str, dimension: MeasurementDimension):
        self.label = label
        self.dimension = dimension

    def __str__(self):
        return self.label

    def convert(self, value: float, scale: float, units: MeasurementScale) -> float:
        return units.convert(value, scale, self.dimension)


COMPONENT_STATS = [Measurement.AREA, Measurement.PERIMETER, Measurement.CIRCULARITY]

ROUND_STATS = COMPONENT_STATS + [Measurement.MIN_DIAMETER, Measurement.ELLIPTICITY, Measurement.ASPECT,
                                 Measurement.ELONGATION, Measurement.REGULARITY, Measurement.VARIABILITY,
                                 Measurement.BOUNDING_HEIGHT, Measurement.BOUNDING_WIDTH]

RODENT_SPERM_STATS = ROUND_STATS + [Measurement.HOOK_LENGTH, Measurement.BODY_WIDTH]

SIGNAL_STATS = COMPONENT_STATS + [Measurement.ANGLE, Measurement.DISTANCE_FROM_COM,
                                  Measurement.FRACT_DISTANCE_FROM_COM]
