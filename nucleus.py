"""
nucleus.py

Module providing nuclei: borders with profiles, landmarks, profile segments,
nuclear signals and an oriented copy used for shape measurements.

Landmarks are stored as border indexes. Profiles and segments are read
relative to a landmark, usually the reference point, so that nuclei of
different sizes can be compared index by index.

Functions:
    create_nucleus(points, ...): Build a nucleus and detect its landmarks.

Classes:
    ProfileableComponent: Component with border profiles, landmarks and segments.
    Nucleus: Profileable component with signals and a cached oriented copy.
"""

import copy
import logging
import math

import numpy as np

from border_profile import Profile, ProfileType, create_profile
from cellular_component import CellularComponent
from constants import DEFAULT_WINDOW_PROPORTION
from exceptions import ComponentCreationError, MissingLandmarkError, ProfileError
from index_finder import assign_landmarks, should_reverse_profile
from measurement import Measurement
from nuclear_signal import NuclearSignal, SignalCollection
from profile_segments import ProfileSegment, SegmentedProfile, copy_segments
from rules import Landmark, OrientationMark, PriorityAxis, RuleSetCollection

logger = logging.getLogger(__name__)


class ProfileableComponent(CellularComponent):
    """
    Component with border profiles, landmarks and border segments.

    Attributes:
        rule_set_collection (RuleSetCollection): Landmarks and orientation of this nucleus type.
        window_proportion (float): Angle window as a fraction of the perimeter.
        profiles (dict[ProfileType, Profile]): Profiles indexed from border index 0.
        landmarks (dict[Landmark, int]): Border index of each landmark.
        segments (list[ProfileSegment]): Border segments indexed from border index 0.
        locked (bool): Whether dataset analyses may move the landmarks.
    """

    def __init__(self, points: np.ndarray, com=None, rule_set_collection: RuleSetCollection = None,
                 window_proportion: float = DEFAULT_WINDOW_PROPORTION, **kwargs):
        super().__init__(points, com, **kwargs)
        if not 0 < window_proportion < 1:
            raise ValueError(f'Window proportion {window_proportion} must be between 0 and 1')
        self.rule_set_collection: RuleSetCollection = rule_set_collection
        self.window_proportion: float = window_proportion
        self.profiles: dict[ProfileType, Profile] = {}
        self.landmarks: dict[Landmark, int] = {}
        self.segments: list[ProfileSegment] = [ProfileSegment(0, 0, len(self))]
        self.locked: bool = False
        self.create_profiles()

    @property
    def window_size(self) -> int:
        return max(1, math.ceil(self.perimeter * self.window_proportion))

    def create_profiles(self):
        for t in ProfileType:
            self.profiles[t] = create_profile(t, self.border, self.com, self.window_size)

    ######################################Landmarks

    def _resolve(self, landmark) -> Landmark:
        if isinstance(landmark, Landmark):
            return landmark
        lm = self.rule_set_collection.get_landmark(landmark) if self.rule_set_collection is not None else None
        if lm is None:
            raise MissingLandmarkError(f'No landmark fills {landmark}')
        return lm

    def has_landmark(self, landmark) -> bool:
        try:
            return self._resolve(landmark) in self.landmarks
        except MissingLandmarkError:
            return False

    def get_border_index(self, landmark) -> int:
        """
        Border index of a landmark.

        Args:
            landmark (Landmark or OrientationMark): Landmark, or the orientation role it fills.

        Raises:
            MissingLandmarkError: If the landmark is not set.
        """
        lm = self._resolve(landmark)
        if lm not in self.landmarks:
            raise MissingLandmarkError(f'{lm} is not set in {self}')
        return self.landmarks[lm]

    def set_landmark(self, landmark, i: int):
        if i < 0 or i >= len(self):
            raise IndexError(f'Landmark index {i} outside border of length {len(self)}')
        self.landmarks[self._resolve(landmark)] = int(i)

    def get_landmark_point(self, landmark) -> np.ndarray:
        return self.get_border_point(self.get_border_index(landmark))

    def get_index_relative_to(self, landmark, i: int) -> int:
        """Offset of border index `i` from a landmark."""
        return self.wrap_index(i - self.get_border_index(landmark))

    ######################################Profiles and segments

    def get_profile(self, profile_type: ProfileType, landmark=OrientationMark.REFERENCE) -> SegmentedProfile:
        """
        Segmented profile starting at a landmark.

        Args:
            profile_type (ProfileType): Kind of profile.
            landmark (Landmark or OrientationMark): Landmark at index 0 of the result.

        Returns:
            SegmentedProfile: Profile values and segments starting at the landmark.
        """
        start = self.get_border_index(landmark)
        return SegmentedProfile(self.profiles[profile_type].values, self.segments).start_from(start)

    def set_segments(self, segments: list[ProfileSegment], landmark=OrientationMark.REFERENCE):
        """
        Set segments given relative to a landmark.

        Raises:
            ValueError: If the segments belong to a profile of another length.
        """
        if segments[0].total_length != len(self):
            raise ValueError(f'Segments of length {segments[0].total_length} set on border of length {len(self)}')
        start = self.get_border_index(landmark)
        self.segments = copy_segments([s.offset(start) for s in segments])

    def get_segments(self, landmark=OrientationMark.REFERENCE) -> list[ProfileSegment]:
        start = self.get_border_index(landmark)
        return copy_segments([s.offset(-start) for s in self.segments])

    def has_segments(self) -> bool:
        return len(self.segments) > 1

    def duplicate(self) -> 'ProfileableComponent':
        # the rule set collection is shared, not copied
        return copy.deepcopy(self, {id(self.rule_set_collection): self.rule_set_collection})

    def reverse(self):
        """
        Reverse the border direction, keeping landmarks and segments on the same border points.
        """
        n = len(self)
        super().reverse()
        self.create_profiles()
        self.landmarks = {lm: n - 1 - i for lm, i in self.landmarks.items()}
        self.segments = copy_segments([ProfileSegment(n - 1 - s.end, n - 1 - s.start, n, s.id, s.locked)
                                       for s in reversed(self.segments)])


class Nucleus(ProfileableComponent):
    """
    Nucleus with signals and a cached copy rotated to a standard orientation.

    The oriented copy is rebuilt after any change to landmarks, segments,
    measurements or signals.

    Attributes:
        nucleus_number (int): Number of the nucleus within its source image.
        signals (SignalCollection): Signals within the nucleus.
    """

    def __init__(self, points: np.ndarray, com=None, rule_set_collection: RuleSetCollection = None,
                 window_proportion: float = DEFAULT_WINDOW_PROPORTION, nucleus_number: int = 0, **kwargs):
        self._oriented: Nucleus = None
        super().__init__(points, com, rule_set_collection, window_proportion, **kwargs)
        self.nucleus_number: int = nucleus_number
        self.signals: SignalCollection = SignalCollection()

    def __repr__(self):
        return f'Nucleus({self.source_file}-{self.nucleus_number}, points: {len(self)})'

    def _invalidate(self):
        self._oriented = None

    def set_landmark(self, landmark, i: int):
        super().set_landmark(landmark, i)
        self._invalidate()

    def set_segments(self, segments: list[ProfileSegment], landmark=OrientationMark.REFERENCE):
        super().set_segments(segments, landmark)
        self._invalidate()

    def clear_measurements(self):
        super().clear_measurements()
        self._invalidate()

    def reverse(self):
        super().reverse()
        self._invalidate()

    ######################################Signals

    def add_signal_group(self, group_id, source_file: str = '', channel: int = 0):
        self.signals.add_signal_group(group_id, source_file, channel)
        self._invalidate()

    def add_signals(self, signals: list[NuclearSignal], group_id):
        self.signals.add_signals(signals, group_id)
        self.calculate_signal_measurements()
        self.measurements.pop(Measurement.NUCLEUS_SIGNAL_COUNT, None)
        self._invalidate()

    def _signal_reference(self) -> np.ndarray:
        if self.has_landmark(OrientationMark.Y):
            return self.get_landmark_point(OrientationMark.Y)
        return self.get_landmark_point(OrientationMark.REFERENCE)

    def distance_to_border_at_angle(self, angle: float) -> float:
        """Distance from the centre of mass to the border point closest to an angle in degrees."""
        d = self.border - self.com
        theta = np.degrees(np.arctan2(d[:, 1], d[:, 0]))
        diff = np.abs((theta - angle + 180) % 360 - 180)
        return float(np.linalg.norm(d[np.argmin(diff)]))

    def calculate_signal_measurements(self):
        """
        Set the angle and distance of each signal relative to the centre of mass.

        The angle runs anticlockwise from the Y landmark, or the reference point
        when no Y landmark is used, to the signal centre of mass.
        """
        if len(self.signals.get_signals()) == 0:
            return
        ref = self._signal_reference() - self.com
        ref_angle = math.degrees(math.atan2(ref[1], ref[0]))
        for s in self.signals.get_signals():
            d = s.com - self.com
            signal_angle = math.degrees(math.atan2(d[1], d[0]))
            distance = float(np.linalg.norm(d))
            s.set_measurement(Measurement.ANGLE, (signal_angle - ref_angle) % 360)
            s.set_measurement(Measurement.DISTANCE_FROM_COM, distance)
            s.set_measurement(Measurement.FRACT_DISTANCE_FROM_COM,
                              distance / self.distance_to_border_at_angle(signal_angle))

    ######################################Transforms

    def offset(self, dx: float, dy: float):
        super().offset(dx, dy)
        self.signals.offset(dx, dy)

    def rotate(self, degrees: float, anchor=None):
        anchor = self.com.copy() if anchor is None else np.asarray(anchor, dtype=float)
        super().rotate(degrees, anchor)
        self.signals.rotate(degrees, anchor)

    def flip_horizontal(self, x: float = None):
        x = self.com[0] if x is None else x
        super().flip_horizontal(x)
        self.signals.flip_horizontal(x)

    def flip_vertical(self, y: float = None):
        y = self.com[1] if y is None else y
        super().flip_vertical(y)
        self.signals.flip_vertical(y)

    def duplicate(self) -> 'Nucleus':
        cached, self._oriented = self._oriented, None
        try:
            return super().duplicate()
        finally:
            self._oriented = cached

    ######################################Orientation

    def _point_angle(self, landmark) -> float:
        d = self.get_landmark_point(landmark) - self.com
        return math.degrees(math.atan2(d[1], d[0]))

    def _line_angle(self, first, second) -> float:
        d = self.get_landmark_point(second) - self.get_landmark_point(first)
        return math.degrees(math.atan2(d[1], d[0]))

    def _align(self, mark: OrientationMark, first: OrientationMark, second: OrientationMark, target: float):
        if self.has_landmark(mark):
            self.rotate(target - self._point_angle(mark))
        elif self.has_landmark(first) and self.has_landmark(second):
            self.rotate(target - self._line_angle(first, second))

    def orient(self):
        """
        Rotate and flip in place to the standard orientation.

        With priority axis Y the Y landmark is put directly below the centre of
        mass, or the top-bottom line is made vertical; the nucleus is then
        flipped so the left landmark is left of the centre of mass. Priority
        axis X puts the X landmark to the left, or makes the left-right line
        horizontal, then flips so the top landmark is above the centre of mass.
        """
        if self.rule_set_collection.priority_axis == PriorityAxis.Y:
            self._align(OrientationMark.Y, OrientationMark.TOP, OrientationMark.BOTTOM, -90)
            x = self.com[0]
            if self.has_landmark(OrientationMark.LEFT):
                if self.get_landmark_point(OrientationMark.LEFT)[0] > x:
                    self.flip_horizontal()
            elif self.has_landmark(OrientationMark.RIGHT):
                if self.get_landmark_point(OrientationMark.RIGHT)[0] < x:
                    self.flip_horizontal()
        else:
            self._align(OrientationMark.X, OrientationMark.LEFT, OrientationMark.RIGHT, 180)
            y = self.com[1]
            if self.has_landmark(OrientationMark.TOP):
                if self.get_landmark_point(OrientationMark.TOP)[1] < y:
                    self.flip_vertical()
            elif self.has_landmark(OrientationMark.BOTTOM):
                if self.get_landmark_point(OrientationMark.BOTTOM)[1] > y:
                    self.flip_vertical()
        self.clear_measurements()

    def get_oriented_nucleus(self) -> 'Nucleus':
        """
        Copy of the nucleus in the standard orientation, cached until the nucleus changes.
        """
        if self._oriented is None:
            oriented = self.duplicate()
            oriented.orient()
            self._oriented = oriented
        return self._oriented


def create_nucleus(points: np.ndarray, com=None, rule_set_collection: RuleSetCollection = None,
                   window_proportion: float = DEFAULT_WINDOW_PROPORTION, nucleus_number: int = 0,
                   source_file: str = '', channel: int = 0, scale: float = 1.0) -> Nucleus:
    """
    Build a nucleus, detect its landmarks and make its border run in the standard direction.

    Args:
        points (ndarray): Border points of shape (N,2) as (x, y).
        com (array-like, optional): Centre of mass; polygon centroid by default.
        rule_set_collection (RuleSetCollection): Landmarks of this nucleus type.
        window_proportion (float): Angle window as a fraction of the perimeter.
        nucleus_number (int): Number of the nucleus in its image.
        source_file (str): Image the nucleus was found in.
        channel (int): Image channel.
        scale (float): Pixels per micron.

    Returns:
        Nucleus: New nucleus with landmarks set.

    Raises:
        ComponentCreationError: If the border cannot be profiled.
    """
    if rule_set_collection is None:
        raise ComponentCreationError('A rule set collection is needed to create a nucleus')
    try:
        n = Nucleus(points, com, rule_set_collection, window_proportion, nucleus_number,
                    source_file=source_file, channel=channel, scale=scale)
    except (ProfileError, ValueError) as e:
        raise ComponentCreationError(f'Cannot create nucleus {nucleus_number} in {source_file}: {e}') from e

    assign_landmarks(n, rule_set_collection)
    if should_reverse_profile(n):
        logger.debug(f'Reversing border of {n}')
        n.reverse()
        assign_landmarks(n, rule_set_collection)
    return n
