"""
cell_collection.py

Module grouping the nuclei of a dataset with their population profiles.

Classes:
    ProfileCollection: Median and quartile profiles of a dataset, with median landmarks and segments.
    CellCollection: Nuclei of one dataset with their profiles, consensus and measurement summaries.
"""

import logging
import math

import numpy as np

from border_profile import Profile, ProfileAggregate, ProfileType
from constants import MEDIAN
from exceptions import MissingLandmarkError, ProfileError
from measurement import Measurement, MeasurementScale
from nucleus import Nucleus
from profile_segments import ProfileSegment, SegmentedProfile, copy_segments, scale_segments
from rules import Landmark, OrientationMark, RuleSetCollection

logger = logging.getLogger(__name__)


class ProfileCollection:
    """
    Population profiles of a dataset.

    Every nucleus profile is read from its reference point and interpolated to
    a common length, so index 0 of the aggregated profiles is the reference
    point. Landmark indexes and segments are held relative to that index.

    Attributes:
        rule_set_collection (RuleSetCollection): Landmarks of the nucleus type.
        landmarks (dict[Landmark, int]): Index of each landmark in the median.
        segments (list[ProfileSegment]): Median segments relative to the reference point.
        aggregates (dict[ProfileType, ProfileAggregate]): Aggregated profiles by type.
        length (int): Common length of the aggregated profiles.
    """

    def __init__(self, rule_set_collection: RuleSetCollection):
        self.rule_set_collection: RuleSetCollection = rule_set_collection
        self.landmarks: dict[Landmark, int] = {rule_set_collection.reference_point: 0}
        self.segments: list[ProfileSegment] = None
        self.aggregates: dict[ProfileType, ProfileAggregate] = {}
        self.length: int = 0
        self._quartiles: dict[tuple, Profile] = {}

    def _resolve(self, landmark) -> Landmark:
        if isinstance(landmark, Landmark):
            return landmark
        lm = self.rule_set_collection.get_landmark(landmark)
        if lm is None:
            raise MissingLandmarkError(f'No landmark fills {landmark}')
        return lm

    def has_profiles(self) -> bool:
        return len(self.aggregates) > 0

    def calculate_profiles(self, nuclei: list[Nucleus]):
        """
        Aggregate the profiles of the nuclei, read from their reference points.

        The common length is the median border length. Existing median segments
        are rescaled to it.

        Raises:
            ProfileError: If there are no nuclei.
        """
        if len(nuclei) == 0:
            raise ProfileError('Cannot calculate profiles of an empty collection')
        length = int(np.median([len(n) for n in nuclei]))
        if self.segments is not None and length != self.length:
            self.segments = scale_segments(self.segments, length)
        self.length = length
        self._quartiles = {}
        self.aggregates = {}
        for t in ProfileType:
            aggregate = ProfileAggregate(length)
            for n in nuclei:
                aggregate.add_profile(n.get_profile(t, OrientationMark.REFERENCE))
            self.aggregates[t] = aggregate

    def _quartile(self, profile_type: ProfileType, q: float) -> Profile:
        if profile_type not in self.aggregates:
            raise ProfileError(f'No {profile_type} calculated')
        key = (profile_type, q)
        if key not in self._quartiles:
            self._quartiles[key] = self.aggregates[profile_type].quartile(q)
        return self._quartiles[key]

    def get_profile(self, profile_type: ProfileType, landmark=OrientationMark.REFERENCE,
                    q: float = MEDIAN) -> Profile:
        """
        Quartile profile starting at a landmark.

        Args:
            profile_type (ProfileType): Kind of profile.
            landmark (Landmark or OrientationMark): Landmark at index 0 of the result.
            q (float): Percentile.
        """
        return self._quartile(profile_type, q).start_from(self.get_landmark_index(landmark))

    def get_segmented_profile(self, profile_type: ProfileType, landmark=OrientationMark.REFERENCE,
                              q: float = MEDIAN) -> SegmentedProfile:
        values = self._quartile(profile_type, q).values
        segmented = SegmentedProfile(values, self.segments) if self.segments is not None else SegmentedProfile(values)
        return segmented.start_from(self.get_landmark_index(landmark))

    def set_landmark(self, landmark, i: int):
        if self.length and (i < 0 or i >= self.length):
            raise IndexError(f'Landmark index {i} outside profile of length {self.length}')
        self.landmarks[self._resolve(landmark)] = int(i)

    def has_landmark(self, landmark) -> bool:
        try:
            return self._resolve(landmark) in self.landmarks
        except MissingLandmarkError:
            return False

    def get_landmark_index(self, landmark) -> int:
        lm = self._resolve(landmark)
        if lm not in self.landmarks:
            raise MissingLandmarkError(f'{lm} is not set in the median profile')
        return self.landmarks[lm]

    def set_segments(self, segments: list[ProfileSegment]):
        """
        Set median segments given relative to the reference point.

        Raises:
            ValueError: If the segments belong to a profile of another length.
        """
        if segments[0].total_length != self.length:
            raise ValueError(f'Segments of length {segments[0].total_length} set on profiles of length {self.length}')
        self.segments = copy_segments(segments)

    def get_segments(self, landmark=OrientationMark.REFERENCE) -> list[ProfileSegment]:
        if self.segments is None:
            return []
        start = self.get_landmark_index(landmark)
        return copy_segments([s.offset(-start) for s in self.segments])

    def has_segments(self) -> bool:
        return self.segments is not None and len(self.segments) > 1


class CellCollection:
    """
    Nuclei of one dataset.

    Attributes:
        name (str): Dataset name.
        rule_set_collection (RuleSetCollection): Landmarks of the nucleus type.
        nuclei (list[Nucleus]): Nuclei of the dataset.
        profile_collection (ProfileCollection): Population profiles.
        consensus (Nucleus): Consensus nucleus, when built.
        scale (float): Pixels per micron of the dataset.
    """

    def __init__(self, name: str, rule_set_collection: RuleSetCollection, scale: float = 1.0):
        self.name: str = name
        self.rule_set_collection: RuleSetCollection = rule_set_collection
        self.nuclei: list[Nucleus] = []
        self.profile_collection: ProfileCollection = ProfileCollection(rule_set_collection)
        self.consensus: Nucleus = None
        self.scale: float = scale

    def __len__(self):
        return len(self.nuclei)

    def __iter__(self):
        return iter(self.nuclei)

    def __repr__(self):
        return f'CellCollection({self.name}, nuclei: {len(self)}, type: {self.rule_set_collection.name})'

    def add_nucleus(self, n: Nucleus):
        self.nuclei.append(n)

    def add_nuclei(self, nuclei: list[Nucleus]):
        self.nuclei.extend(nuclei)

    def get_nuclei(self, source_file: str = None) -> list[Nucleus]:
        if source_file is None:
            return list(self.nuclei)
        return [n for n in self.nuclei if n.source_file == source_file]

    def has_consensus(self) -> bool:
        return self.consensus is not None

    @property
    def median_array_length(self) -> int:
        return int(np.median([len(n) for n in self.nuclei]))

    def clear_measurements(self):
        for n in self.nuclei:
            n.clear_measurements()

    def get_normalised_difference_to_median(self, n: Nucleus) -> float:
        """
        Difference of a nucleus angle profile to the median, normalised by its perimeter.
        """
        median = self.profile_collection.get_profile(ProfileType.ANGLE, OrientationMark.REFERENCE, MEDIAN)
        diff = n.get_profile(ProfileType.ANGLE, OrientationMark.REFERENCE).absolute_square_difference(median)
        return math.sqrt(diff / n.get_measurement(Measurement.PERIMETER))

    def get_measurements(self, m: Measurement, scale: MeasurementScale = MeasurementScale.PIXELS) -> np.ndarray:
        """
        Measurement of every nucleus.

        Returns:
            ndarray[float]: Values in nucleus order.
        """
        if m == Measurement.VARIABILITY:
            return np.array([self.get_normalised_difference_to_median(n) for n in self.nuclei], dtype=float)
        return np.array([n.get_measurement(m, scale) for n in self.nuclei], dtype=float)

    def get_quartile(self, m: Measurement, q: float, scale: MeasurementScale = MeasurementScale.PIXELS) -> float:
        values = self.get_measurements(m, scale)
        if values.size == 0:
            raise ValueError(f'No nuclei in {self.name}')
        return float(np.percentile(values, q))

    def get_median(self, m: Measurement, scale: MeasurementScale = MeasurementScale.PIXELS) -> float:
        return self.get_quartile(m, MEDIAN, scale)

    def fit_landmark(self, landmark, template: Profile):
        """
        Set a landmark in each unlocked nucleus where its angle profile best matches a template.

        Args:
            landmark (Landmark or OrientationMark): Landmark to set.
            template (Profile): Median angle profile starting at the landmark.
        """
        for n in self.nuclei:
            if n.locked:
                continue
            offset = n.get_profile(ProfileType.ANGLE, OrientationMark.REFERENCE).find_best_fit_offset(template)
            n.set_landmark(landmark, n.wrap_index(n.get_border_index(OrientationMark.REFERENCE) + offset))
            n.clear_measurements()

    def calculate_measurements(self):
        """
        Calculate the measurable values of the nucleus type on every nucleus.

        Measurements needing an absent landmark are logged and skipped.
        """
        for n in self.nuclei:
            for m in self.rule_set_collection.measurable_values:
                if m == Measurement.VARIABILITY:
                    continue
                try:
                    n.get_measurement(m)
                except MissingLandmarkError as e:
                    logger.info(f'Cannot measure {m} in {n}: {e}')

    def get_signal_group_ids(self) -> list:
        ids = []
        for n in self.nuclei:
            for i in n.signals.signal_group_ids:
                if i not in ids:
                    ids.append(i)
        return ids
