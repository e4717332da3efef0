"""
profile_segments.py

Module for dividing border profiles into segments between inflection points
and for fitting the segments of a template profile onto other profiles.

Functions:
    link_segments(segments): Link a closed chain of segments.
    copy_segments(segments): Copy and relink a segment chain.
    scale_segments(segments, new_length): Rescale a segment chain to a new profile length.

Classes:
    ProfileSegment: A region of a profile between two border indexes.
    SegmentedProfile: Profile carrying a closed chain of segments.
    ProfileSegmenter: Finds segment boundaries at profile inflection points.
    SegmentFitter: Moves segment boundaries of a target profile to match a template.
"""

import logging
import uuid

import numpy as np

from border_profile import Profile
from constants import (MIN_SEGMENT_LENGTH, SMOOTH_WINDOW, MAXIMA_WINDOW, DELTA_WINDOW, ANGLE_THRESHOLD,
                       MIN_RATE_OF_CHANGE, FIT_WINDOW)
from exceptions import SegmentUpdateError

logger = logging.getLogger(__name__)


class ProfileSegment:
    """
    Region of a closed profile from `start` to `end` inclusive.

    A segment whose end is not after its start wraps through index 0.
    Neighbouring segments share their boundary index.

    Attributes:
        start (int): First index of the segment.
        end (int): Last index of the segment.
        total_length (int): Length of the profile the segment belongs to.
        id (UUID): Identifier kept across nuclei for matching segments.
        locked (bool): Whether fitting may move the segment start.
        prev_segment (ProfileSegment): Preceding segment in the chain.
        next_segment (ProfileSegment): Following segment in the chain.
    """

    def __init__(self, start: int, end: int, total_length: int, segment_id: uuid.UUID = None,
                 locked: bool = False):
        if start < 0 or start >= total_length or end < 0 or end >= total_length:
            raise ValueError(f'Segment {start}-{end} outside profile of length {total_length}')
        self.start: int = int(start)
        self.end: int = int(end)
        self.total_length: int = int(total_length)
        self.id: uuid.UUID = segment_id if segment_id is not None else uuid.uuid4()
        self.locked: bool = locked
        self.prev_segment: ProfileSegment = None
        self.next_segment: ProfileSegment = None

    def __repr__(self):
        return f'ProfileSegment({self.start}-{self.end} of {self.total_length}, length: {self.length})'

    def wraps(self) -> bool:
        return self.end <= self.start

    @property
    def length(self) -> int:
        if self.wraps():
            return self.end + self.total_length + 1 - self.start
        return self.end - self.start + 1

    def contains(self, i: int) -> bool:
        if self.wraps():
            return i >= self.start or i <= self.end
        return self.start <= i <= self.end

    def copy(self) -> 'ProfileSegment':
        return ProfileSegment(self.start, self.end, self.total_length, self.id, self.locked)

    def offset(self, amount: int) -> 'ProfileSegment':
        """Copy of the segment with both boundaries moved by `amount`, wrapping."""
        return ProfileSegment((self.start + amount) % self.total_length, (self.end + amount) % self.total_length,
                              self.total_length, self.id, self.locked)


def link_segments(segments: list[ProfileSegment]) -> list[ProfileSegment]:
    """
    Link segments into a closed chain.

    Args:
        segments (list[ProfileSegment]): Segments in profile order.

    Returns:
        list[ProfileSegment]: The same segments, linked.

    Raises:
        SegmentUpdateError: If a segment does not end where the next starts.
    """
    if len(segments) == 0:
        raise SegmentUpdateError('Cannot link an empty segment list')
    for i, seg in enumerate(segments):
        nxt = segments[(i + 1) % len(segments)]
        if seg.end != nxt.start:
            raise SegmentUpdateError(f'Segment ending at {seg.end} does not meet segment starting at {nxt.start}')
        seg.next_segment = nxt
        nxt.prev_segment = seg
    return segments


def copy_segments(segments: list[ProfileSegment]) -> list[ProfileSegment]:
    return link_segments([s.copy() for s in segments])


def scale_segments(segments: list[ProfileSegment], new_length: int) -> list[ProfileSegment]:
    """
    Rescale segment boundaries proportionally to a new profile length.

    Args:
        segments (list[ProfileSegment]): Linked segments.
        new_length (int): Length of the target profile.

    Returns:
        list[ProfileSegment]: New linked segments with the same ids.

    Raises:
        SegmentUpdateError: If boundaries collide at the new length.
    """
    old_length = segments[0].total_length
    starts = [int(round(s.start * new_length / old_length)) % new_length for s in segments]
    if len(set(starts)) != len(starts):
        raise SegmentUpdateError(f'Cannot scale {len(segments)} segments to length {new_length}')
    scaled = [ProfileSegment(starts[i], starts[(i + 1) % len(starts)], new_length, s.id, s.locked)
              for i, s in enumerate(segments)]
    return link_segments(scaled)


class SegmentedProfile(Profile):
    """
    Profile divided into a closed chain of segments.

    A profile without explicit segments has one segment from 0 round to 0.

    Attributes:
        values (ndarray[float]): Profile values.
    """

    def __init__(self, values, segments: list[ProfileSegment] = None):
        super().__init__(values)
        self._segments: list[ProfileSegment] = []
        if segments is None:
            segments = [ProfileSegment(0, 0, len(self))]
        self.set_segments(segments)

    @classmethod
    def from_profile(cls, profile: Profile, segments: list[ProfileSegment] = None) -> 'SegmentedProfile':
        return cls(profile.values, segments)

    def set_segments(self, segments: list[ProfileSegment]):
        """
        Replace the segments with copies of the given chain.

        Raises:
            ValueError: If a segment belongs to a profile of another length.
            SegmentUpdateError: If the segments do not form a closed chain.
        """
        for s in segments:
            if s.total_length != len(self):
                raise ValueError(f'Segment of profile length {s.total_length} set on profile of length {len(self)}')
        self._segments = copy_segments(segments)

    @property
    def segments(self) -> list[ProfileSegment]:
        return copy_segments(self._segments)

    @property
    def segment_ids(self) -> list[uuid.UUID]:
        return [s.id for s in self._segments]

    def segment_count(self) -> int:
        return len(self._segments)

    def has_segments(self) -> bool:
        return len(self._segments) > 1

    def get_segment(self, segment_id: uuid.UUID) -> ProfileSegment:
        for s in self._segments:
            if s.id == segment_id:
                return s.copy()
        raise KeyError(f'No segment with id {segment_id}')

    def get_segment_containing(self, i: int) -> ProfileSegment:
        for s in self._segments:
            if s.contains(i):
                return s.copy()
        raise KeyError(f'No segment contains index {i}')

    def get_segment_subregion(self, segment: ProfileSegment) -> Profile:
        if len(self._segments) == 1:
            return Profile(np.roll(self.values, -segment.start))
        return self.get_subregion(segment.start, segment.end)

    def update_segment_start(self, segment_id: uuid.UUID, new_start: int):
        """
        Move the start of a segment, moving the end of the preceding segment with it.

        Args:
            segment_id (UUID): Segment to update.
            new_start (int): New start index, wrapped onto the profile.

        Raises:
            SegmentUpdateError: If the segment is locked, or either segment would
                become shorter than the minimal length or cross a neighbour.
        """
        new_start = self.wrap(new_start)
        seg = next((s for s in self._segments if s.id == segment_id), None)
        if seg is None:
            raise KeyError(f'No segment with id {segment_id}')
        if seg.locked:
            raise SegmentUpdateError(f'Segment {segment_id} is locked')
        if len(self._segments) == 1:
            seg.start = seg.end = new_start
            return
        prev = seg.prev_segment
        n = len(self)
        moved = ProfileSegment(new_start, seg.end, n)
        shortened = ProfileSegment(prev.start, new_start, n)
        if moved.length < MIN_SEGMENT_LENGTH or shortened.length < MIN_SEGMENT_LENGTH:
            raise SegmentUpdateError(f'Segment start {new_start} makes a segment shorter than {MIN_SEGMENT_LENGTH}')
        if moved.length + shortened.length != seg.length + prev.length:
            raise SegmentUpdateError(f'Segment start {new_start} is outside the neighbouring segments')
        seg.start = new_start
        prev.end = new_start

    def start_from(self, j: int) -> 'SegmentedProfile':
        j = self.wrap(j)
        return SegmentedProfile(np.roll(self.values, -j), [s.offset(-j) for s in self._segments])

    def reverse(self) -> 'SegmentedProfile':
        n = len(self)
        mirrored = [ProfileSegment(n - 1 - s.end, n - 1 - s.start, n, s.id, s.locked)
                    for s in reversed(self._segments)]
        return SegmentedProfile(self.values[::-1], mirrored)

    def interpolate(self, n: int) -> 'SegmentedProfile':
        values = Profile(self.values).interpolate(n).values
        return SegmentedProfile(values, scale_segments(self._segments, n))

    def copy(self) -> 'SegmentedProfile':
        return SegmentedProfile(self.values, self._segments)


class ProfileSegmenter:
    """
    Divides a profile into segments at its inflection points.

    Inflection points are local maxima of the smoothed profile above
    ANGLE_THRESHOLD and local minima below it. A boundary is only placed
    where the second delta of the profile changes fast enough, and never
    closer than MIN_SEGMENT_LENGTH to another boundary or the profile ends.

    Attributes:
        profile (Profile): Profile to segment, starting at the reference point.
    """

    def __init__(self, profile: Profile):
        self.profile: Profile = profile

    def inflection_points(self) -> np.ndarray:
        smoothed = self.profile.smooth(SMOOTH_WINDOW)
        return np.logical_or(smoothed.local_maxima(MAXIMA_WINDOW, ANGLE_THRESHOLD),
                             smoothed.local_minima(MAXIMA_WINDOW, ANGLE_THRESHOLD))

    def deltas(self) -> Profile:
        return self.profile.smooth(SMOOTH_WINDOW).calculate_deltas(DELTA_WINDOW).smooth(
            SMOOTH_WINDOW).calculate_deltas(DELTA_WINDOW)

    def segment(self) -> list[ProfileSegment]:
        """
        Find the segments of the profile.

        Returns:
            list[ProfileSegment]: Linked segments, the first starting at index 0.
        """
        n = len(self.profile)
        inflections = self.inflection_points()
        deltas = self.deltas()
        min_rate = abs(deltas.max() - deltas.min()) * MIN_RATE_OF_CHANGE

        segments = []
        start = 0
        for i in range(n):
            if i < MIN_SEGMENT_LENGTH or i - start < MIN_SEGMENT_LENGTH or i > n - MIN_SEGMENT_LENGTH:
                continue
            if inflections[i] and abs(deltas.values[i]) > min_rate:
                segments.append(ProfileSegment(start, i, n))
                start = i
        segments.append(ProfileSegment(start, 0, n))
        logger.debug(f'Found {len(segments)} segments in profile of length {n}')
        return link_segments(segments)


class SegmentFitter:
    """
    Fits the segments of a template profile onto other profiles.

    Segment boundaries are first scaled onto the target length, then each
    unlocked boundary not at index 0 is moved to minimise the difference
    between matching segments of the template and the target.

    Attributes:
        template (SegmentedProfile): Segmented profile to fit.
        template_regions (dict[UUID, Profile]): Template values of each segment.
    """

    def __init__(self, template: SegmentedProfile):
        self.template: SegmentedProfile = template
        self.template_regions: dict[uuid.UUID, Profile] = {
            s.id: template.get_segment_subregion(s) for s in template.segments}

    def score(self, profile: SegmentedProfile) -> float:
        """Summed square difference of every segment to the matching template segment."""
        total = 0.0
        for s in profile.segments:
            total += self.template_regions[s.id].absolute_square_difference(profile.get_segment_subregion(s))
        return total

    def fit(self, target: Profile) -> SegmentedProfile:
        """
        Segment a target profile like the template.

        Args:
            target (Profile): Profile starting at the same landmark as the template.

        Returns:
            SegmentedProfile: Target values with fitted segments.
        """
        fitted = SegmentedProfile(target.values, scale_segments(self.template.segments, len(target)))
        if fitted.segment_count() < 2:
            return fitted
        for segment_id in fitted.segment_ids:
            seg = fitted.get_segment(segment_id)
            if seg.locked or seg.start == 0:
                continue
            fitted = self._fit_segment_start(fitted, segment_id)
        return fitted

    def _try_change(self, profile: SegmentedProfile, segment_id: uuid.UUID, change: int):
        candidate = profile.copy()
        try:
            candidate.update_segment_start(segment_id, candidate.get_segment(segment_id).start + change)
        except SegmentUpdateError as e:
            logger.debug(f'Rejected segment start change {change}: {e}')
            return None, np.inf
        return candidate, self.score(candidate)

    def _fit_segment_start(self, profile: SegmentedProfile, segment_id: uuid.UUID) -> SegmentedProfile:
        seg = profile.get_segment(segment_id)
        prev = profile.get_segment_containing(profile.wrap(seg.start - 1))
        min_change = -(prev.length - MIN_SEGMENT_LENGTH)
        max_change = seg.length - MIN_SEGMENT_LENGTH

        best, best_score, best_change = profile, self.score(profile), 0
        for change in range(min_change, max_change + 1, FIT_WINDOW):
            if change == 0:
                continue
            candidate, score = self._try_change(profile, segment_id, change)
            if score < best_score:
                best, best_score, best_change = candidate, score, change

        coarse_change = best_change
        for change in range(coarse_change - FIT_WINDOW // 2, coarse_change + FIT_WINDOW // 2 + 1):
            if change == coarse_change or change < min_change or change > max_change:
                continue
            candidate, score = self._try_change(profile, segment_id, change)
            if score < best_score:
                best, best_score = candidate, score
        return best
