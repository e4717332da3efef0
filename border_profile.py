"""
border_profile.py

Module providing border profiles: per-point measurements taken around a
closed nucleus border, together with the profile arithmetic used to find
landmarks, compare nuclei and build population medians.

Functions:
    angle_profile(points, window): Interior angle at each border point.
    diameter_profile(points, com): Distance from each border point to the opposite point.
    radius_profile(points, com): Distance from each border point to the centre of mass.
    create_profile(profile_type, points, com, window): Build a profile of the given type.

Classes:
    ProfileType: Kinds of border profile.
    Profile: Wrapping one-dimensional array of border values.
    ProfileAggregate: Collects profiles of many nuclei and computes quartile profiles.
"""

from enum import Enum

import numpy as np
from skimage.measure import points_in_poly

from constants import MIN_PROFILE_LENGTH, MEDIAN
from exceptions import ProfileError, NoDetectedIndexError


class ProfileType(Enum):
    """Kinds of profile that can be measured around a border."""
    ANGLE = 'Angle profile'
    DIAMETER = 'Diameter profile'
    RADIUS = 'Radius profile'

    def __str__(self):
        return self.value


def _wrap_angle(a: np.ndarray) -> np.ndarray:
    return (a + np.pi) % (2 * np.pi) - np.pi


def angle_profile(points: np.ndarray, window: int) -> np.ndarray:
    """
    Compute the interior angle at every border point.

    The angle at point i is measured between the points `window` positions
    before and after it. When the midpoint of those two points falls outside
    the polygon the border is concave there and the reflex angle is used.

    Args:
        points (ndarray): Border points of shape (N,2) as (x, y).
        window (int): Number of border points either side of the measured point.

    Returns:
        ndarray[float]: Angles in degrees in range [0, 360].
    """
    before = np.roll(points, window, axis=0)
    after = np.roll(points, -window, axis=0)

    v1 = before - points
    v2 = after - points
    a = np.degrees(np.abs(_wrap_angle(np.arctan2(v1[:, 1], v1[:, 0]) - np.arctan2(v2[:, 1], v2[:, 0]))))

    inside = points_in_poly((before + after) / 2, points)
    return np.where(inside, a, 360 - a)


def diameter_profile(points: np.ndarray, com: np.ndarray) -> np.ndarray:
    """
    Compute the distance from each border point to the point opposite it through the centre of mass.

    The opposite point is the border point whose angle about the centre of mass
    is closest to 180 degrees away.

    Args:
        points (ndarray): Border points of shape (N,2).
        com (ndarray): Centre of mass (x, y).

    Returns:
        ndarray[float]: Diameters of length N.
    """
    d = points - com
    theta = np.arctan2(d[:, 1], d[:, 0])
    diff = np.abs(_wrap_angle(theta[None, :] - (theta[:, None] + np.pi)))
    opposite = np.argmin(diff, axis=1)
    return np.linalg.norm(points - points[opposite], axis=1)


def radius_profile(points: np.ndarray, com: np.ndarray) -> np.ndarray:
    return np.linalg.norm(points - com, axis=1)


def create_profile(profile_type: ProfileType, points: np.ndarray, com: np.ndarray, window: int) -> 'Profile':
    """
    Build a profile of the requested type from a border.

    Args:
        profile_type (ProfileType): Kind of profile.
        points (ndarray): Border points of shape (N,2).
        com (ndarray): Centre of mass (x, y).
        window (int): Angle window in border points.

    Returns:
        Profile: New profile of length N.

    Raises:
        ProfileError: If the border is too short.
    """
    if points.shape[0] < MIN_PROFILE_LENGTH:
        raise ProfileError(f'Cannot profile a border of {points.shape[0]} points')
    if profile_type == ProfileType.ANGLE:
        return Profile(angle_profile(points, window))
    if profile_type == ProfileType.DIAMETER:
        return Profile(diameter_profile(points, com))
    if profile_type == ProfileType.RADIUS:
        return Profile(radius_profile(points, com))
    raise ValueError(f'Unknown profile type {profile_type}')


class Profile:
    """
    Values measured at each point of a closed border.

    Indexes wrap around the border: index n is index 0 again. Operations
    return new profiles and never modify the values in place.

    Attributes:
        values (ndarray[float]): Profile values.
    """

    def __init__(self, values):
        """
        Args:
            values (array-like): One-dimensional profile values.
        """
        arr = np.array(values, dtype=float)
        if arr.ndim != 1 or arr.size == 0:
            raise ValueError('A profile needs a non-empty one-dimensional array')
        self.values: np.ndarray = arr

    def _new(self, values) -> 'Profile':
        return Profile(values)

    def __len__(self):
        return self.values.size

    def __getitem__(self, i: int) -> float:
        if i < 0 or i >= len(self):
            raise IndexError(f'Index {i} outside profile of length {len(self)}')
        return float(self.values[i])

    def __iter__(self):
        return iter(self.values)

    def __repr__(self):
        return f'{type(self).__name__}(length: {len(self)}, min: {self.min():.2f}, max: {self.max():.2f})'

    def to_array(self) -> np.ndarray:
        return self.values.copy()

    def wrap(self, i: int) -> int:
        return int(i) % len(self)

    def max(self) -> float:
        return float(np.max(self.values))

    def min(self) -> float:
        return float(np.min(self.values))

    def index_of_fraction(self, d: float) -> int:
        """
        Index found at a fraction of the profile length.

        Raises:
            ValueError: If `d` is outside [0, 1].
        """
        if d < 0 or d > 1:
            raise ValueError(f'Fraction {d} must be between 0 and 1')
        return int(len(self) * d)

    def fraction_of_index(self, i: int) -> float:
        if i < 0 or i >= len(self):
            raise IndexError(f'Index {i} outside profile of length {len(self)}')
        return i / len(self)

    def get_fraction(self, d: float) -> float:
        return float(self.values[self.wrap(self.index_of_fraction(d))])

    def _limits(self, limits) -> np.ndarray:
        if limits is None:
            return np.ones(len(self), dtype=bool)
        limits = np.asarray(limits, dtype=bool)
        if limits.size != len(self):
            raise ValueError(f'Limits of length {limits.size} do not match profile of length {len(self)}')
        if not limits.any():
            raise NoDetectedIndexError('No index is allowed by the limits')
        return limits

    def index_of_max(self, limits=None) -> int:
        """
        First index of the maximum value among the allowed indexes.

        Args:
            limits (ndarray[bool], optional): Allowed indexes; all by default.

        Raises:
            ValueError: If `limits` has the wrong length.
            NoDetectedIndexError: If no index is allowed.
        """
        limits = self._limits(limits)
        return int(np.argmax(np.where(limits, self.values, -np.inf)))

    def index_of_min(self, limits=None) -> int:
        limits = self._limits(limits)
        return int(np.argmin(np.where(limits, self.values, np.inf)))

    def start_from(self, j: int) -> 'Profile':
        """Rotate the profile so that index `j` becomes index 0."""
        return self._new(np.roll(self.values, -self.wrap(j)))

    def reverse(self) -> 'Profile':
        return self._new(self.values[::-1])

    def smooth(self, window: int) -> 'Profile':
        """
        Running mean over `window` points either side, wrapping around the border.

        Raises:
            ValueError: If `window` is less than 1.
        """
        if window < 1:
            raise ValueError(f'Smoothing window {window} must be at least 1')
        total = np.zeros_like(self.values)
        for k in range(-window, window + 1):
            total += np.roll(self.values, k)
        return self._new(total / (2 * window + 1))

    def interpolate(self, n: int) -> 'Profile':
        """
        Linearly resample the profile to `n` points, wrapping the last point onto the first.

        Raises:
            ValueError: If `n` is below the minimal profile length.
        """
        if n < MIN_PROFILE_LENGTH:
            raise ValueError(f'Cannot interpolate to {n} points')
        if n == len(self):
            return self._new(self.values)
        position = np.arange(n) * (len(self) / n)
        index = np.floor(position).astype(int) % len(self)
        following = (index + 1) % len(self)
        values = self.values[index] + (self.values[following] - self.values[index]) * (position - np.floor(position))
        return self._new(values)

    def absolute_square_difference(self, other: 'Profile', interpolation_length: int = None) -> float:
        """
        Sum of squared differences between two profiles.

        The shorter profile is interpolated to the length of the longer one
        unless `interpolation_length` is given, in which case both are.

        Args:
            other (Profile): Profile to compare.
            interpolation_length (int, optional): Common length to compare at.

        Returns:
            float: Sum of squared differences.
        """
        if interpolation_length is not None:
            a, b = self.interpolate(interpolation_length), other.interpolate(interpolation_length)
        elif len(self) >= len(other):
            a, b = self, other.interpolate(len(self))
        else:
            a, b = self.interpolate(len(other)), other
        return float(np.sum((a.values - b.values) ** 2))

    def find_best_fit_offset(self, other: 'Profile', min_offset: int = 0, max_offset: int = None) -> int:
        """
        Offset at which this profile best matches another.

        `self.start_from(offset)` has the smallest square difference to `other`
        of all offsets in [min_offset, max_offset). The first offset wins ties.

        Args:
            other (Profile): Target profile, interpolated to this length.
            min_offset (int): First offset tested.
            max_offset (int, optional): End of the tested offsets; profile length by default.

        Returns:
            int: Best offset.
        """
        n = len(self)
        if max_offset is None:
            max_offset = n
        if min_offset >= max_offset:
            raise ValueError(f'Empty offset range [{min_offset}, {max_offset})')
        target = other.interpolate(n).values if len(other) != n else other.values
        offsets = np.arange(min_offset, max_offset)
        idx = (np.arange(n)[None, :] + offsets[:, None]) % n
        scores = np.sum((self.values[idx] - target[None, :]) ** 2, axis=1)
        return int(offsets[np.argmin(scores)])

    def local_minima(self, window: int, threshold: float = None) -> np.ndarray:
        """
        Indexes whose neighbours rise strictly for `window` points in both directions.

        Args:
            window (int): Number of points each side to check.
            threshold (float, optional): Only values below this are minima.

        Returns:
            ndarray[bool]: True at local minima.
        """
        if window < 1:
            raise ValueError(f'Window {window} must be at least 1')
        v = self.values
        result = np.ones(len(self), dtype=bool)
        for k in range(1, window + 1):
            result &= np.roll(v, k) > np.roll(v, k - 1)
            result &= np.roll(v, -k) > np.roll(v, -(k - 1))
        if threshold is not None:
            result &= v < threshold
        return result

    def local_maxima(self, window: int, threshold: float = None) -> np.ndarray:
        if window < 1:
            raise ValueError(f'Window {window} must be at least 1')
        v = self.values
        result = np.ones(len(self), dtype=bool)
        for k in range(1, window + 1):
            result &= np.roll(v, k) < np.roll(v, k - 1)
            result &= np.roll(v, -k) < np.roll(v, -(k - 1))
        if threshold is not None:
            result &= v > threshold
        return result

    def get_window(self, i: int, window: int) -> np.ndarray:
        """Values from i - window to i + window inclusive, wrapping."""
        return self.values[(i + np.arange(-window, window + 1)) % len(self)]

    def get_subregion(self, start: int, end: int) -> 'Profile':
        """
        Inclusive region from `start` to `end`, wrapping past the end of the profile when end < start.

        Raises:
            ValueError: If either index is outside the profile.
        """
        n = len(self)
        if start < 0 or start >= n or end < 0 or end >= n:
            raise ValueError(f'Subregion {start}-{end} outside profile of length {n}')
        if start <= end:
            return Profile(self.values[start:end + 1])
        return Profile(np.concatenate((self.values[start:], self.values[:end + 1])))

    def calculate_deltas(self, window: int) -> 'Profile':
        """Difference between the values `window` points after and before each index."""
        return Profile(np.roll(self.values, -window) - np.roll(self.values, window))

    def calculate_derivative(self) -> 'Profile':
        return Profile(self.values - np.roll(self.values, -1))

    def absolute(self) -> 'Profile':
        return Profile(np.abs(self.values))

    def power(self, exponent: float) -> 'Profile':
        return Profile(self.values ** exponent)

    def _operand(self, other):
        if isinstance(other, Profile):
            if len(other) != len(self):
                raise ValueError(f'Profile lengths differ: {len(self)} and {len(other)}')
            return other.values
        return float(other)

    def __add__(self, other):
        return Profile(self.values + self._operand(other))

    def __sub__(self, other):
        return Profile(self.values - self._operand(other))

    def __mul__(self, other):
        return Profile(self.values * self._operand(other))

    def __truediv__(self, other):
        return Profile(self.values / self._operand(other))


class ProfileAggregate:
    """
    Collects profiles of many nuclei at a common length and computes quartile profiles.

    Attributes:
        length (int): Common length of the aggregated profiles.
        rows (list[ndarray]): Interpolated profile values, one row per nucleus.
    """

    def __init__(self, length: int):
        if length < MIN_PROFILE_LENGTH:
            raise ProfileError(f'Cannot aggregate profiles at length {length}')
        self.length: int = length
        self.rows: list[np.ndarray] = []

    def __len__(self):
        return len(self.rows)

    def add_profile(self, profile: Profile):
        self.rows.append(profile.interpolate(self.length).values)

    def quartile(self, q: float) -> Profile:
        """
        Per-index percentile of the aggregated profiles.

        Missing values are filled from the following index, or failing that
        from the preceding index.

        Args:
            q (float): Percentile in [0, 100].

        Returns:
            Profile: Percentile profile.

        Raises:
            ProfileError: If no profiles were added or too many values are missing.
        """
        if len(self.rows) == 0:
            raise ProfileError('No profiles in aggregate')
        values = np.percentile(np.vstack(self.rows), q, axis=0)

        missing = np.where(np.isnan(values))[0]
        if missing.size > self.length / 4:
            raise ProfileError(f'{missing.size} of {self.length} quartile values are missing')
        for i in missing:
            following = values[(i + 1) % self.length]
            preceding = values[i - 1]
            if not np.isnan(following):
                values[i] = following
            elif not np.isnan(preceding):
                values[i] = preceding
            else:
                raise ProfileError(f'Cannot repair missing quartile value at index {i}')
        return Profile(values)

    def median(self) -> Profile:
        return self.quartile(MEDIAN)
