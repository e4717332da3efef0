"""
index_finder.py

Module applying landmark rules to profiles. Each rule narrows a boolean
array of candidate indexes; the first index left at the end of a rule set
is the landmark.

Functions:
    apply_rule(profile, rule, limits): Apply one rule to candidate indexes.
    matching_indexes(profile, rule_set): Indexes satisfying a rule set.
    identify_index(profile, rule_set): First index satisfying a rule set.
    identify_index_in_component(component, rule_sets): Border index of a landmark in one nucleus.
    find_index_in_collection(collection, landmark): Index of a landmark in the median profiles.
    identify_index_in_collection(collection, landmark): Median index with a longest diameter fallback.
    assign_landmarks(component, rsc): Detect and set every landmark of a nucleus.
    should_reverse_profile(component): Whether the border runs the wrong way round.
"""

import logging
import math

import numpy as np

from border_profile import Profile, ProfileType
from constants import MEDIAN
from exceptions import NoDetectedIndexError
from rules import Landmark, OrientationMark, Rule, RuleSet, RuleType, RuleSetCollection

logger = logging.getLogger(__name__)


def _extreme(profile: Profile, include: bool, limits: np.ndarray, maximum: bool) -> np.ndarray:
    result = np.full(len(profile), not include)
    i = profile.index_of_max(limits) if maximum else profile.index_of_min(limits)
    result[i] = include
    return result


def _constant_region(profile: Profile, value: float, window: int, epsilon: float) -> np.ndarray:
    within = np.abs(profile.values - value) < epsilon
    result = np.zeros(len(profile), dtype=bool)
    count, start = 0, 0
    for i in range(len(profile)):
        if within[i]:
            if count == 0:
                start = i
            count += 1
            continue
        if count >= window:
            result[start:i + 1] = True
            return result
        count = 0
    if count >= window:
        result[start:] = True
    return result


def _first_true(limits: np.ndarray, keep: bool, last: bool) -> np.ndarray:
    trues = np.where(limits)[0]
    if trues.size == 0:
        return limits.copy()
    i = trues[-1] if last else trues[0]
    if keep:
        result = np.zeros_like(limits)
        result[i] = True
    else:
        result = limits.copy()
        result[i] = False
    return result


def _within_fraction(limits: np.ndarray, fraction: float) -> np.ndarray:
    n = limits.size
    r = int(round(n * fraction))
    result = np.zeros(n, dtype=bool)
    trues = np.where(limits)[0]
    if trues.size == 0 or r == 0:
        return result
    result[(trues[:, None] + np.arange(-r, r)[None, :]) % n] = True
    return result


def apply_rule(profile: Profile, rule: Rule, limits: np.ndarray) -> np.ndarray:
    """
    Apply a rule to a profile.

    Args:
        profile (Profile): Profile the rule is tested on.
        rule (Rule): Rule to apply.
        limits (ndarray[bool]): Candidate indexes left by previous rules.

    Returns:
        ndarray[bool]: Candidate indexes after this rule.
    """
    n = len(profile)
    idx = np.arange(n)
    t = rule.type

    if t == RuleType.IS_ZERO_INDEX:
        result = np.zeros(n, dtype=bool)
        result[0] = True
        return result
    if t in (RuleType.IS_LOCAL_MINIMUM, RuleType.IS_LOCAL_MAXIMUM):
        window = int(rule.value(1))
        extrema = profile.local_minima(window) if t == RuleType.IS_LOCAL_MINIMUM else profile.local_maxima(window)
        result = extrema & limits
        return result if rule.flag(0) else ~result
    if t == RuleType.IS_MINIMUM:
        return _extreme(profile, rule.flag(0), limits, maximum=False)
    if t == RuleType.IS_MAXIMUM:
        return _extreme(profile, rule.flag(0), limits, maximum=True)
    if t == RuleType.INDEX_IS_LESS_THAN:
        return (idx < math.ceil(n * rule.value(0))) & limits
    if t == RuleType.INDEX_IS_MORE_THAN:
        return (idx >= math.floor(n * rule.value(0))) & limits
    if t == RuleType.VALUE_IS_LESS_THAN:
        return (profile.values < rule.value(0)) & limits
    if t == RuleType.VALUE_IS_MORE_THAN:
        return (profile.values > rule.value(0)) & limits
    if t == RuleType.IS_CONSTANT_REGION:
        return _constant_region(profile, rule.value(0), int(rule.value(1)), rule.value(2)) & limits
    if t == RuleType.FIRST_TRUE:
        return _first_true(limits, rule.flag(0), last=False)
    if t == RuleType.LAST_TRUE:
        return _first_true(limits, rule.flag(0), last=True)
    if t == RuleType.INDEX_IS_WITHIN_FRACTION_OF:
        return _within_fraction(limits, rule.value(0))
    if t == RuleType.INDEX_IS_OUTSIDE_FRACTION_OF:
        return ~_within_fraction(limits, rule.value(0))
    if t == RuleType.INVERT:
        return ~limits
    raise ValueError(f'Unknown rule type {t}')


def matching_indexes(profile: Profile, rule_set: RuleSet) -> np.ndarray:
    limits = np.ones(len(profile), dtype=bool)
    for rule in rule_set.rules:
        limits = apply_rule(profile, rule, limits)
    return limits


def _first_index(matches: np.ndarray) -> int:
    trues = np.where(matches)[0]
    if trues.size == 0:
        raise NoDetectedIndexError('No index matches the rules')
    return int(trues[0])


def identify_index(profile: Profile, rule_set: RuleSet) -> int:
    """
    First profile index satisfying a rule set.

    Raises:
        NoDetectedIndexError: If no index satisfies the rules.
    """
    return _first_index(matching_indexes(profile, rule_set))


def _combined_matches(get_profile, rule_sets: list[RuleSet]) -> np.ndarray:
    if len(rule_sets) == 0:
        raise NoDetectedIndexError('No rules to apply')
    result = None
    for rule_set in rule_sets:
        matches = matching_indexes(get_profile(rule_set.profile_type), rule_set)
        result = matches if result is None else result & matches
    return result


def identify_index_in_component(component, rule_sets: list[RuleSet]) -> int:
    """
    Border index of the first point satisfying all rule sets in one nucleus.

    Profiles are read from the reference point when it is set, otherwise
    from border index 0.

    Args:
        component (ProfileableComponent): Nucleus to search.
        rule_sets (list[RuleSet]): Rule sets that must all match.

    Returns:
        int: Border index.

    Raises:
        NoDetectedIndexError: If no index satisfies all rule sets.
    """
    start = 0
    if component.has_landmark(OrientationMark.REFERENCE):
        start = component.get_border_index(OrientationMark.REFERENCE)
    matches = _combined_matches(lambda t: component.profiles[t].start_from(start), rule_sets)
    return component.wrap_index(_first_index(matches) + start)


def find_index_in_collection(collection, landmark: Landmark) -> int:
    """
    Index of a landmark in the median profiles of a collection, relative to the reference point.

    Args:
        collection (CellCollection): Collection with calculated profiles.
        landmark (Landmark): Landmark to find.

    Returns:
        int: Index in the median profile started at the reference point.

    Raises:
        NoDetectedIndexError: If the landmark rules match nothing.
    """
    pc = collection.profile_collection
    rp = collection.rule_set_collection.reference_point
    matches = _combined_matches(lambda t: pc.get_profile(t, rp, MEDIAN),
                                collection.rule_set_collection.get_rule_sets(landmark))
    return _first_index(matches)


def identify_index_in_collection(collection, landmark: Landmark) -> int:
    """
    Index of a landmark in the median profiles of a collection, falling back to the longest diameter.
    """
    try:
        return find_index_in_collection(collection, landmark)
    except NoDetectedIndexError:
        logger.warning(f'No index found for {landmark} in {collection.name} median, using longest diameter')
        pc = collection.profile_collection
        return identify_index(pc.get_profile(ProfileType.DIAMETER, collection.rule_set_collection.reference_point,
                                             MEDIAN), RuleSet.round_rp())


def assign_landmarks(component, rsc: RuleSetCollection):
    """
    Detect every landmark of a nucleus, the reference point first.

    A landmark that cannot be detected is logged and set to border index 0.
    """
    rp = rsc.reference_point
    for landmark in [rp] + [lm for lm in rsc.landmarks if lm != rp]:
        try:
            i = identify_index_in_component(component, rsc.get_rule_sets(landmark))
        except NoDetectedIndexError:
            logger.info(f'{landmark} not found in {component}, using index 0')
            i = 0
        component.set_landmark(landmark, i)


def should_reverse_profile(component) -> bool:
    """
    Whether the angle profile from the reference point is heavier in its second half.
    """
    values = component.get_profile(ProfileType.ANGLE, OrientationMark.REFERENCE).values
    mid = len(values) >> 1
    front = float(np.sum(values[:mid]))
    rear = float(np.sum(values[mid + 1:]))
    return front < rear
