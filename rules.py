"""
rules.py

Module describing landmarks on nucleus borders and the rules used to find them.

A landmark is a named border point such as the tip of a sperm hook. Each
landmark is located by one or more rule sets; each rule set applies a list of
rules to one kind of profile. A RuleSetCollection groups the landmarks of a
nucleus type with the orientation marks used to rotate nuclei consistently.

Classes:
    OrientationMark: Orientation roles a landmark can take.
    Landmark: Named border point.
    PriorityAxis: Axis aligned first when orienting nuclei.
    RuleApplicationType: Whether landmarks are found in the median or per nucleus.
    RuleType: Kinds of rule.
    Rule: A rule type with its parameters.
    RuleSet: Rules applied in sequence to one profile type.
    EdgeFilterOptions: Profile limits of a valid nucleus border.
    RuleSetCollection: Landmarks, rule sets and orientation of a nucleus type.

Functions:
    mouse_sperm_rule_set_collection(): Rodent sperm nuclei.
    pig_sperm_rule_set_collection(): Pig sperm nuclei.
    round_rule_set_collection(): Round nuclei.
    get_rule_set_collection(name): Preset by name.
"""

from dataclasses import dataclass, field
from enum import Enum

from constants import EDGE_FILTER_DELTA_MAX, EDGE_FILTER_MAX, EDGE_FILTER_MIN
from border_profile import ProfileType
from measurement import ROUND_STATS, RODENT_SPERM_STATS


class OrientationMark(Enum):
    REFERENCE = 'Reference point'
    LEFT = 'Left'
    RIGHT = 'Right'
    TOP = 'Top'
    BOTTOM = 'Bottom'
    X = 'X'
    Y = 'Y'

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class Landmark:
    """Named point on a nucleus border."""
    name: str

    def __str__(self):
        return self.name


class PriorityAxis(Enum):
    X = 'X'
    Y = 'Y'


class RuleApplicationType(Enum):
    VIA_MEDIAN = 'Via median'
    PER_NUCLEUS = 'Per nucleus'


class RuleType(Enum):
    IS_ZERO_INDEX = 'Is zero index'
    IS_LOCAL_MINIMUM = 'Is local minimum'
    IS_LOCAL_MAXIMUM = 'Is local maximum'
    IS_MINIMUM = 'Is minimum'
    IS_MAXIMUM = 'Is maximum'
    INDEX_IS_LESS_THAN = 'Index is less than'
    INDEX_IS_MORE_THAN = 'Index is more than'
    VALUE_IS_LESS_THAN = 'Value is less than'
    VALUE_IS_MORE_THAN = 'Value is more than'
    IS_CONSTANT_REGION = 'Is constant region'
    FIRST_TRUE = 'First true'
    LAST_TRUE = 'Last true'
    INDEX_IS_WITHIN_FRACTION_OF = 'Index is within fraction of'
    INDEX_IS_OUTSIDE_FRACTION_OF = 'Index is outside fraction of'
    INVERT = 'Invert'


@dataclass(frozen=True)
class Rule:
    """
    A rule type with its parameters.

    Attributes:
        type (RuleType): Kind of rule.
        values (tuple): Parameters. Boolean flags are stored as 1.0 or 0.0.
    """
    type: RuleType
    values: tuple = ()

    def value(self, i: int = 0) -> float:
        return self.values[i]

    def flag(self, i: int = 0) -> bool:
        return bool(self.values[i])

    def __str__(self):
        return f'{self.type.value}: {", ".join(str(v) for v in self.values)}'


@dataclass(frozen=True)
class RuleSet:
    """
    Rules applied in order to one profile type.

    Attributes:
        profile_type (ProfileType): Profile the rules are applied to.
        rules (tuple[Rule]): Rules in application order.
    """
    profile_type: ProfileType
    rules: tuple = ()

    @staticmethod
    def round_rp() -> 'RuleSet':
        """The longest diameter; used as a fallback reference point."""
        return RuleSet(ProfileType.DIAMETER, (Rule(RuleType.IS_MAXIMUM, (1.0,)),))


@dataclass
class EdgeFilterOptions:
    """
    Limits of a profile along the border of a valid nucleus.

    Attributes:
        profile_type (ProfileType): Profile checked.
        max_value (float): Largest allowed profile value.
        min_value (float): Smallest allowed profile value.
        delta_max (float): Largest allowed change between adjacent border points.
    """
    profile_type: ProfileType = ProfileType.ANGLE
    max_value: float = EDGE_FILTER_MAX
    min_value: float = EDGE_FILTER_MIN
    delta_max: float = EDGE_FILTER_DELTA_MAX


@dataclass
class RuleSetCollection:
    """
    Landmarks, rule sets and orientation of one nucleus type.

    Attributes:
        name (str): Name of the nucleus type.
        orientation (dict[OrientationMark, Landmark]): Landmark filling each orientation role.
        rules (dict[Landmark, list[RuleSet]]): Rule sets locating each landmark.
        priority_axis (PriorityAxis): Axis aligned first when orienting.
        application_type (RuleApplicationType): How landmarks are found in a dataset.
        edge_filter (EdgeFilterOptions): Border limits used when filtering detected nuclei.
        measurable_values (list[Measurement]): Statistics measured on nuclei of this type.
    """
    name: str
    orientation: dict = field(default_factory=dict)
    rules: dict = field(default_factory=dict)
    priority_axis: PriorityAxis = PriorityAxis.Y
    application_type: RuleApplicationType = RuleApplicationType.VIA_MEDIAN
    edge_filter: EdgeFilterOptions = field(default_factory=EdgeFilterOptions)
    measurable_values: list = field(default_factory=list)

    @property
    def landmarks(self) -> list[Landmark]:
        return list(self.rules.keys())

    @property
    def reference_point(self) -> Landmark:
        return self.orientation[OrientationMark.REFERENCE]

    @property
    def orientation_marks(self) -> list[OrientationMark]:
        return list(self.orientation.keys())

    def is_mark(self, mark: OrientationMark) -> bool:
        return mark in self.orientation

    def get_landmark(self, mark: OrientationMark) -> Landmark:
        """
        Landmark filling an orientation role, or None when the role is unused.
        """
        return self.orientation.get(mark)

    def get_rule_sets(self, landmark: Landmark) -> list[RuleSet]:
        return self.rules.get(landmark, [])

    def add_landmark(self, landmark: Landmark, rule_sets: list[RuleSet], *marks: OrientationMark):
        self.rules[landmark] = list(rule_sets)
        for mark in marks:
            self.orientation[mark] = landmark

    def __str__(self):
        marks = ', '.join(f'{m}: {lm}' for m, lm in self.orientation.items())
        return f'RuleSetCollection({self.name}, {marks})'


def _rule(rule_type: RuleType, *values) -> Rule:
    return Rule(rule_type, tuple(float(v) for v in values))


def mouse_sperm_rule_set_collection() -> RuleSetCollection:
    """
    Rodent sperm: the reference point is the tip of the hook, found as the sharpest angle.
    """
    rsc = RuleSetCollection('Mouse sperm', measurable_values=list(RODENT_SPERM_STATS))

    rsc.add_landmark(Landmark('Tip of hook'),
                     [RuleSet(ProfileType.ANGLE, (_rule(RuleType.IS_MINIMUM, True),))],
                     OrientationMark.REFERENCE, OrientationMark.LEFT)

    rsc.add_landmark(Landmark('Tail socket'),
                     [RuleSet(ProfileType.ANGLE, (_rule(RuleType.INDEX_IS_MORE_THAN, 0.3),
                                                  _rule(RuleType.INDEX_IS_LESS_THAN, 0.6),
                                                  _rule(RuleType.IS_MINIMUM, True)))],
                     OrientationMark.Y)

    rsc.add_landmark(Landmark('Ventral upper'),
                     [RuleSet(ProfileType.ANGLE, (_rule(RuleType.INDEX_IS_MORE_THAN, 0.05),
                                                  _rule(RuleType.INDEX_IS_LESS_THAN, 0.3),
                                                  _rule(RuleType.IS_MAXIMUM, True)))],
                     OrientationMark.TOP)

    rsc.add_landmark(Landmark('Ventral lower'),
                     [RuleSet(ProfileType.DIAMETER, (_rule(RuleType.INDEX_IS_MORE_THAN, 0.6),
                                                     _rule(RuleType.INDEX_IS_LESS_THAN, 0.95),
                                                     _rule(RuleType.IS_MINIMUM, True)))],
                     OrientationMark.BOTTOM)
    return rsc


def pig_sperm_rule_set_collection() -> RuleSetCollection:
    """
    Pig sperm: the reference point is the tail socket, found as the narrowest diameter.
    """
    rsc = RuleSetCollection('Pig sperm', measurable_values=list(ROUND_STATS))
    rsc.add_landmark(Landmark('Tail socket'),
                     [RuleSet(ProfileType.DIAMETER, (_rule(RuleType.IS_MINIMUM, True),))],
                     OrientationMark.REFERENCE, OrientationMark.Y)
    return rsc


def round_rule_set_collection() -> RuleSetCollection:
    """
    Round nuclei: the reference point is one end of the longest axis.
    """
    rsc = RuleSetCollection('Round', measurable_values=list(ROUND_STATS))
    rsc.add_landmark(Landmark('Longest axis'), [RuleSet.round_rp()],
                     OrientationMark.REFERENCE, OrientationMark.BOTTOM, OrientationMark.Y)
    return rsc


PRESETS = {
    'mouse': mouse_sperm_rule_set_collection,
    'pig': pig_sperm_rule_set_collection,
    'round': round_rule_set_collection,
}


def get_rule_set_collection(name: str) -> RuleSetCollection:
    """
    Build a preset rule set collection.

    Args:
        name (str): One of 'mouse', 'pig' or 'round'.

    Raises:
        ValueError: If the preset is unknown.
    """
    if name not in PRESETS:
        raise ValueError(f'Unknown nucleus type {name}, expected one of {", ".join(PRESETS)}')
    return PRESETS[name]()
