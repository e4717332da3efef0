"""
exceptions.py

Exceptions raised by the nuclear morphology analysis.

Classes:
    NuclearMorphologyError: Base exception for all analysis failures.
    ProfileError: A profile could not be built or modified.
    NoDetectedIndexError: A rule set matched no profile index.
    SegmentUpdateError: A segment boundary change was rejected.
    MissingLandmarkError: A landmark is not set on a component.
    MissingMeasurementError: A measurement is not available.
    ComponentCreationError: A nucleus or signal could not be built from a border.
    AnalysisMethodError: A dataset-level analysis could not run.
"""


class NuclearMorphologyError(Exception):
    """Base exception for nuclear morphology analysis."""

    pass


class ProfileError(NuclearMorphologyError):
    """Exception raised when a profile cannot be created or modified."""

    pass


class NoDetectedIndexError(ProfileError):
    """Exception raised when no profile index satisfies a rule set."""

    pass


class SegmentUpdateError(ProfileError):
    """Exception raised when a segment update would break the segment chain."""

    pass


class MissingLandmarkError(NuclearMorphologyError):
    """Exception raised when a required landmark is not set."""

    pass


class MissingMeasurementError(NuclearMorphologyError):
    """Exception raised when a measurement cannot be provided."""

    pass


class ComponentCreationError(NuclearMorphologyError):
    """Exception raised when a component cannot be built."""

    pass


class AnalysisMethodError(NuclearMorphologyError):
    """Exception raised when a dataset analysis method fails."""

    pass
