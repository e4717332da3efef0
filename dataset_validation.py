"""
dataset_validation.py

Module checking that the landmarks and segments of a dataset agree with each
other after profiling, segmentation or a landmark update.

Functions:
    landmark_errors(collection): Problems with median, nucleus and consensus landmarks.
    segment_errors(collection): Problems with median and nucleus segments.
    validate(collection): Raise when any problem is found.
"""

import logging

from cell_collection import CellCollection
from exceptions import AnalysisMethodError, MissingLandmarkError, SegmentUpdateError
from rules import OrientationMark

logger = logging.getLogger(__name__)


def landmark_errors(collection: CellCollection) -> list[str]:
    """
    Check that every median landmark is set inside the bounds of each profile.

    Returns:
        list[str]: One message per problem found.
    """
    errors = []
    pc = collection.profile_collection
    for landmark, i in pc.landmarks.items():
        if pc.length and not 0 <= i < pc.length:
            errors.append(f'Median {landmark} at {i} outside profile of length {pc.length}')

    components = list(collection.nuclei)
    if collection.has_consensus():
        components.append(collection.consensus)
    for n in components:
        for landmark in pc.landmarks:
            if not n.has_landmark(landmark):
                errors.append(f'{n} lacks {landmark}')
            elif not 0 <= n.get_border_index(landmark) < len(n):
                errors.append(f'{landmark} of {n} outside border of length {len(n)}')
    return errors


def segment_errors(collection: CellCollection) -> list[str]:
    """
    Check that the median segments are linked and start at the reference point,
    and that every unlocked nucleus carries the same segments.

    Returns:
        list[str]: One message per problem found.
    """
    pc = collection.profile_collection
    if pc.segments is None:
        return []
    errors = []
    try:
        median = pc.get_segments(OrientationMark.REFERENCE)
    except SegmentUpdateError as e:
        return [f'Median segments of {collection.name} are not linked: {e}']
    if median[0].start != 0:
        errors.append(f'Median segments of {collection.name} do not start at the reference point')
    ids = [s.id for s in median]

    for n in collection.nuclei:
        # locked nuclei keep their own segments
        if n.locked:
            continue
        try:
            segments = n.get_segments(OrientationMark.REFERENCE)
        except (SegmentUpdateError, MissingLandmarkError) as e:
            errors.append(f'Segments of {n} are unusable: {e}')
            continue
        if [s.id for s in segments] != ids:
            errors.append(f'{n} has {len(segments)} segments that do not match the {len(ids)} median segments')
        elif segments[0].start != 0:
            errors.append(f'Reference point of {n} is not on a segment boundary')
    return errors


def validate(collection: CellCollection):
    """
    Check the consistency of a profiled dataset.

    Raises:
        AnalysisMethodError: Listing every problem found.
    """
    errors = landmark_errors(collection) + segment_errors(collection)
    if errors:
        for e in errors:
            logger.error(e)
        raise AnalysisMethodError(f'{collection.name} failed validation with {len(errors)} errors: {errors[0]}')
    logger.debug(f'{collection.name} validated')
