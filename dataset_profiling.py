"""
dataset_profiling.py

Module locating landmarks consistently across all nuclei of a dataset.

In median mode, landmarks are found once in the population median and each
nucleus is then aligned to the median by best fit of its angle profile. In
per-nucleus mode, landmarks are found independently in each nucleus.

Functions:
    update_landmark(collection, nucleus, landmark, index): Move a landmark and re-profile the dataset.

Classes:
    DatasetProfiler: Runs landmark profiling on a CellCollection.
"""

import logging

from border_profile import ProfileType
from cell_collection import CellCollection
from constants import MAX_COERCION_ATTEMPTS, MEDIAN
from dataset_segmentation import DatasetSegmenter, SegmentationMode
from dataset_validation import validate
from exceptions import AnalysisMethodError, MissingLandmarkError, NoDetectedIndexError, SegmentUpdateError
from index_finder import find_index_in_collection, identify_index_in_collection, identify_index_in_component
from nucleus import Nucleus
from profile_segments import SegmentFitter
from rules import OrientationMark, RuleApplicationType

logger = logging.getLogger(__name__)


class DatasetProfiler:
    """
    Finds landmarks in every nucleus of a collection.

    Attributes:
        collection (CellCollection): Dataset to profile.
    """

    def __init__(self, collection: CellCollection):
        self.collection: CellCollection = collection

    def run(self):
        """
        Profile the collection using the application type of its rule set collection.

        A collection that was already segmented gets its median segments
        fitted again to the moved landmarks.

        Raises:
            AnalysisMethodError: If the collection has no nuclei or is inconsistent after profiling.
        """
        if len(self.collection) == 0:
            raise AnalysisMethodError(f'No nuclei to profile in {self.collection.name}')
        if self.collection.rule_set_collection.application_type == RuleApplicationType.PER_NUCLEUS:
            self._run_per_nucleus()
        else:
            self._run_via_median()
        if self.collection.profile_collection.segments is not None:
            DatasetSegmenter(self.collection, SegmentationMode.APPLY_MEDIAN_TO_NUCLEI).run()
        self.collection.calculate_measurements()
        validate(self.collection)

    def _coerce_reference_point(self):
        pc = self.collection.profile_collection
        rp = self.collection.rule_set_collection.reference_point
        for attempt in range(MAX_COERCION_ATTEMPTS):
            rp_index = identify_index_in_collection(self.collection, rp)
            if rp_index == 0:
                logger.debug(f'Median reference point at zero after {attempt} attempts')
                return
            self.collection.fit_landmark(rp, pc.get_profile(ProfileType.ANGLE, rp, MEDIAN).start_from(rp_index))
            pc.calculate_profiles(self.collection.nuclei)
        logger.warning(f'Could not move the median reference point of {self.collection.name} to zero')

    def _run_via_median(self):
        pc = self.collection.profile_collection
        rsc = self.collection.rule_set_collection
        rp = rsc.reference_point

        pc.calculate_profiles(self.collection.nuclei)
        rp_index = identify_index_in_collection(self.collection, rp)
        self.collection.fit_landmark(rp, pc.get_profile(ProfileType.ANGLE, rp, MEDIAN).start_from(rp_index))
        pc.calculate_profiles(self.collection.nuclei)
        self._coerce_reference_point()

        for landmark in rsc.landmarks:
            if landmark == rp:
                continue
            pc.set_landmark(landmark, identify_index_in_collection(self.collection, landmark))
            self.collection.fit_landmark(landmark, pc.get_profile(ProfileType.ANGLE, landmark, MEDIAN))

        if self.collection.has_consensus():
            self.update_consensus()

    def update_consensus(self):
        """
        Move the consensus landmarks to where its profile best matches each median landmark.
        """
        consensus = self.collection.consensus
        pc = self.collection.profile_collection
        rp = self.collection.rule_set_collection.reference_point
        profile = consensus.get_profile(ProfileType.ANGLE, OrientationMark.REFERENCE)
        for landmark in self.collection.rule_set_collection.landmarks:
            if landmark == rp or not pc.has_landmark(landmark):
                continue
            offset = profile.find_best_fit_offset(pc.get_profile(ProfileType.ANGLE, landmark, MEDIAN))
            consensus.set_landmark(landmark, consensus.wrap_index(consensus.get_border_index(rp) + offset))
        consensus.clear_measurements()

    def _run_per_nucleus(self):
        pc = self.collection.profile_collection
        rsc = self.collection.rule_set_collection
        rp = rsc.reference_point

        pc.calculate_profiles(self.collection.nuclei)
        for landmark in rsc.landmarks:
            if landmark == rp:
                continue
            for n in self.collection.nuclei:
                if n.locked:
                    continue
                try:
                    i = identify_index_in_component(n, rsc.get_rule_sets(landmark))
                except NoDetectedIndexError:
                    logger.info(f'{landmark} not found in {n}, using index 0')
                    i = 0
                n.set_landmark(landmark, i)
                n.clear_measurements()
            try:
                i = find_index_in_collection(self.collection, landmark)
            except NoDetectedIndexError:
                logger.info(f'{landmark} not found in {self.collection.name} median, using index 0')
                i = 0
            pc.set_landmark(landmark, i)


def _refit_segments(collection: CellCollection, n: Nucleus):
    pc = collection.profile_collection
    template = pc.get_segmented_profile(ProfileType.ANGLE, OrientationMark.REFERENCE, MEDIAN)
    try:
        fitted = SegmentFitter(template).fit(n.get_profile(ProfileType.ANGLE, OrientationMark.REFERENCE))
    except SegmentUpdateError as e:
        raise AnalysisMethodError(f'Cannot fit segments to {n}: {e}') from e
    n.set_segments(fitted.segments, OrientationMark.REFERENCE)


def update_landmark(collection: CellCollection, nucleus: Nucleus, landmark, index: int):
    """
    Move a landmark by hand and re-profile the dataset around it.

    With a nucleus, the landmark is moved to a border index of that nucleus;
    its segments are fitted again when the reference point moves. Without a
    nucleus, the landmark is moved to an index of the median profile read
    from the reference point and every unlocked nucleus is fitted to it.
    Moving the median reference point shifts the other median landmarks so
    they keep their positions, segments the dataset again when it was
    segmented, and clears the consensus, which is sampled from the
    reference point.

    Args:
        collection (CellCollection): Profiled dataset.
        nucleus (Nucleus, optional): Nucleus to change, or None for the median.
        landmark (Landmark or OrientationMark): Landmark to move.
        index (int): New index.

    Raises:
        IndexError: If the index is outside the border or median profile.
        MissingLandmarkError: If no landmark fills the given orientation mark.
        AnalysisMethodError: If the dataset is inconsistent afterwards.
    """
    pc = collection.profile_collection
    rp = collection.rule_set_collection.reference_point
    if isinstance(landmark, OrientationMark):
        mark, landmark = landmark, collection.rule_set_collection.get_landmark(landmark)
        if landmark is None:
            raise MissingLandmarkError(f'No landmark fills {mark}')
    moves_rp = landmark == rp
    if not pc.has_profiles():
        pc.calculate_profiles(collection.nuclei)

    if nucleus is not None:
        logger.info(f'Moving {landmark} of {nucleus} to {index}')
        nucleus.set_landmark(landmark, index)
        if moves_rp and pc.segments is not None:
            _refit_segments(collection, nucleus)
        nucleus.clear_measurements()
        nucleus.calculate_signal_measurements()
        pc.calculate_profiles(collection.nuclei)
    elif moves_rp:
        if not 0 <= index < pc.length:
            raise IndexError(f'Landmark index {index} outside profile of length {pc.length}')
        logger.info(f'Moving median reference point of {collection.name} to {index}')
        collection.fit_landmark(rp, pc.get_profile(ProfileType.ANGLE, rp, MEDIAN).start_from(index))
        for lm, i in list(pc.landmarks.items()):
            if lm != rp:
                pc.set_landmark(lm, (i - index) % pc.length)
        pc.calculate_profiles(collection.nuclei)
        collection.consensus = None
        if pc.segments is not None:
            DatasetSegmenter(collection).run()
    else:
        logger.info(f'Moving median {landmark} of {collection.name} to {index}')
        pc.set_landmark(landmark, index)
        collection.fit_landmark(landmark, pc.get_profile(ProfileType.ANGLE, landmark, MEDIAN))
        if collection.has_consensus():
            DatasetProfiler(collection).update_consensus()

    for n in collection.nuclei:
        n.calculate_signal_measurements()
    collection.calculate_measurements()
    validate(collection)
