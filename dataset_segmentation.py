"""
dataset_segmentation.py

Module segmenting the median angle profile of a dataset and fitting the
median segments onto every nucleus.

Classes:
    SegmentationMode: Where the median segments come from.
    DatasetSegmenter: Runs segmentation on a CellCollection.
"""

import logging
from enum import Enum

from border_profile import ProfileType
from cell_collection import CellCollection
from constants import MEDIAN
from dataset_validation import validate
from exceptions import AnalysisMethodError, SegmentUpdateError
from profile_segments import ProfileSegmenter, SegmentFitter, scale_segments
from rules import OrientationMark

logger = logging.getLogger(__name__)


class SegmentationMode(Enum):
    SEGMENT_FROM_SCRATCH = 'Segment from scratch'
    APPLY_MEDIAN_TO_NUCLEI = 'Apply median to nuclei'
    COPY_FROM_OTHER_COLLECTION = 'Copy from other collection'


class DatasetSegmenter:
    """
    Segments a collection.

    Attributes:
        collection (CellCollection): Dataset to segment.
        mode (SegmentationMode): Where the median segments come from.
        source (CellCollection): Collection to copy segments from in copy mode.
    """

    def __init__(self, collection: CellCollection, mode: SegmentationMode = SegmentationMode.SEGMENT_FROM_SCRATCH,
                 source: CellCollection = None):
        self.collection: CellCollection = collection
        self.mode: SegmentationMode = mode
        self.source: CellCollection = source

    def run(self):
        """
        Segment the collection and check the result.

        Raises:
            AnalysisMethodError: If segments cannot be found or fitted, or the fitted dataset is inconsistent.
        """
        if len(self.collection) == 0:
            raise AnalysisMethodError(f'No nuclei to segment in {self.collection.name}')
        if not self.collection.profile_collection.has_profiles():
            self.collection.profile_collection.calculate_profiles(self.collection.nuclei)

        if self.mode == SegmentationMode.SEGMENT_FROM_SCRATCH:
            self._segment_median()
        elif self.mode == SegmentationMode.COPY_FROM_OTHER_COLLECTION:
            self._copy_from_source()
        self._assign_to_nuclei()
        self.collection.calculate_measurements()
        validate(self.collection)

    def _segment_median(self):
        pc = self.collection.profile_collection
        self.collection.consensus = None
        median = pc.get_profile(ProfileType.ANGLE, OrientationMark.REFERENCE, MEDIAN)
        segments = ProfileSegmenter(median).segment()
        logger.info(f'Median of {self.collection.name} has {len(segments)} segments')
        pc.set_segments(segments)

    def _copy_from_source(self):
        if self.source is None:
            raise AnalysisMethodError('No collection to copy segments from')
        source_pc = self.source.profile_collection
        if source_pc.segments is None:
            raise AnalysisMethodError(f'{self.source.name} has no segments to copy')
        pc = self.collection.profile_collection
        rp = self.collection.rule_set_collection.reference_point
        for landmark, i in source_pc.landmarks.items():
            pc.set_landmark(landmark, int(round(i * pc.length / source_pc.length)) % pc.length)
            if landmark != rp:
                self.collection.fit_landmark(landmark, pc.get_profile(ProfileType.ANGLE, landmark, MEDIAN))
        try:
            pc.set_segments(scale_segments(source_pc.segments, pc.length))
        except SegmentUpdateError as e:
            raise AnalysisMethodError(f'Cannot copy segments from {self.source.name}: {e}') from e

    def _assign_to_nuclei(self):
        pc = self.collection.profile_collection
        if pc.segments is None:
            raise AnalysisMethodError(f'No median segments in {self.collection.name}')
        template = pc.get_segmented_profile(ProfileType.ANGLE, OrientationMark.REFERENCE, MEDIAN)
        if template.segment_count() == 1 and template.segments[0].start != 0:
            raise AnalysisMethodError('A single median segment must start at the reference point')

        fitter = SegmentFitter(template)
        for n in self.collection.nuclei:
            if n.locked:
                continue
            try:
                fitted = fitter.fit(n.get_profile(ProfileType.ANGLE, OrientationMark.REFERENCE))
            except SegmentUpdateError as e:
                raise AnalysisMethodError(f'Cannot fit segments to {n}: {e}') from e
            if fitted.segment_count() != template.segment_count():
                raise AnalysisMethodError(f'Segment count of {n} does not match the median')
            n.set_segments(fitted.segments, OrientationMark.REFERENCE)
            n.clear_measurements()

        consensus = self.collection.consensus
        if consensus is not None:
            consensus.set_segments(scale_segments(template.segments, len(consensus)), OrientationMark.REFERENCE)
