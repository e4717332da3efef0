"""
Tests for dataset analyses: profiling, segmentation and consensus building.
"""

import numpy as np
import pytest

from border_profile import ProfileType
from cell_collection import CellCollection
from consensus import ConsensusAverager
import dataset_profiling
from dataset_profiling import DatasetProfiler, update_landmark
from dataset_segmentation import DatasetSegmenter, SegmentationMode
from dataset_validation import landmark_errors, segment_errors, validate
from exceptions import AnalysisMethodError, MissingLandmarkError, NoDetectedIndexError, ProfileError
from measurement import Measurement, MeasurementScale
from profile_segments import ProfileSegment
from rules import OrientationMark, RuleApplicationType


@pytest.fixture
def ellipse_collection(round_rsc, ellipse_nuclei):
    collection = CellCollection('ellipses', round_rsc)
    collection.add_nuclei(ellipse_nuclei)
    return collection


@pytest.fixture
def teardrop_collection(mouse_rsc, teardrop_nuclei):
    collection = CellCollection('teardrops', mouse_rsc)
    collection.add_nuclei(teardrop_nuclei)
    return collection


class TestCellCollection:
    """Test collection access and population measurements."""

    def test_access(self, ellipse_collection):
        c = ellipse_collection
        assert len(c) == 6
        assert len(c.get_nuclei('ellipses.tif')) == 6
        assert c.get_nuclei('other.tif') == []
        assert not c.has_consensus()
        assert c.median_array_length == int(np.median([len(n) for n in c]))

    def test_measurements(self, ellipse_collection):
        areas = ellipse_collection.get_measurements(Measurement.AREA)
        assert areas.shape == (6,)
        assert ellipse_collection.get_median(Measurement.AREA) == pytest.approx(np.median(areas))
        microns = ellipse_collection.get_measurements(Measurement.AREA, MeasurementScale.MICRONS)
        assert np.allclose(microns, areas)

    def test_profiles(self, ellipse_collection):
        pc = ellipse_collection.profile_collection
        pc.calculate_profiles(ellipse_collection.nuclei)
        assert pc.has_profiles()
        assert pc.length == ellipse_collection.median_array_length
        assert len(pc.get_profile(ProfileType.ANGLE)) == pc.length
        assert pc.get_landmark_index(OrientationMark.REFERENCE) == 0
        with pytest.raises(MissingLandmarkError):
            pc.get_landmark_index(OrientationMark.TOP)


class TestDatasetProfiler:
    """Test landmark detection across a dataset."""

    def test_round_via_median(self, ellipse_collection):
        DatasetProfiler(ellipse_collection).run()
        pc = ellipse_collection.profile_collection
        assert pc.get_landmark_index(OrientationMark.REFERENCE) == 0
        for n in ellipse_collection:
            diameters = n.profiles[ProfileType.DIAMETER]
            assert diameters.values[n.get_border_index(OrientationMark.REFERENCE)] >= 0.95 * diameters.max()
            assert n.has_measurement(Measurement.AREA)

    def test_variability(self, ellipse_collection):
        DatasetProfiler(ellipse_collection).run()
        values = ellipse_collection.get_measurements(Measurement.VARIABILITY)
        assert values.shape == (6,)
        assert np.all(values >= 0)

    def test_mouse_via_median(self, teardrop_collection, mouse_rsc):
        DatasetProfiler(teardrop_collection).run()
        pc = teardrop_collection.profile_collection
        assert set(pc.landmarks) == set(mouse_rsc.landmarks)
        for n in teardrop_collection:
            assert all(n.has_landmark(lm) for lm in mouse_rsc.landmarks)
            tip = n.get_landmark_point(OrientationMark.REFERENCE)
            assert tip[0] > np.max(n.border[:, 0]) - 4
            assert abs(tip[1] - 100) < 4

    def test_mouse_per_nucleus(self, teardrop_collection, mouse_rsc):
        mouse_rsc.application_type = RuleApplicationType.PER_NUCLEUS
        DatasetProfiler(teardrop_collection).run()
        pc = teardrop_collection.profile_collection
        assert set(pc.landmarks) == set(mouse_rsc.landmarks)
        for n in teardrop_collection:
            assert all(n.has_landmark(lm) for lm in mouse_rsc.landmarks)

    def test_locked_nucleus_is_kept(self, ellipse_collection):
        n = ellipse_collection.nuclei[0]
        n.set_landmark(OrientationMark.REFERENCE, 3)
        n.locked = True
        DatasetProfiler(ellipse_collection).run()
        assert n.get_border_index(OrientationMark.REFERENCE) == 3

    def test_empty(self, round_rsc):
        with pytest.raises(AnalysisMethodError):
            DatasetProfiler(CellCollection('empty', round_rsc)).run()


    def test_per_nucleus_median_falls_back_to_zero(self, teardrop_collection, mouse_rsc, monkeypatch):
        def not_found(collection, landmark):
            raise NoDetectedIndexError(f'{landmark} not found')

        mouse_rsc.application_type = RuleApplicationType.PER_NUCLEUS
        monkeypatch.setattr(dataset_profiling, 'find_index_in_collection', not_found)
        DatasetProfiler(teardrop_collection).run()
        pc = teardrop_collection.profile_collection
        for lm in mouse_rsc.landmarks:
            assert pc.get_landmark_index(lm) == 0

    def test_profiling_keeps_segments(self, ellipse_collection):
        DatasetProfiler(ellipse_collection).run()
        DatasetSegmenter(ellipse_collection).run()
        ids = [s.id for s in ellipse_collection.profile_collection.segments]
        DatasetProfiler(ellipse_collection).run()
        assert [s.id for s in ellipse_collection.profile_collection.segments] == ids
        for n in ellipse_collection:
            assert [s.id for s in n.get_segments()] == ids
            assert n.get_segments()[0].start == 0

    def test_update_consensus_clears_measurements(self, teardrop_collection, mouse_rsc):
        DatasetProfiler(teardrop_collection).run()
        consensus = ConsensusAverager(teardrop_collection).run()
        consensus.get_measurement(Measurement.AREA)
        assert consensus.has_measurement(Measurement.AREA)
        DatasetProfiler(teardrop_collection).update_consensus()
        assert not consensus.has_measurement(Measurement.AREA)
        assert all(consensus.has_landmark(lm) for lm in mouse_rsc.landmarks)


class TestUpdateLandmark:
    """Test moving landmarks by hand."""

    def test_median_landmark(self, teardrop_collection):
        DatasetProfiler(teardrop_collection).run()
        consensus = ConsensusAverager(teardrop_collection).run()
        consensus.get_measurement(Measurement.AREA)
        pc = teardrop_collection.profile_collection
        i = (pc.get_landmark_index(OrientationMark.TOP) + 5) % pc.length
        update_landmark(teardrop_collection, None, OrientationMark.TOP, i)
        assert pc.get_landmark_index(OrientationMark.TOP) == i
        assert teardrop_collection.consensus is consensus
        assert consensus.has_landmark(OrientationMark.TOP)
        for n in teardrop_collection:
            assert n.has_measurement(Measurement.AREA)

    def test_median_reference_point(self, teardrop_collection):
        DatasetProfiler(teardrop_collection).run()
        ConsensusAverager(teardrop_collection).run()
        pc = teardrop_collection.profile_collection
        top = pc.get_landmark_index(OrientationMark.TOP)
        before = [n.get_border_index(OrientationMark.REFERENCE) for n in teardrop_collection]

        update_landmark(teardrop_collection, None, OrientationMark.REFERENCE, 10)
        assert pc.get_landmark_index(OrientationMark.REFERENCE) == 0
        assert pc.get_landmark_index(OrientationMark.TOP) == (top - 10) % pc.length
        assert not teardrop_collection.has_consensus()
        for n, old in zip(teardrop_collection, before):
            assert 5 <= n.wrap_index(n.get_border_index(OrientationMark.REFERENCE) - old) <= 15

    def test_nucleus_reference_point_refits_segments(self, ellipse_collection):
        DatasetProfiler(ellipse_collection).run()
        DatasetSegmenter(ellipse_collection).run()
        ids = [s.id for s in ellipse_collection.profile_collection.segments]
        n = ellipse_collection.nuclei[1]
        i = n.wrap_index(n.get_border_index(OrientationMark.REFERENCE) + 3)

        update_landmark(ellipse_collection, n, OrientationMark.REFERENCE, i)
        assert n.get_border_index(OrientationMark.REFERENCE) == i
        assert [s.id for s in n.get_segments()] == ids
        assert n.get_segments()[0].start == 0
        assert n.has_measurement(Measurement.AREA)

    def test_out_of_range(self, ellipse_collection):
        DatasetProfiler(ellipse_collection).run()
        pc = ellipse_collection.profile_collection
        with pytest.raises(IndexError):
            update_landmark(ellipse_collection, None, OrientationMark.REFERENCE, pc.length)
        n = ellipse_collection.nuclei[0]
        with pytest.raises(IndexError):
            update_landmark(ellipse_collection, n, OrientationMark.REFERENCE, len(n))

    def test_unfilled_mark(self, ellipse_collection):
        DatasetProfiler(ellipse_collection).run()
        with pytest.raises(MissingLandmarkError):
            update_landmark(ellipse_collection, None, OrientationMark.TOP, 0)


class TestDatasetValidation:
    """Test consistency checks of profiled datasets."""

    def test_profiled_dataset_is_valid(self, teardrop_collection):
        DatasetProfiler(teardrop_collection).run()
        assert landmark_errors(teardrop_collection) == []
        assert segment_errors(teardrop_collection) == []
        validate(teardrop_collection)

    def test_missing_nucleus_landmark(self, ellipse_collection, round_rsc):
        DatasetProfiler(ellipse_collection).run()
        del ellipse_collection.nuclei[2].landmarks[round_rsc.reference_point]
        assert len(landmark_errors(ellipse_collection)) == 1
        with pytest.raises(AnalysisMethodError):
            validate(ellipse_collection)

    def test_median_landmark_out_of_range(self, teardrop_collection, mouse_rsc):
        DatasetProfiler(teardrop_collection).run()
        pc = teardrop_collection.profile_collection
        pc.landmarks[mouse_rsc.get_landmark(OrientationMark.TOP)] = pc.length + 2
        assert len(landmark_errors(teardrop_collection)) == 1

    def test_unmatched_nucleus_segments(self, ellipse_collection):
        DatasetProfiler(ellipse_collection).run()
        DatasetSegmenter(ellipse_collection).run()
        n = ellipse_collection.nuclei[0]
        n.set_segments([ProfileSegment(0, 0, len(n))])
        assert len(segment_errors(ellipse_collection)) == 1
        with pytest.raises(AnalysisMethodError):
            validate(ellipse_collection)
        n.locked = True
        assert segment_errors(ellipse_collection) == []


class TestDatasetSegmenter:
    """Test segmentation of the median and fitting to nuclei."""

    def test_segment_from_scratch(self, ellipse_collection):
        DatasetProfiler(ellipse_collection).run()
        DatasetSegmenter(ellipse_collection).run()
        pc = ellipse_collection.profile_collection
        assert pc.segments is not None
        for n in ellipse_collection:
            segments = n.get_segments()
            assert len(segments) == len(pc.segments)
            assert segments[0].start == 0
            assert [s.id for s in segments] == [s.id for s in pc.segments]
            assert sum(s.length for s in segments) == len(n) + len(segments)

    def test_copy_from_other_collection(self, ellipse_collection, round_rsc, ellipse_nuclei):
        DatasetProfiler(ellipse_collection).run()
        DatasetSegmenter(ellipse_collection).run()

        other = CellCollection('copy', round_rsc)
        other.add_nuclei([n.duplicate() for n in ellipse_nuclei[:3]])
        DatasetProfiler(other).run()
        DatasetSegmenter(other, SegmentationMode.COPY_FROM_OTHER_COLLECTION, ellipse_collection).run()
        assert [s.id for s in other.profile_collection.segments] == \
            [s.id for s in ellipse_collection.profile_collection.segments]

    def test_copy_without_source(self, ellipse_collection):
        DatasetProfiler(ellipse_collection).run()
        with pytest.raises(AnalysisMethodError):
            DatasetSegmenter(ellipse_collection, SegmentationMode.COPY_FROM_OTHER_COLLECTION).run()

    def test_apply_median_without_segments(self, ellipse_collection):
        DatasetProfiler(ellipse_collection).run()
        with pytest.raises(AnalysisMethodError):
            DatasetSegmenter(ellipse_collection, SegmentationMode.APPLY_MEDIAN_TO_NUCLEI).run()


    def test_measured_after_segmenting(self, ellipse_collection):
        DatasetProfiler(ellipse_collection).run()
        DatasetSegmenter(ellipse_collection).run()
        for n in ellipse_collection:
            assert n.has_measurement(Measurement.AREA)

    def test_copy_fits_landmarks_to_nuclei(self, teardrop_collection, mouse_rsc, teardrop_nuclei):
        DatasetProfiler(teardrop_collection).run()
        source_pc = teardrop_collection.profile_collection
        source_pc.set_segments([ProfileSegment(0, 0, source_pc.length)])

        rp = mouse_rsc.reference_point
        other = CellCollection('copy', mouse_rsc)
        other.add_nuclei([n.duplicate() for n in teardrop_nuclei[:3]])
        for n in other:
            n.landmarks = {rp: n.get_border_index(rp)}
        other.profile_collection.calculate_profiles(other.nuclei)

        DatasetSegmenter(other, SegmentationMode.COPY_FROM_OTHER_COLLECTION, teardrop_collection).run()
        assert set(other.profile_collection.landmarks) == set(mouse_rsc.landmarks)
        for n, source in zip(other, teardrop_nuclei):
            assert all(n.has_landmark(lm) for lm in mouse_rsc.landmarks)
            top = n.get_index_relative_to(rp, n.get_border_index(OrientationMark.TOP))
            source_top = source.get_index_relative_to(rp, source.get_border_index(OrientationMark.TOP))
            assert abs(top - source_top) <= 3
            assert n.has_measurement(Measurement.AREA)


class TestConsensus:
    """Test the consensus nucleus."""

    def test_ellipse_consensus(self, ellipse_collection):
        DatasetProfiler(ellipse_collection).run()
        consensus = ConsensusAverager(ellipse_collection).run()
        assert ellipse_collection.has_consensus()
        assert consensus.get_border_index(OrientationMark.REFERENCE) == 0
        assert consensus.get_measurement(Measurement.AREA) == pytest.approx(np.pi * 40 * 20, rel=0.1)
        o = consensus.get_oriented_nucleus()
        assert o.height > o.width

    def test_consensus_scale(self, ellipse_collection):
        DatasetProfiler(ellipse_collection).run()
        consensus = ConsensusAverager(ellipse_collection, scale=2.0).run()
        assert consensus.scale == 2.0
        assert consensus.get_measurement(Measurement.AREA, MeasurementScale.MICRONS) == \
            pytest.approx(np.pi * 40 * 20, rel=0.1)

    def test_segmenting_clears_consensus(self, ellipse_collection):
        DatasetProfiler(ellipse_collection).run()
        ConsensusAverager(ellipse_collection).run()
        DatasetSegmenter(ellipse_collection).run()
        assert not ellipse_collection.has_consensus()

    def test_consensus_gets_median_segments(self, ellipse_collection):
        DatasetProfiler(ellipse_collection).run()
        DatasetSegmenter(ellipse_collection).run()
        consensus = ConsensusAverager(ellipse_collection).run()
        assert len(consensus.get_segments()) == len(ellipse_collection.profile_collection.segments)

    def test_mouse_consensus_landmarks(self, teardrop_collection, mouse_rsc):
        DatasetProfiler(teardrop_collection).run()
        consensus = ConsensusAverager(teardrop_collection).run()
        assert all(consensus.has_landmark(lm) for lm in mouse_rsc.landmarks)

    def test_empty(self, round_rsc):
        with pytest.raises(AnalysisMethodError):
            ConsensusAverager(CellCollection('empty', round_rsc)).run()

    @pytest.mark.parametrize('error', [ProfileError('too short'), ValueError('no points')])
    def test_degenerate_border(self, ellipse_collection, monkeypatch, error):
        def fail(self):
            raise error

        DatasetProfiler(ellipse_collection).run()
        monkeypatch.setattr(ConsensusAverager, 'median_border', fail)
        with pytest.raises(AnalysisMethodError):
            ConsensusAverager(ellipse_collection).run()

    def test_refold(self, teardrop_collection):
        DatasetProfiler(teardrop_collection).run()
        averager = ConsensusAverager(teardrop_collection)
        consensus = averager.run()
        pc = teardrop_collection.profile_collection
        median = pc.get_profile(ProfileType.ANGLE, OrientationMark.REFERENCE)
        length = len(consensus)
        before = consensus.get_profile(ProfileType.ANGLE).absolute_square_difference(median, length)

        after = averager.refold(consensus)
        assert len(consensus) == length
        assert after <= before
        assert consensus.get_profile(ProfileType.ANGLE).absolute_square_difference(median, length) == \
            pytest.approx(after)

    def test_refolded_consensus(self, teardrop_collection, mouse_rsc):
        DatasetProfiler(teardrop_collection).run()
        consensus = ConsensusAverager(teardrop_collection, refold=True).run()
        assert consensus.get_border_index(OrientationMark.REFERENCE) == 0
        assert all(consensus.has_landmark(lm) for lm in mouse_rsc.landmarks)
