"""
Tests for profile segments, segmented profiles, the segmenter and the segment fitter.
"""

import numpy as np
import pytest

from border_profile import Profile
from constants import MIN_SEGMENT_LENGTH
from exceptions import SegmentUpdateError
from profile_segments import (ProfileSegment, ProfileSegmenter, SegmentedProfile, SegmentFitter, link_segments,
                              scale_segments)


def three_segments(n=60):
    return link_segments([ProfileSegment(0, 20, n), ProfileSegment(20, 40, n), ProfileSegment(40, 0, n)])


def dipped_profile(centres, n=200):
    """Angle-like profile at 180 with gaussian dips to 90."""
    i = np.arange(n)
    values = np.full(n, 180.0)
    for c in centres:
        values -= 90 * np.exp(-((i - c) ** 2) / (2 * 5.0 ** 2))
    return Profile(values)


class TestProfileSegment:
    """Test single segments and segment chains."""

    def test_length(self):
        assert ProfileSegment(2, 5, 10).length == 4
        wrapping = ProfileSegment(8, 2, 10)
        assert wrapping.wraps()
        assert wrapping.length == 5
        assert wrapping.contains(9) and wrapping.contains(1)
        assert not wrapping.contains(5)
        assert ProfileSegment(0, 0, 10).length == 11

    def test_offset_keeps_id(self):
        s = ProfileSegment(2, 5, 10)
        moved = s.offset(-4)
        assert (moved.start, moved.end) == (8, 1)
        assert moved.id == s.id

    def test_outside_profile(self):
        with pytest.raises(ValueError):
            ProfileSegment(0, 10, 10)

    def test_link(self):
        segments = three_segments()
        assert segments[0].next_segment is segments[1]
        assert segments[0].prev_segment is segments[2]
        with pytest.raises(SegmentUpdateError):
            link_segments([ProfileSegment(0, 20, 60), ProfileSegment(25, 0, 60)])

    def test_scale(self):
        segments = three_segments()
        scaled = scale_segments(segments, 120)
        assert [s.start for s in scaled] == [0, 40, 80]
        assert [s.id for s in scaled] == [s.id for s in segments]
        assert scaled[-1].end == 0
        with pytest.raises(SegmentUpdateError):
            scale_segments(segments, 2)


class TestSegmentedProfile:
    """Test segment access and updates on a profile."""

    def test_default_segment(self):
        sp = SegmentedProfile(np.arange(60))
        assert sp.segment_count() == 1
        assert not sp.has_segments()
        assert len(sp.get_segment_subregion(sp.segments[0])) == 60

    def test_get_segments(self):
        segments = three_segments()
        sp = SegmentedProfile(np.arange(60), segments)
        assert sp.segment_ids == [s.id for s in segments]
        assert sp.get_segment_containing(30).id == segments[1].id
        assert np.array_equal(sp.get_segment_subregion(segments[1]).values, np.arange(20, 41))
        with pytest.raises(KeyError):
            sp.get_segment(ProfileSegment(0, 0, 60).id)
        with pytest.raises(ValueError):
            SegmentedProfile(np.arange(50), segments)

    def test_update_segment_start(self):
        segments = three_segments()
        sp = SegmentedProfile(np.arange(60), segments)
        sp.update_segment_start(segments[1].id, 25)
        assert sp.get_segment(segments[1].id).start == 25
        assert sp.get_segment(segments[0].id).end == 25
        assert sp.get_segment(segments[0].id).length == 26

    def test_update_too_short(self):
        segments = three_segments()
        sp = SegmentedProfile(np.arange(60), segments)
        with pytest.raises(SegmentUpdateError):
            sp.update_segment_start(segments[1].id, 32)
        with pytest.raises(SegmentUpdateError):
            sp.update_segment_start(segments[1].id, 45)
        assert sp.get_segment(segments[1].id).start == 20

    def test_update_locked(self):
        segments = three_segments()
        segments[1].locked = True
        sp = SegmentedProfile(np.arange(60), segments)
        with pytest.raises(SegmentUpdateError):
            sp.update_segment_start(segments[1].id, 25)

    def test_start_from(self):
        segments = three_segments()
        sp = SegmentedProfile(np.arange(60), segments).start_from(20)
        assert sp[0] == 20
        assert sorted(s.start for s in sp.segments) == [0, 20, 40]
        assert sp.get_segment(segments[1].id).start == 0

    def test_reverse(self):
        segments = three_segments()
        reversed_sp = SegmentedProfile(np.arange(60), segments).reverse()
        assert reversed_sp[0] == 59
        middle = reversed_sp.get_segment(segments[1].id)
        assert (middle.start, middle.end) == (19, 39)
        assert sorted(s.length for s in reversed_sp.segments) == sorted(s.length for s in segments)

    def test_interpolate(self):
        sp = SegmentedProfile(np.arange(60), three_segments()).interpolate(120)
        assert len(sp) == 120
        assert [s.start for s in sp.segments] == [0, 40, 80]


class TestProfileSegmenter:
    """Test segmentation at inflection points."""

    def test_segments_at_dips(self):
        segments = ProfileSegmenter(dipped_profile((50, 120))).segment()
        assert len(segments) == 3
        assert segments[0].start == 0
        assert abs(segments[1].start - 50) <= 2
        assert abs(segments[2].start - 120) <= 2
        assert all(s.length >= MIN_SEGMENT_LENGTH for s in segments)
        assert segments[-1].next_segment is segments[0]

    def test_flat_profile_is_one_segment(self):
        segments = ProfileSegmenter(Profile(np.full(100, 180.0))).segment()
        assert len(segments) == 1
        assert (segments[0].start, segments[0].end) == (0, 0)


class TestSegmentFitter:
    """Test fitting template segments to other profiles."""

    def test_identical_profile_keeps_boundaries(self):
        profile = dipped_profile((50, 120))
        template = SegmentedProfile(profile.values, ProfileSegmenter(profile).segment())
        fitted = SegmentFitter(template).fit(profile)
        assert [s.start for s in fitted.segments] == [s.start for s in template.segments]
        assert fitted.segment_ids == template.segment_ids

    def test_boundaries_follow_features(self):
        profile = dipped_profile((50, 120))
        template = SegmentedProfile(profile.values, ProfileSegmenter(profile).segment())
        fitter = SegmentFitter(template)
        target = dipped_profile((55, 125))
        fitted = fitter.fit(target)

        starts = [s.start for s in fitted.segments]
        assert starts[0] == 0
        assert abs(starts[1] - 55) <= 3
        assert abs(starts[2] - 125) <= 3
        unfitted = SegmentedProfile(target.values, template.segments)
        assert fitter.score(fitted) < fitter.score(unfitted)

    def test_fit_to_other_length(self):
        profile = dipped_profile((50, 120))
        template = SegmentedProfile(profile.values, ProfileSegmenter(profile).segment())
        fitted = SegmentFitter(template).fit(dipped_profile((100, 240), n=400))
        assert len(fitted) == 400
        assert fitted.segment_count() == 3
