"""
Tests for nucleus and signal detection in synthetic images.
"""

import numpy as np
import pytest
from skimage.draw import disk

from border_profile import ProfileType
from measurement import Measurement
from nucleus_finder import (NucleusFinder, flatten_img, kuwahara_filter, normalise_img, threshold_mask,
                            watershed_labels)
from options import NucleusDetectionOptions, SignalDetectionOptions
from signal_finder import SignalFinder


def nucleus_options(**kwargs):
    return NucleusDetectionOptions(channel=0, threshold=50, **kwargs)


class TestImageFilters:
    """Test preprocessing filters."""

    def test_normalise(self):
        im = normalise_img(np.array([[2, 4], [6, 10]]))
        assert im.min() == 0 and im.max() == 1
        assert np.all(normalise_img(np.full((3, 3), 5)) == 0)

    def test_kuwahara_constant(self):
        image = np.full((20, 20), 7.0)
        assert np.allclose(kuwahara_filter(image, 2), 7.0)

    def test_kuwahara_keeps_edges(self):
        image = np.zeros((20, 20))
        image[:, 10:] = 10
        out = kuwahara_filter(image, 2)
        assert out.shape == image.shape
        assert set(np.unique(out)) <= {0.0, 10.0}

    def test_flatten(self):
        assert np.array_equal(flatten_img(np.array([1, 50, 200]), 100), [1, 50, 100])

    def test_threshold_fills_holes(self):
        image = np.zeros((20, 20))
        image[5:15, 5:15] = 100
        image[9:11, 9:11] = 0
        mask = threshold_mask(image, 50)
        assert mask[10, 10]
        assert mask.sum() == 100

    def test_watershed_splits_touching_discs(self):
        mask = np.zeros((200, 200), dtype=bool)
        for centre in ((100, 80), (100, 115)):
            rr, cc = disk(centre, 20, shape=mask.shape)
            mask[rr, cc] = True
        labels = watershed_labels(mask, 10)
        assert labels.max() == 2
        assert labels[100, 80] != labels[100, 115]


class TestNucleusFinder:
    """Test nucleus detection."""

    def test_find_discs(self, disc_image, round_rsc):
        finder = NucleusFinder(nucleus_options(), round_rsc, 0.05)
        nuclei = finder.find_in_image(disc_image, 'discs.png')
        assert len(nuclei) == 2
        assert [n.nucleus_number for n in nuclei] == [0, 1]
        for n, centre in zip(nuclei, ((60, 60), (140, 140))):
            assert n.get_measurement(Measurement.AREA) == pytest.approx(np.pi * 400, rel=0.1)
            assert np.allclose(n.com, centre, atol=1)
            assert n.source_file == 'discs.png'
            assert n.has_landmark(round_rsc.reference_point)
        assert finder.labels.max() == 2

    def test_edge_and_size_filters(self, disc_image, round_rsc):
        image = disc_image.copy()
        rr, cc = disk((100, 5), 20, shape=image.shape)
        image[rr, cc] = 200
        rr, cc = disk((30, 150), 5, shape=image.shape)
        image[rr, cc] = 200
        nuclei = NucleusFinder(nucleus_options(), round_rsc, 0.05).find_in_image(image)
        assert len(nuclei) == 2

    def test_circularity_filter(self, disc_image, round_rsc):
        finder = NucleusFinder(nucleus_options(max_circ=0.5), round_rsc, 0.05)
        assert finder.find_in_image(disc_image) == []

    def test_edge_filter(self, disc_image, round_rsc):
        finder = NucleusFinder(nucleus_options(use_edge_filter=True), round_rsc, 0.05)
        assert len(finder.find_in_image(disc_image)) == 2
        round_rsc.edge_filter.max_value = 100
        assert finder.find_in_image(disc_image) == []

    def test_edge_filter_delta(self, disc_image, circle_nucleus, round_rsc):
        finder = NucleusFinder(nucleus_options(use_edge_filter=True), round_rsc, 0.05)
        round_rsc.edge_filter.max_value, round_rsc.edge_filter.min_value = 360, 0
        delta = circle_nucleus.profiles[ProfileType.ANGLE].calculate_derivative().absolute().max()
        round_rsc.edge_filter.delta_max = delta
        assert finder.passes_edge_filter(circle_nucleus)
        round_rsc.edge_filter.delta_max = delta - 1e-9
        assert not finder.passes_edge_filter(circle_nucleus)
        round_rsc.edge_filter.delta_max = -1
        assert finder.find_in_image(disc_image) == []

    def test_preprocessing(self, disc_image, round_rsc):
        options = nucleus_options(use_kuwahara=True, use_flattening=True, use_gap_closing=True)
        assert len(NucleusFinder(options, round_rsc, 0.05).find_in_image(disc_image)) == 2

    def test_canny(self, disc_image, round_rsc):
        options = nucleus_options(use_canny=True, closing_radius=2)
        assert len(NucleusFinder(options, round_rsc, 0.05).find_in_image(disc_image)) == 2

    def test_invalid_options(self):
        with pytest.raises(ValueError):
            NucleusDetectionOptions(min_size=100, max_size=50)
        with pytest.raises(ValueError):
            NucleusDetectionOptions(scale=0)
        with pytest.raises(ValueError):
            SignalDetectionOptions(method='mean')


class TestSignalFinder:
    """Test signal detection within nuclei."""

    @pytest.fixture
    def nucleus(self, disc_image, round_rsc):
        return NucleusFinder(nucleus_options(), round_rsc, 0.05).find_in_image(disc_image, 'discs.png')[0]

    @pytest.fixture
    def signal_image(self):
        image = np.zeros((200, 200), dtype=np.uint8)
        rr, cc = disk((60, 65), 3, shape=image.shape)
        image[rr, cc] = 200
        rr, cc = disk((43, 43), 2, shape=image.shape)
        image[rr, cc] = 200
        return image

    def test_signal_inside_nucleus(self, nucleus, signal_image):
        signals = SignalFinder(SignalDetectionOptions(threshold=100)).find_in_nucleus(signal_image, nucleus)
        assert len(signals) == 1
        assert np.allclose(signals[0].com, [65, 60], atol=0.5)

    def test_otsu(self, nucleus, signal_image):
        signals = SignalFinder(SignalDetectionOptions(method='otsu')).find_in_nucleus(signal_image, nucleus)
        assert len(signals) == 1

    def test_size_limits(self, nucleus, signal_image):
        options = SignalDetectionOptions(threshold=100, min_size=50)
        assert SignalFinder(options).find_in_nucleus(signal_image, nucleus) == []
        options = SignalDetectionOptions(threshold=100, max_fraction=0.01)
        assert SignalFinder(options).find_in_nucleus(signal_image, nucleus) == []

    def test_assign_signals(self, nucleus, signal_image):
        options = SignalDetectionOptions(threshold=100, group_name='red')
        SignalFinder(options).assign_signals(signal_image, [nucleus], 'red.png')
        assert nucleus.signals.number_of_signals(options.group_id) == 1
        assert nucleus.signals.get_source_file(options.group_id) == 'red.png'
        s = nucleus.signals.get_signals(options.group_id)[0]
        assert s.get_measurement(Measurement.DISTANCE_FROM_COM) == pytest.approx(5, abs=1)
        assert 0 < s.get_measurement(Measurement.FRACT_DISTANCE_FROM_COM) < 0.5
        assert 0 <= s.get_measurement(Measurement.ANGLE) < 360
        assert nucleus.get_measurement(Measurement.NUCLEUS_SIGNAL_COUNT) == 1

    def test_find_in_image(self, disc_image, round_rsc, signal_image):
        nuclei = NucleusFinder(nucleus_options(), round_rsc, 0.05).find_in_image(disc_image)
        found = SignalFinder(SignalDetectionOptions(threshold=100)).find_in_image(signal_image, nuclei)
        assert {k: len(v) for k, v in found.items()} == {0: 1, 1: 0}
