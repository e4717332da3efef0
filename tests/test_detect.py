"""
Tests for image import, drawing and the complete detection pipeline.
"""

import os

import numpy as np
import pytest
from skimage import io
from skimage.draw import disk

import image_import
from border_profile import ProfileType
from detect import Detect
from drawing import generate_n_colors, get_labels, save_draw_consensus, save_draw_profile
from exceptions import AnalysisMethodError
from image_import import CZI, import_image, is_importable, list_importable, read_czi_scale
from nucleus_finder import NucleusFinder
from options import AnalysisOptions, NucleusDetectionOptions, SignalDetectionOptions


@pytest.fixture
def image_folder(tmp_path, ellipse_image):
    folder = tmp_path / 'ellipses'
    folder.mkdir()
    io.imsave(str(folder / 'nuclei.png'), ellipse_image, check_contrast=False)
    (folder / 'notes.txt').write_text('not an image')
    return folder


def pipeline_options():
    return AnalysisOptions(nucleus_options=NucleusDetectionOptions(channel=0),
                           signal_options=[SignalDetectionOptions(channel=0, threshold=200, group_name='spots')])


CZI_METADATA = (
    '<ImageDocument><Metadata>'
    '<Scaling><Items><Distance Id="X"><Value>2e-07</Value></Distance>'
    '<Distance Id="Y"><Value>2e-07</Value></Distance></Items></Scaling>'
    '<Information><Image><Dimensions><Channels>'
    '<Channel Id="Channel:0" Name="DAPI"/><Channel Id="Channel:1" Name="FITC"/>'
    '</Channels></Dimensions></Image></Information>'
    '</Metadata></ImageDocument>'
)


def fake_czi_file(data):
    class FakeCziFile:
        axes = 'BCZYX0'

        def __init__(self, path):
            self.path = path

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def metadata(self):
            return CZI_METADATA

        def asarray(self):
            return data

    return FakeCziFile


class TestImageImport:
    """Test image file handling."""

    def test_importable(self):
        assert is_importable('a.TIF')
        assert is_importable('b.czi')
        assert not is_importable('c.txt')

    def test_list_importable(self, image_folder):
        assert list_importable(str(image_folder)) == [str(image_folder / 'nuclei.png')]

    def test_import_channels(self, tmp_path):
        rgb = np.zeros((20, 20, 3), dtype=np.uint8)
        rgb[..., 1] = 100
        path = str(tmp_path / 'rgb.png')
        io.imsave(path, rgb, check_contrast=False)
        assert import_image(path, 1).shape == (20, 20)
        assert np.all(import_image(path, 1) == 100)
        with pytest.raises(IndexError):
            import_image(path, 5)
        with pytest.raises(ValueError):
            import_image(str(tmp_path / 'notes.txt'))

    def test_import_czi(self, tmp_path, monkeypatch):
        data = np.zeros((1, 2, 3, 10, 12, 1), dtype=np.uint16)
        data[0, 1, 2, 4, 5, 0] = 300
        data[0, 1, 0, 1, 1, 0] = 100
        monkeypatch.setattr(image_import, 'CziFile', fake_czi_file(data))
        path = str(tmp_path / 'cells.czi')

        image = import_image(path, 1)
        assert image.shape == (10, 12)
        assert image[4, 5] == 300 and image[1, 1] == 100
        assert np.all(import_image(path, 0) == 0)
        with pytest.raises(IndexError):
            import_image(path, 2)

        czi = CZI(path)
        assert czi.f_name == 'cells'
        assert czi.dims == {'C': 2, 'Z': 3, 'Y': 10, 'X': 12}
        assert czi.channel_names == ['DAPI', 'FITC']
        assert read_czi_scale(path) == pytest.approx(5)


class TestDrawingHelpers:
    """Test drawing helpers."""

    def test_colors(self):
        colors = generate_n_colors(5)
        assert len(colors) == 5
        assert all(len(c) == 3 for c in colors)
        assert len(generate_n_colors(0)) == 1

    def test_labels(self, disc_image, round_rsc):
        nuclei = NucleusFinder(NucleusDetectionOptions(channel=0), round_rsc, 0.05).find_in_image(disc_image)
        labels = get_labels(disc_image.shape, nuclei)
        assert labels[60, 60] == 1 and labels[140, 140] == 2
        assert labels[0, 0] == 0


class TestDetect:
    """Test the complete pipeline on a synthetic image."""

    def test_detect_folder(self, image_folder, tmp_path):
        d = Detect(str(image_folder), pipeline_options())
        assert [os.path.basename(f) for f in d.files] == ['nuclei.png']
        d.detect()

        c = d.collection
        assert c.name == 'ellipses'
        assert len(c) == 4
        assert c.has_consensus()
        assert c.profile_collection.segments is not None
        assert sum(n.signals.number_of_signals() for n in c) == 4
        assert c.get_signal_group_ids() == [d.options.signal_options[0].group_id]

        out = tmp_path / 'out'
        out.mkdir()
        d.save_draw(str(out))
        draw = out / 'ellipses' / 'draw'
        for f in ('nuclei_nuclei.png', 'ellipses_consensus.png', 'ellipses_angle_profile.png',
                  'ellipses_diameter_profile.png'):
            assert (draw / f).exists()

    def test_detect_file(self, image_folder):
        d = Detect(str(image_folder / 'nuclei.png'), pipeline_options())
        assert d.collection.name == 'nuclei'
        d.extract_nuclei()
        d.profile()
        assert len(d.collection) == 4

    def test_signal_source_folder(self, image_folder, tmp_path):
        signal_folder = tmp_path / 'signals'
        signal_folder.mkdir()
        image = np.zeros((300, 300), dtype=np.uint8)
        for centre in ((70, 70), (200, 200)):
            rr, cc = disk(centre, 3, shape=image.shape)
            image[rr, cc] = 250
        io.imsave(str(signal_folder / 'nuclei.png'), image, check_contrast=False)

        options = pipeline_options()
        options.signal_options[0].source_folder = str(signal_folder)
        d = Detect(str(image_folder), options)
        d.extract_nuclei()
        d.extract_signals()
        assert sum(n.signals.number_of_signals() for n in d.collection) == 2

    def test_save_draw_profile(self, image_folder, tmp_path):
        d = Detect(str(image_folder / 'nuclei.png'), pipeline_options())
        d.extract_nuclei()
        d.profile()
        for profile_type in ProfileType:
            path = tmp_path / f'{profile_type.name.lower()}.png'
            save_draw_profile(d.collection, profile_type, str(path))
            assert path.exists()

    def test_order(self, image_folder, tmp_path):
        d = Detect(str(image_folder / 'nuclei.png'), pipeline_options())
        with pytest.raises(RuntimeError):
            d.profile()
        with pytest.raises(RuntimeError):
            d.save_draw(str(tmp_path))

    def test_no_nuclei(self, tmp_path):
        path = str(tmp_path / 'empty.png')
        io.imsave(path, np.zeros((50, 50), dtype=np.uint8), check_contrast=False)
        with pytest.raises(AnalysisMethodError):
            Detect(path, pipeline_options()).extract_nuclei()

    def test_invalid_path(self, image_folder):
        with pytest.raises(ValueError):
            Detect(str(image_folder / 'notes.txt'))

    def test_consensus_drawing_needs_consensus(self, image_folder, tmp_path):
        d = Detect(str(image_folder / 'nuclei.png'), pipeline_options())
        with pytest.raises(RuntimeError):
            save_draw_consensus(d.collection, str(tmp_path / 'consensus.png'))
