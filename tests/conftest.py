"""
Shared fixtures: synthetic nucleus borders, preset rule set collections and
synthetic microscopy images.
"""

import matplotlib

matplotlib.use('Agg')

import numpy as np
import pytest
from skimage.draw import disk, ellipse

from nucleus import create_nucleus
from rules import get_rule_set_collection


def ellipse_points(a=40.0, b=20.0, cx=100.0, cy=100.0, rotation=0.0, n=400):
    t = np.linspace(0, 2 * np.pi, n, endpoint=False)
    x, y = a * np.cos(t), b * np.sin(t)
    c, s = np.cos(rotation), np.sin(rotation)
    return np.column_stack((cx + c * x - s * y, cy + s * x + c * y))


def circle_points(r=50.0, cx=100.0, cy=100.0, n=400):
    return ellipse_points(r, r, cx, cy, 0.0, n)


def teardrop_points(r=40.0, cx=100.0, cy=100.0, m=1, n=400):
    """Teardrop with its sharp tip at (cx + r, cy)."""
    t = np.linspace(0, 2 * np.pi, n, endpoint=False)
    return np.column_stack((cx + r * np.cos(t), cy + r * np.sin(t) * np.sin(t / 2) ** m))


@pytest.fixture
def square_points():
    return np.array([[10.0, 10.0], [30.0, 10.0], [30.0, 30.0], [10.0, 30.0]])


@pytest.fixture
def round_rsc():
    return get_rule_set_collection('round')


@pytest.fixture
def mouse_rsc():
    return get_rule_set_collection('mouse')


@pytest.fixture
def ellipse_nucleus(round_rsc):
    return create_nucleus(ellipse_points(), None, round_rsc)


@pytest.fixture
def circle_nucleus(round_rsc):
    return create_nucleus(circle_points(), None, round_rsc)


@pytest.fixture
def ellipse_nuclei(round_rsc):
    rng = np.random.default_rng(0)
    nuclei = []
    for i, a in enumerate((38.0, 40.0, 42.0, 39.0, 41.0, 40.0)):
        points = ellipse_points(a, 20.0, 150.0, 150.0, rng.uniform(0, np.pi))
        nuclei.append(create_nucleus(points, None, round_rsc, nucleus_number=i, source_file='ellipses.tif'))
    return nuclei


@pytest.fixture
def teardrop_nuclei(mouse_rsc):
    nuclei = []
    for i, r in enumerate((38.0, 40.0, 42.0, 40.0)):
        nuclei.append(create_nucleus(teardrop_points(r), None, mouse_rsc, nucleus_number=i,
                                     source_file='teardrops.tif'))
    return nuclei


@pytest.fixture
def disc_image():
    """Two separate discs of radius 20 on a dark background."""
    image = np.zeros((200, 200), dtype=np.uint8)
    for centre in ((60, 60), (140, 140)):
        rr, cc = disk(centre, 20, shape=image.shape)
        image[rr, cc] = 200
    return image


@pytest.fixture
def ellipse_image():
    """Four rotated ellipses, each with a bright spot at its centre."""
    image = np.zeros((300, 300), dtype=np.uint8)
    centres = ((70, 70), (70, 200), (200, 70), (200, 200))
    for (r, c), rotation in zip(centres, (0.0, 0.5, 1.0, 1.5)):
        rr, cc = ellipse(r, c, 25, 15, shape=image.shape, rotation=rotation)
        image[rr, cc] = 150
        rr, cc = disk((r, c), 3, shape=image.shape)
        image[rr, cc] = 250
    return image
