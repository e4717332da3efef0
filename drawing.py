"""
drawing.py

Visualization layer for nuclear morphology results.
Draws and saves detected nuclei with their landmarks over the source image,
the consensus nucleus of a dataset, and median profiles with their
interquartile range.

Functions:
    get_path: Ensures a directory exists, creates if necessary.
    get_fig: Initializes a matplotlib figure sized to an image.
    set_axes: Configures axis limits and hides figure axes.
    generate_n_colors: Generates N distinct colors from a colormap.
    get_labels: Builds a label image from nucleus masks.
    save_draw_nuclei: Draws labeled nuclei, outlines and landmarks on an image.
    save_draw_consensus: Draws the consensus nucleus with its landmarks and segments.
    save_draw_profile: Draws a median profile with its interquartile range and landmarks.
"""

import os

import matplotlib
import matplotlib.pyplot as plt
import numpy as np
import skimage

from border_profile import ProfileType
from cell_collection import CellCollection
from constants import BG_L, LOWER_QUARTILE, MEDIAN, N, TS, UPPER_QUARTILE
from nucleus import Nucleus
from nucleus_finder import normalise_img
from rules import OrientationMark


def get_path(path: str) -> str:
    """
    Ensures that a given directory path exists.

    Args:
        path (str): The directory path to check or create.

    Returns:
        str: The verified or newly created path.
    """
    if not os.path.exists(path): os.mkdir(path)
    return path


def get_fig(max1, max0, n=1):
    """
    Creates a matplotlib figure with dimensions proportional to image shape.

    Args:
        max1 (int): Width of the image.
        max0 (int): Height of the image.
        n (int): Scaling factor (default is 1).

    Returns:
        tuple: A tuple (fig, ax) representing the matplotlib figure and axis.
    """
    return plt.subplots(figsize=(n * max1 / 100, n * max0 / 100), dpi=100)


def set_axes(max1: int, max0: int, ax: plt.Axes):
    """
    Configures the axes to match image dimensions and hides axes.

    Args:
        max1 (int): Image width.
        max0 (int): Image height.
        ax (matplotlib.axes.Axes): The axes object to configure.
    """
    ax.set_xlim(0, max1 - 1)
    ax.set_ylim(max0 - 1, 0)
    ax.axis('off')
    plt.subplots_adjust(left=0, right=1, top=1, bottom=0)


def generate_n_colors(n: int, colormap: str = 'gist_rainbow') -> list:
    """
    Generate N distinct RGB colors using a colormap.

    Args:
        n (int): Number of colors to generate.
        colormap (str, optional): Colormap to use. Defaults to 'gist_rainbow'.

    Returns:
        list of colors.
    """
    n = max(n, 1)
    cmap = matplotlib.colormaps[colormap].resampled(n)
    return [cmap(i)[:3] for i in range(n)]


def get_labels(shape: tuple, nuclei: list[Nucleus]) -> np.ndarray:
    """
    Label image with nucleus i + 1 painted at its mask and BG_L elsewhere.
    """
    labels = np.full(shape[:2], BG_L, dtype=int)
    for i, n in enumerate(nuclei):
        tl = n.tl
        mask = n.get_bin_mask()
        region = labels[tl[0]:tl[0] + mask.shape[0], tl[1]:tl[1] + mask.shape[1]]
        region[mask[:region.shape[0], :region.shape[1]]] = i + 1
    return labels


def _draw_landmarks(ax, n: Nucleus, points: np.ndarray, colors: dict):
    for mark in n.rule_set_collection.orientation_marks:
        if not n.has_landmark(mark):
            continue
        p = points[n.get_border_index(mark)]
        ax.plot(p[0], p[1], 'o', color=colors[mark], markersize=4)


def _mark_colors() -> dict:
    return dict(zip(OrientationMark, generate_n_colors(len(OrientationMark), 'tab10')))


######################################Draw & Save detection

def save_draw_nuclei(image: np.ndarray, nuclei: list[Nucleus], f_path: str, n: int = N):
    """
    Draws labeled nuclei with outlines, landmarks and numbers on an image.

    Args:
        image (ndarray): Image with nuclei.
        nuclei (list[Nucleus]): Nuclei found in the image.
        f_path (str): Path to save image.
        n (int): Magnification of image.
    """
    max0, max1 = image.shape[:2]
    b = TS // (n * 2) + 1

    labels = get_labels(image.shape, nuclei)
    c = generate_n_colors(len(nuclei))
    labeled_image = skimage.color.label2rgb(label=labels, image=normalise_img(image), alpha=0.15, bg_label=BG_L,
                                            colors=c)
    mark_colors = _mark_colors()

    fig, ax = get_fig(max1, max0, n)
    ax.imshow(labeled_image)
    for i, nucleus in enumerate(nuclei):
        border = np.vstack((nucleus.original_border, nucleus.original_border[:1]))
        ax.plot(border[:, 0], border[:, 1], '-', color=c[i], linewidth=0.8)
        _draw_landmarks(ax, nucleus, nucleus.original_border, mark_colors)
        x, y = nucleus.original_com
        y = min(max(b, y), max0 - 1 - b)
        x = min(max(b, x), max1 - 1 - b)
        ax.text(x, y, str(nucleus.nucleus_number), color='k', fontsize=TS, ha='center', va='center')
    set_axes(max1, max0, ax)
    plt.savefig(f_path, bbox_inches='tight', pad_inches=0)
    plt.close()


def save_draw_consensus(collection: CellCollection, f_path: str):
    """
    Draws the oriented consensus nucleus of a collection with its landmarks and segment boundaries.

    Args:
        collection (CellCollection): Collection with a consensus nucleus.
        f_path (str): Path to save image.

    Raises:
        RuntimeError: If the collection has no consensus.
    """
    if not collection.has_consensus():
        raise RuntimeError(f'No consensus built for {collection.name}')
    consensus = collection.consensus.get_oriented_nucleus()
    border = np.vstack((consensus.border, consensus.border[:1]))

    fig, ax = plt.subplots(figsize=(5, 5), dpi=100)
    ax.fill(border[:, 0], border[:, 1], color='0.85')
    ax.plot(border[:, 0], border[:, 1], 'k-', linewidth=1)
    if consensus.has_segments():
        starts = np.array([s.start for s in consensus.segments])
        ax.plot(consensus.border[starts, 0], consensus.border[starts, 1], 'k|', markersize=8)
    _draw_landmarks(ax, consensus, consensus.border, _mark_colors())
    ax.set_aspect('equal')
    ax.set_title(f'{collection.name} consensus (n={len(collection)})')
    ax.axis('off')
    plt.savefig(f_path, bbox_inches='tight')
    plt.close()


def save_draw_profile(collection: CellCollection, profile_type: ProfileType, f_path: str):
    """
    Draws the median profile of a collection from the reference point with its interquartile range.

    Args:
        collection (CellCollection): Collection with calculated profiles.
        profile_type (ProfileType): Profile to draw.
        f_path (str): Path to save image.
    """
    pc = collection.profile_collection
    median = pc.get_profile(profile_type, OrientationMark.REFERENCE, MEDIAN)
    lower = pc.get_profile(profile_type, OrientationMark.REFERENCE, LOWER_QUARTILE)
    upper = pc.get_profile(profile_type, OrientationMark.REFERENCE, UPPER_QUARTILE)
    x = np.arange(len(median)) / len(median) * 100

    fig, ax = plt.subplots(figsize=(8, 4), dpi=100)
    ax.fill_between(x, lower.values, upper.values, color='0.8')
    ax.plot(x, median.values, 'k-', linewidth=1)
    for landmark, i in pc.landmarks.items():
        ax.axvline(i / len(median) * 100, color='r', linewidth=0.5)
        ax.text(i / len(median) * 100, ax.get_ylim()[1], str(landmark), fontsize=TS * 0.7, rotation=90,
                va='top', ha='right')
    if profile_type == ProfileType.ANGLE:
        ax.axhline(180, color='0.5', linewidth=0.5, linestyle='--')
    ax.set_xlim(0, 100)
    ax.set_xlabel('Position from reference point (%)')
    ax.set_ylabel(str(profile_type))
    ax.set_title(collection.name)
    plt.savefig(f_path, bbox_inches='tight')
    plt.close()
