"""
image_import.py

Module for loading microscopy images for nucleus detection. Zeiss CZI files
are read with czifile, keeping channel names and physical scaling from their
metadata; TIFF, JPEG and PNG images are read with scikit-image.

Constants:
    IMPORTABLE_EXTENSIONS (tuple[str]): File extensions that can be imported.
    SCALING (dict): Unit labels for each axis (e.g., 'X': 'm', 'T': 's').

Functions:
    is_importable(path): Whether a file has an importable extension.
    list_importable(folder): Importable files of a folder.
    import_image(path, channel): 2D image of one channel.
    read_czi_scale(path): Pixels per micron of a CZI file.

Classes:
    CZI: Channels of a CZI file as maximum projections over Z.
"""

import os
from xml.etree import ElementTree as ET

import numpy as np
from czifile import CziFile
from skimage import io

IMPORTABLE_EXTENSIONS = ('.tif', '.tiff', '.jpg', '.jpeg', '.png', '.czi')
SCALING = {'X': 'm', 'Y': 'm', 'Z': 'm', 'T': 's'}  # physical units for axes


def is_importable(path: str) -> bool:
    return os.path.splitext(str(path))[1].lower() in IMPORTABLE_EXTENSIONS


def list_importable(folder: str) -> list[str]:
    """
    Importable image files of a folder, sorted by name.
    """
    return sorted(os.path.join(folder, f) for f in os.listdir(folder)
                  if os.path.isfile(os.path.join(folder, f)) and is_importable(f))


class CZI:
    """
    Reader for Zeiss .czi microscopy files.

    Only the first scene and time point are kept. Image data is stored with
    axes CZYX.

    Attributes:
        f_name (str): Filename without extension.
        metadata_xml (Element): Root of parsed XML metadata tree.
        dims (dict): Sizes of the C, Z, Y and X axes.
        scales (dict): Physical scaling factors per axis, in metres per pixel.
        channel_names (list[str]): Names of channels in file order.
        data (ndarray): Image data with axes CZYX.
    """

    def __init__(self, path: str):
        self.f_name: str = os.path.basename(path).replace('.czi', '')
        self.metadata_xml: ET.Element = None
        self.dims: dict = {}
        self.scales: dict = {}
        self.channel_names: list[str] = []
        self.data: np.ndarray = None
        self.read_czi(path)

    def read_czi(self, path: str):
        """
        Load pixel data and metadata from a CZI file into this instance.

        Args:
            path (str): Path to the .czi file.
        """
        with CziFile(path) as czi_file:
            self.metadata_xml = ET.fromstring(czi_file.metadata())

            # exclude last axis '0'
            data = np.squeeze(czi_file.asarray(), axis=-1)
            axes = str(czi_file.axes)[:-1]

        # keep the first index of every axis other than CZYX
        index = tuple(slice(None) if ax in 'CZYX' else 0 for ax in axes)
        data = data[index]
        axes = ''.join(ax for ax in axes if ax in 'CZYX')
        for ax in 'CZ':
            if ax not in axes:
                data = np.expand_dims(data, axis=0)
                axes = ax + axes
        self.data = np.transpose(data, [axes.index(ax) for ax in 'CZYX'])

        for i, ax in enumerate('CZYX'):
            self.dims[ax] = self.data.shape[i]
            scale_element = self.metadata_xml.find(f'.//Metadata/Scaling/Items/Distance[@Id="{ax}"]/Value')
            if scale_element is not None:
                self.scales[ax] = float(scale_element.text)

        channel_elements = self.metadata_xml.findall(".//Metadata/Information/Image/Dimensions/Channels/Channel")
        if len(channel_elements) == self.dims['C']:
            self.channel_names = [c.attrib.get("Name", c.attrib.get("Id", '')) for c in channel_elements]

    def __repr__(self):
        dims = ', '.join(f'{ax}: {self.dims[ax]}' for ax in self.dims)
        scales = ', '.join(f'{ax}: {self.scales[ax]} {SCALING[ax]}' for ax in self.scales)
        return (f'CZI(f_name: {self.f_name}.czi,\n\t dimensions: ({dims}),'
                f'\n\t channel_names: ({", ".join(self.channel_names)}),\n\t scales: ({scales}))')

    def get_channel(self, c: int) -> np.ndarray:
        """
        Maximum-intensity projection over Z of one channel.

        Raises:
            IndexError: If the channel does not exist.
        """
        if c < 0 or c >= self.dims['C']:
            raise IndexError(f'Channel {c} not in {self.f_name} with {self.dims["C"]} channels')
        return np.max(self.data[c], axis=0)

    @property
    def pixels_per_micron(self) -> float:
        if 'X' not in self.scales:
            return 1.0
        return 1e-6 / self.scales['X']


def read_czi_scale(path: str) -> float:
    return CZI(path).pixels_per_micron


def import_image(path: str, channel: int = 0) -> np.ndarray:
    """
    Load one channel of an image as a 2D array.

    CZI files give the maximum projection over Z. Colour images give the
    requested channel; greyscale images are returned as they are.

    Args:
        path (str): Image file.
        channel (int): Channel index.

    Returns:
        ndarray[H, W]: Image of the channel.

    Raises:
        ValueError: If the file type cannot be imported.
        IndexError: If the channel does not exist.
    """
    if not is_importable(path):
        raise ValueError(f'Cannot import {path}')
    if str(path).lower().endswith('.czi'):
        return CZI(path).get_channel(channel)

    image = io.imread(path)
    if image.ndim == 2:
        return image
    if channel >= image.shape[-1]:
        raise IndexError(f'Channel {channel} not in {path} with {image.shape[-1]} channels')
    return image[..., channel]
