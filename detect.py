"""
detect.py

High-level analysis pipeline combining image reading, nucleus detection,
landmark profiling, segmentation, consensus building and signal detection.
Defines the Detect class to orchestrate loading microscopy images of one
dataset and analysing the nuclei found in them.

Classes:
    Detect: Manages the end-to-end workflow from image files to an analysed CellCollection.
"""

import os
import time

from border_profile import ProfileType
from cell_collection import CellCollection
from consensus import ConsensusAverager
from dataset_profiling import DatasetProfiler
from dataset_segmentation import DatasetSegmenter
from drawing import get_path, save_draw_consensus, save_draw_nuclei, save_draw_profile
from exceptions import AnalysisMethodError
from image_import import import_image, is_importable, list_importable
from nucleus_finder import NucleusFinder
from options import AnalysisOptions, SignalDetectionOptions
from signal_finder import SignalFinder

WRITE_TIME = True


class Detect:
    """
    Orchestrates nuclear morphology analysis of an image file or a folder of images.

    Attributes:
        path (str): Image file or folder.
        options (AnalysisOptions): Analysis options.
        files (list[str]): Images of the dataset.
        collection (CellCollection): Nuclei of the dataset.
        nuclei_extracted (bool): Whether nuclei were extracted.
        detection_complete (bool): Whether the full workflow ran.
    """

    def __init__(self, path: str, options: AnalysisOptions = None):
        """
        Initialize the pipeline with an image file or folder.

        Args:
            path (str): Image file or folder of images.
            options (AnalysisOptions, optional): Analysis options; defaults for round nuclei.

        Raises:
            ValueError: If the path is neither a folder nor an importable image.
        """
        self.path: str = str(path)
        self.options: AnalysisOptions = options if options is not None else AnalysisOptions()

        if os.path.isdir(self.path):
            self.files: list[str] = list_importable(self.path)
            name = os.path.basename(os.path.normpath(self.path))
        elif is_importable(self.path):
            self.files = [self.path]
            name = os.path.splitext(os.path.basename(self.path))[0]
        else:
            raise ValueError(f'Cannot analyse {self.path}')

        self.collection: CellCollection = CellCollection(name, self.options.rule_set_collection,
                                                         self.options.nucleus_options.scale)
        self.nuclei_extracted = False
        self.detection_complete = False

    def get_canvas(self, f: str, c: int):
        return import_image(f, c)

    def extract_nuclei(self):
        """
        Find nuclei in the nucleus channel of every image of the dataset.
        """
        if self.nuclei_extracted: return
        t_all = time.time()
        finder = NucleusFinder(self.options.nucleus_options, self.options.rule_set_collection,
                               self.options.window_proportion)
        for f in self.files:
            t_start = time.time()
            nuclei = finder.find_in_image(self.get_canvas(f, self.options.nucleus_options.channel),
                                          os.path.basename(f))
            self.collection.add_nuclei(nuclei)

            if WRITE_TIME:
                print(f"\tNucleus detection on {os.path.basename(f)} took {time.time() - t_start:.2f} seconds.")

        if WRITE_TIME:
            print(f"Nucleus detection took {time.time() - t_all:.2f} seconds.")

        if len(self.collection) == 0:
            raise AnalysisMethodError(f'No nuclei found in {self.path}')
        self.nuclei_extracted = True

    def profile(self):
        """
        Find landmarks consistently across the dataset.
        """
        if not self.nuclei_extracted:
            raise RuntimeError('No nuclei extracted.')
        t_start = time.time()
        DatasetProfiler(self.collection).run()
        if WRITE_TIME:
            print(f"Profiling took {time.time() - t_start:.2f} seconds.")

    def segment(self):
        if not self.nuclei_extracted:
            raise RuntimeError('No nuclei extracted.')
        t_start = time.time()
        DatasetSegmenter(self.collection).run()
        if WRITE_TIME:
            print(f"Segmentation took {time.time() - t_start:.2f} seconds.")

    def build_consensus(self):
        if not self.nuclei_extracted:
            raise RuntimeError('No nuclei extracted.')
        t_start = time.time()
        ConsensusAverager(self.collection, refold=self.options.refold_consensus).run()
        if WRITE_TIME:
            print(f"Consensus took {time.time() - t_start:.2f} seconds.")

    def extract_signals_group(self, signal_options: SignalDetectionOptions):
        """
        Find one signal group in the nuclei of every image.

        Signal images are read from the nucleus images, or from the file of
        the same name in the options' source folder.

        Args:
            signal_options (SignalDetectionOptions): Signal group to detect.
        """
        if not self.nuclei_extracted:
            raise RuntimeError('No nuclei extracted.')
        t_start = time.time()
        finder = SignalFinder(signal_options)
        for f in self.files:
            name = os.path.basename(f)
            source = f if signal_options.source_folder is None else os.path.join(signal_options.source_folder, name)
            finder.assign_signals(self.get_canvas(source, signal_options.channel),
                                  self.collection.get_nuclei(name), name)

        if WRITE_TIME:
            print(f"\tSignal detection of group {signal_options.group_name} took {time.time() - t_start:.2f} seconds.")

    def extract_signals(self):
        for signal_options in self.options.signal_options:
            self.extract_signals_group(signal_options)

    def detect(self):
        """
        Execute the full workflow: nuclei, landmarks, segments, consensus, then signals.
        """
        t_start = time.time()
        self.extract_nuclei()
        self.profile()
        if self.options.segment:
            self.segment()
        if self.options.build_consensus:
            self.build_consensus()
        self.extract_signals()
        self.detection_complete = True
        if WRITE_TIME:
            print(f"Detection took {time.time() - t_start:.2f} seconds.")

    def save_draw(self, dir_path: str):
        """
        Saves detection visualization images of the dataset.

        It generates and saves images of:
          - detected nuclei with landmarks for each image
          - the consensus nucleus
          - the median angle and diameter profiles

        Images are saved under a structured directory hierarchy:
            {dir_path}/{dataset name}/draw/

        Args:
            dir_path (str): Root directory path where the output folders and images will be saved.
        """
        if not self.detection_complete:
            raise RuntimeError('Detection pipeline not complete.')

        name = self.collection.name

        path1 = get_path(os.path.join(dir_path, name))
        path2 = get_path(os.path.join(path1, 'draw'))

        for f in self.files:
            f_name = os.path.splitext(os.path.basename(f))[0]
            image = self.get_canvas(f, self.options.nucleus_options.channel)
            save_draw_nuclei(image, self.collection.get_nuclei(os.path.basename(f)),
                             os.path.join(path2, f_name + '_nuclei.png'))

        if self.collection.has_consensus():
            save_draw_consensus(self.collection, os.path.join(path2, name + '_consensus.png'))

        for profile_type in (ProfileType.ANGLE, ProfileType.DIAMETER):
            save_draw_profile(self.collection, profile_type,
                              os.path.join(path2, name + '_' + profile_type.name.lower() + '_profile.png'))
