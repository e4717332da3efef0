"""
options.py

Module defining the options of nucleus detection, signal detection and
dataset analysis.

Classes:
    NucleusDetectionOptions: How nuclei are found in an image channel.
    SignalDetectionOptions: How signals are found within nuclei.
    AnalysisOptions: Complete options of a dataset analysis.
"""

import uuid
from dataclasses import dataclass, field
from typing import Optional

from constants import (DEFAULT_WINDOW_PROPORTION, NUCLEUS_MIN_AREA, NUCLEUS_MAX_AREA, NUCLEUS_MIN_CIRC,
                       NUCLEUS_MAX_CIRC, NUCLEUS_THRESHOLD, SIGNAL_MIN_AREA, SIGNAL_MAX_FRACTION, SIGNAL_THRESHOLD)
from rules import RuleSetCollection, round_rule_set_collection

THRESHOLD_METHODS = ('fixed', 'otsu')


@dataclass
class NucleusDetectionOptions:
    """
    Options for finding nuclei in one image channel.

    Attributes:
        channel (int): Image channel holding the nuclear stain.
        threshold (float): Intensity above which pixels belong to nuclei.
        min_size (float): Minimal nucleus area in pixels.
        max_size (float): Maximal nucleus area in pixels.
        min_circ (float): Minimal circularity.
        max_circ (float): Maximal circularity.
        scale (float): Pixels per micron.
        use_kuwahara (bool): Smooth the image with a Kuwahara filter first.
        kuwahara_radius (int): Kuwahara filter radius.
        use_flattening (bool): Clip bright pixels before thresholding.
        flattening_threshold (float): Highest pixel value kept when flattening.
        use_canny (bool): Find nuclei by edge detection instead of a threshold.
        canny_sigma (float): Gaussian sigma of the edge detector.
        canny_low_threshold (float): Lower hysteresis threshold on the normalised image.
        canny_high_threshold (float): Upper hysteresis threshold on the normalised image.
        use_gap_closing (bool): Close gaps in the nucleus mask.
        closing_radius (int): Radius of the closing disk.
        use_watershed (bool): Split touching nuclei.
        watershed_min_distance (int): Minimal distance between nucleus centres when splitting.
        use_edge_filter (bool): Reject nuclei with irregular borders.
    """
    channel: int = 2
    threshold: float = NUCLEUS_THRESHOLD
    min_size: float = NUCLEUS_MIN_AREA
    max_size: float = NUCLEUS_MAX_AREA
    min_circ: float = NUCLEUS_MIN_CIRC
    max_circ: float = NUCLEUS_MAX_CIRC
    scale: float = 1.0
    use_kuwahara: bool = False
    kuwahara_radius: int = 3
    use_flattening: bool = False
    flattening_threshold: float = 100
    use_canny: bool = False
    canny_sigma: float = 2.0
    canny_low_threshold: float = 0.05
    canny_high_threshold: float = 0.2
    use_gap_closing: bool = False
    closing_radius: int = 5
    use_watershed: bool = False
    watershed_min_distance: int = 10
    use_edge_filter: bool = False

    def __post_init__(self):
        if self.min_size >= self.max_size:
            raise ValueError(f'Minimal size {self.min_size} must be below maximal size {self.max_size}')
        if self.min_circ >= self.max_circ:
            raise ValueError(f'Minimal circularity {self.min_circ} must be below maximal {self.max_circ}')
        if self.scale <= 0:
            raise ValueError(f'Scale {self.scale} must be positive')


@dataclass
class SignalDetectionOptions:
    """
    Options for finding signals within nuclei.

    Attributes:
        channel (int): Image channel holding the signal.
        threshold (float): Intensity above which pixels belong to signals with the fixed method.
        method (str): 'fixed' uses `threshold`; 'otsu' thresholds the pixels of each nucleus.
        min_size (float): Minimal signal area in pixels.
        max_fraction (float): Maximal signal area as a fraction of the nucleus area.
        use_gap_closing (bool): Close gaps in the signal mask.
        closing_radius (int): Radius of the closing disk.
        group_name (str): Name of the signal group.
        group_id (UUID): Identifier of the signal group.
        source_folder (str, optional): Folder of signal images; the nucleus images by default.
    """
    channel: int = 0
    threshold: float = SIGNAL_THRESHOLD
    method: str = 'fixed'
    min_size: float = SIGNAL_MIN_AREA
    max_fraction: float = SIGNAL_MAX_FRACTION
    use_gap_closing: bool = False
    closing_radius: int = 2
    group_name: str = ''
    group_id: uuid.UUID = field(default_factory=uuid.uuid4)
    source_folder: Optional[str] = None

    def __post_init__(self):
        if self.method not in THRESHOLD_METHODS:
            raise ValueError(f'Unknown threshold method {self.method}, expected one of {", ".join(THRESHOLD_METHODS)}')
        if not 0 < self.max_fraction <= 1:
            raise ValueError(f'Maximal signal fraction {self.max_fraction} must be in (0, 1]')


@dataclass
class AnalysisOptions:
    """
    Options of a complete dataset analysis.

    Attributes:
        nucleus_options (NucleusDetectionOptions): Nucleus detection.
        rule_set_collection (RuleSetCollection): Landmarks of the nucleus type.
        window_proportion (float): Angle window as a fraction of the perimeter.
        segment (bool): Segment the median profile and fit segments to nuclei.
        build_consensus (bool): Build a consensus nucleus.
        refold_consensus (bool): Refold the consensus towards the median angle profile.
        signal_options (list[SignalDetectionOptions]): Signal groups to detect.
    """
    nucleus_options: NucleusDetectionOptions = field(default_factory=NucleusDetectionOptions)
    rule_set_collection: RuleSetCollection = field(default_factory=round_rule_set_collection)
    window_proportion: float = DEFAULT_WINDOW_PROPORTION
    segment: bool = True
    build_consensus: bool = True
    refold_consensus: bool = False
    signal_options: list = field(default_factory=list)
