"""
constants.py

Module defining global constants for nuclear morphology analysis.

This module centralizes all tunable parameters used across the analysis
pipeline, including profile windows, segmentation thresholds, consensus
sampling, nucleus and signal detection defaults, and drawing settings for
visualization of results.

Constants:
    DEFAULT_WINDOW_PROPORTION (float): Fraction of the perimeter used as angle window.
    MIN_PROFILE_LENGTH (int): Shortest profile that can be interpolated.
    MIN_SEGMENT_LENGTH (int): Shortest allowed profile segment.
    SMOOTH_WINDOW (int): Smoothing window for the segmenter.
    MAXIMA_WINDOW (int): Local extrema window for the segmenter.
    DELTA_WINDOW (int): Window for profile deltas in the segmenter.
    ANGLE_THRESHOLD (float): Angle splitting convex from concave inflections.
    MIN_RATE_OF_CHANGE (float): Minimal delta relative to profile range.
    FIT_WINDOW (int): Coarse step of the segment fitter.
    MAX_COERCION_ATTEMPTS (int): Attempts to move the median reference point to zero.
    CONSENSUS_PROFILE_LENGTH (int): Number of border positions in the consensus.
    REFOLD_ITERATIONS (int): Passes over the consensus border when refolding.
    REFOLD_STEP (float): Distance a border point is moved per refolding trial.
    REFOLD_MIN_SPACING, REFOLD_MAX_SPACING (float): Allowed neighbour distances relative to the median spacing.
    MEDIAN, LOWER_QUARTILE, UPPER_QUARTILE (int): Percentiles of profile aggregates.
    NUCLEUS_MIN_AREA, NUCLEUS_MAX_AREA (int): Default nucleus area limits in pixels.
    SIGNAL_MIN_AREA (int): Default signal area limit in pixels.
    N (int): Enlargement factor for nucleus drawing.
    TS (int): Text size for drawing annotations.
    BG_L (int): Label value reserved for background pixels.
"""


# specific to profiles
DEFAULT_WINDOW_PROPORTION = 0.05            # angle window as a fraction of perimeter
MIN_PROFILE_LENGTH = 3                      # shortest profile that can be interpolated
MEDIAN = 50                                 # percentile of the median profile
LOWER_QUARTILE = 25                         # percentile of the lower quartile profile
UPPER_QUARTILE = 75                         # percentile of the upper quartile profile

# specific to profile segmentation
MIN_SEGMENT_LENGTH = 10                     # minimal segment length in border points
SMOOTH_WINDOW = 2                           # smoothing window before finding inflections
MAXIMA_WINDOW = 5                           # window for local minima and maxima
DELTA_WINDOW = 2                            # window for deltas of the smoothed profile
ANGLE_THRESHOLD = 180                       # maxima above and minima below are inflections
MIN_RATE_OF_CHANGE = 0.02                   # fraction of the delta range needed at a boundary
FIT_WINDOW = 10                             # coarse step when fitting segment boundaries

# specific to dataset analysis
MAX_COERCION_ATTEMPTS = 50                  # tries to force the median reference point to zero
CONSENSUS_PROFILE_LENGTH = 1000             # positions sampled around each border
REFOLD_ITERATIONS = 3                       # passes over the consensus border when refolding
REFOLD_STEP = 0.5                           # distance a border point is moved per refolding trial
REFOLD_MIN_SPACING = 0.5                    # minimal neighbour distance relative to the median spacing
REFOLD_MAX_SPACING = 1.2                    # maximal neighbour distance relative to the median spacing

# specific to nucleus sizes
NUCLEUS_MIN_AREA = 500                      # nucleus minimal area in pixels
NUCLEUS_MAX_AREA = 10000                    # nucleus maximal area in pixels
NUCLEUS_MIN_CIRC = 0.0                      # nucleus minimal circularity
NUCLEUS_MAX_CIRC = 1.0                      # nucleus maximal circularity
NUCLEUS_THRESHOLD = 36                      # default nucleus channel threshold

# specific to signal sizes
SIGNAL_MIN_AREA = 5                         # signal minimal area in pixels
SIGNAL_MAX_FRACTION = 0.1                   # signal maximal area as a fraction of the nucleus
SIGNAL_THRESHOLD = 70                       # default signal channel threshold

# specific to edge filtering
EDGE_FILTER_MAX = 280                       # maximal angle along a valid border
EDGE_FILTER_MIN = 10                        # minimal angle along a valid border
EDGE_FILTER_DELTA_MAX = 40                  # maximal angle change between border points

# specific to results drawing
N = 2                                       # enlargement of nucleus drawing
TS = 10                                     # text size for nucleus drawing

# specific to labeling
BG_L = 0                                    # background label
