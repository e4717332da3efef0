"""
consensus.py

Module building the consensus nucleus of a dataset: the median shape of
all oriented nuclei, sampled at matching fractions of the border from the
reference point.
The averaged border can then be refolded: its points are nudged until its
angle profile moves closer to the median angle profile of the dataset.

Classes:
    ConsensusAverager: Builds the consensus nucleus of a CellCollection.
"""

import logging
import math

import numpy as np

from border_profile import Profile, ProfileType, create_profile
from cell_collection import CellCollection
from cellular_component import polygon_perimeter, polygon_signed_area
from constants import (CONSENSUS_PROFILE_LENGTH, MEDIAN, REFOLD_ITERATIONS, REFOLD_MAX_SPACING, REFOLD_MIN_SPACING,
                       REFOLD_STEP)
from exceptions import AnalysisMethodError, ComponentCreationError, ProfileError, SegmentUpdateError
from nucleus import Nucleus
from profile_segments import scale_segments
from rules import OrientationMark

logger = logging.getLogger(__name__)


class ConsensusAverager:
    """
    Averages the oriented shapes of a collection.

    Attributes:
        collection (CellCollection): Dataset to average.
        scale (float): Pixels per micron of the consensus; the collection scale by default.
        refold (bool): Whether to refold the averaged border towards the median angle profile.
    """

    def __init__(self, collection: CellCollection, scale: float = None, refold: bool = False):
        self.collection: CellCollection = collection
        self.scale: float = collection.scale if scale is None else scale
        self.refold_border: bool = refold

    def sample_border(self, n: Nucleus, winding: float = 0) -> np.ndarray:
        """
        Points of an oriented nucleus at equal fractions of its border from the reference point.

        The nucleus is centred on (0, 0) and the points are in microns. Borders
        running against the given winding sign are read backwards from the
        reference point, so that every sample traces the shape the same way.

        Returns:
            ndarray[float]: Points of shape (CONSENSUS_PROFILE_LENGTH, 2).
        """
        oriented = n.get_oriented_nucleus().duplicate()
        oriented.move_centre_of_mass(0, 0)
        profile = oriented.get_profile(ProfileType.ANGLE, OrientationMark.REFERENCE)
        rp_index = oriented.get_border_index(OrientationMark.REFERENCE)
        idx = np.array([profile.index_of_fraction(i / CONSENSUS_PROFILE_LENGTH)
                        for i in range(CONSENSUS_PROFILE_LENGTH)])
        if winding * polygon_signed_area(oriented.border) < 0:
            idx = -idx
        return oriented.border[(rp_index + idx) % len(oriented)] / oriented.scale

    def median_border(self) -> np.ndarray:
        first = self.collection.nuclei[0].get_oriented_nucleus()
        winding = np.sign(polygon_signed_area(first.border))
        samples = np.stack([self.sample_border(n, winding) for n in self.collection.nuclei])
        median = np.median(samples, axis=0)
        changed = np.any(median != np.roll(median, 1, axis=0), axis=1)
        changed[0] = True
        return median[changed] * self.scale

    def _score(self, points: np.ndarray, com: np.ndarray, window_proportion: float, rp_index: int,
               target: Profile) -> float:
        window = max(1, math.ceil(polygon_perimeter(points) * window_proportion))
        profile = create_profile(ProfileType.ANGLE, points, com, window).start_from(rp_index)
        return profile.absolute_square_difference(target, len(points))

    def refold(self, consensus: Nucleus, iterations: int = REFOLD_ITERATIONS) -> float:
        """
        Move consensus border points to bring its angle profile closer to the median.

        Each border point in turn is moved by REFOLD_STEP along each axis. A
        move is kept when the point stays between REFOLD_MIN_SPACING and
        REFOLD_MAX_SPACING median spacings from both neighbours and the square
        difference to the median angle profile falls. Refolding stops after a pass
        with no kept move. The border length and landmark indexes are unchanged.

        Args:
            consensus (Nucleus): Consensus with its reference point set.
            iterations (int): Passes over the border.

        Returns:
            float: Square difference of the refolded angle profile to the median.
        """
        target = self.collection.profile_collection.get_profile(ProfileType.ANGLE, OrientationMark.REFERENCE, MEDIAN)
        rp_index = consensus.get_border_index(OrientationMark.REFERENCE)
        points = consensus.border.copy()
        n = len(points)
        moves = REFOLD_STEP * np.array([[1, 0], [-1, 0], [0, 1], [0, -1]])

        initial = best = self._score(points, consensus.com, consensus.window_proportion, rp_index, target)
        for _ in range(iterations):
            moved = False
            spacing = np.median(np.linalg.norm(np.roll(points, -1, axis=0) - points, axis=1))
            min_d, max_d = spacing * REFOLD_MIN_SPACING, spacing * REFOLD_MAX_SPACING
            for i in range(n):
                neighbours = points[[(i - 1) % n, (i + 1) % n]]
                for move in moves:
                    p = points[i] + move
                    d = np.linalg.norm(neighbours - p, axis=1)
                    if np.any(d < min_d) or np.any(d > max_d):
                        continue
                    candidate = points.copy()
                    candidate[i] = p
                    score = self._score(candidate, consensus.com, consensus.window_proportion, rp_index, target)
                    if score < best:
                        points, best = candidate, score
                        moved = True
                        break
            if not moved:
                break

        consensus.border = points
        consensus.create_profiles()
        consensus.clear_measurements()
        logger.info(f'Refolded consensus of {self.collection.name} from {initial:.1f} to {best:.1f}')
        return best

    def run(self) -> Nucleus:
        """
        Build the consensus nucleus and store it in the collection.

        Returns:
            Nucleus: Consensus nucleus centred on (0, 0).

        Raises:
            AnalysisMethodError: If the collection is empty or the consensus border is degenerate.
        """
        if len(self.collection) == 0:
            raise AnalysisMethodError(f'No nuclei to average in {self.collection.name}')
        rsc = self.collection.rule_set_collection
        pc = self.collection.profile_collection
        template = self.collection.nuclei[0]

        try:
            consensus = Nucleus(self.median_border(), [0.0, 0.0], rsc, template.window_proportion,
                                source_file=f'{self.collection.name} consensus', scale=self.scale)
        except (ComponentCreationError, ProfileError, ValueError) as e:
            raise AnalysisMethodError(f'Cannot build consensus of {self.collection.name}: {e}') from e

        rp = rsc.reference_point
        consensus.set_landmark(rp, 0)
        if pc.has_profiles():
            if self.refold_border and len(self.collection) > 1:
                self.refold(consensus)
            profile = consensus.get_profile(ProfileType.ANGLE, OrientationMark.REFERENCE)
            for landmark in rsc.landmarks:
                if landmark == rp or not pc.has_landmark(landmark):
                    continue
                offset = profile.find_best_fit_offset(pc.get_profile(ProfileType.ANGLE, landmark, MEDIAN))
                consensus.set_landmark(landmark, consensus.wrap_index(offset))

            if pc.has_segments():
                try:
                    consensus.set_segments(scale_segments(pc.segments, len(consensus)), OrientationMark.REFERENCE)
                except SegmentUpdateError as e:
                    logger.warning(f'Cannot scale median segments onto consensus of {self.collection.name}: {e}')

        consensus.get_oriented_nucleus()
        self.collection.consensus = consensus
        return consensus
