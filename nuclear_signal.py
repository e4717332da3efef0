"""
nuclear_signal.py

Module holding fluorescent signals found within a nucleus, grouped by the
detection run (image and channel) that produced them.

Classes:
    NuclearSignal: A signal border within a nucleus.
    SignalGroup: Signals from one image channel.
    SignalCollection: Signal groups of one nucleus, with distance and colocalisation queries.
"""

import copy
import uuid
from dataclasses import dataclass, field

import networkx as nx
import numpy as np
from scipy.spatial.distance import cdist

from cellular_component import CellularComponent
from measurement import Measurement, MeasurementDimension, MeasurementScale


class NuclearSignal(CellularComponent):
    """Signal border within a nucleus; shares the nucleus image coordinates."""
    pass


@dataclass
class SignalGroup:
    """
    Signals detected in one image channel.

    Attributes:
        id (UUID): Group identifier, shared by the same group across nuclei.
        source_file (str): Image the signals were detected in.
        channel (int): Image channel.
        signals (list[NuclearSignal]): Signals of the group.
    """
    id: uuid.UUID
    source_file: str = ''
    channel: int = 0
    signals: list = field(default_factory=list)


class SignalCollection:
    """
    Signal groups of one nucleus.

    Attributes:
        groups (dict[UUID, SignalGroup]): Groups by id, in insertion order.
    """

    def __init__(self):
        self.groups: dict[uuid.UUID, SignalGroup] = {}

    def __len__(self):
        return len(self.groups)

    def size(self) -> int:
        return len(self.groups)

    def add_signal_group(self, group_id: uuid.UUID, source_file: str = '', channel: int = 0) -> SignalGroup:
        if group_id not in self.groups:
            self.groups[group_id] = SignalGroup(group_id, source_file, channel)
        return self.groups[group_id]

    def add_signal(self, signal: NuclearSignal, group_id: uuid.UUID):
        self.add_signal_group(group_id, signal.source_file, signal.channel).signals.append(signal)

    def add_signals(self, signals: list[NuclearSignal], group_id: uuid.UUID):
        for s in signals:
            self.add_signal(s, group_id)

    @property
    def signal_group_ids(self) -> list[uuid.UUID]:
        return list(self.groups.keys())

    def update_signal_group_id(self, old_id: uuid.UUID, new_id: uuid.UUID):
        """
        Rename a group, keeping its position.

        Raises:
            KeyError: If `old_id` is not a group or `new_id` already is.
        """
        if old_id not in self.groups:
            raise KeyError(f'No signal group {old_id}')
        if new_id in self.groups:
            raise KeyError(f'Signal group {new_id} already exists')
        self.groups = {(new_id if k == old_id else k): g for k, g in self.groups.items()}
        self.groups[new_id].id = new_id

    def get_source_file(self, group_id: uuid.UUID) -> str:
        return self.groups[group_id].source_file

    def get_channel(self, group_id: uuid.UUID) -> int:
        return self.groups[group_id].channel

    def get_signals(self, group_id: uuid.UUID = None) -> list[NuclearSignal]:
        """Signals of one group, or of all groups when no group is given."""
        if group_id is None:
            return [s for g in self.groups.values() for s in g.signals]
        if group_id not in self.groups:
            return []
        return list(self.groups[group_id].signals)

    def all_signals(self) -> list[list[NuclearSignal]]:
        return [list(g.signals) for g in self.groups.values()]

    def has_signal(self, group_id: uuid.UUID = None) -> bool:
        return self.number_of_signals(group_id) > 0

    def number_of_signals(self, group_id: uuid.UUID = None) -> int:
        return len(self.get_signals(group_id))

    def remove_signals(self, group_id: uuid.UUID = None):
        if group_id is None:
            self.groups = {}
        else:
            self.groups.pop(group_id, None)

    def get_statistics(self, m: Measurement, scale: MeasurementScale, group_id: uuid.UUID = None) -> np.ndarray:
        return np.array([s.get_measurement(m, scale) for s in self.get_signals(group_id)], dtype=float)

    def _to_scale(self, distances: np.ndarray, signals: list[NuclearSignal], scale: MeasurementScale):
        if len(signals) == 0:
            return distances
        return scale.convert(distances, signals[0].scale, MeasurementDimension.LENGTH)

    def calculate_distance_matrix(self, scale: MeasurementScale = MeasurementScale.PIXELS) -> np.ndarray:
        """
        Distances between the centres of mass of all signals, in the order of `get_signals()`.
        """
        signals = self.get_signals()
        if len(signals) == 0:
            return np.zeros((0, 0))
        coms = np.vstack([s.com for s in signals])
        return self._to_scale(cdist(coms, coms), signals, scale)

    def calculate_signal_colocalisation(self, scale: MeasurementScale = MeasurementScale.PIXELS) -> dict:
        """
        Smallest distance between any two signals of each ordered pair of groups.

        Returns:
            dict[tuple[UUID, UUID], float]: Minimum distance per pair of groups with signals.
        """
        result = {}
        for id1, g1 in self.groups.items():
            for id2, g2 in self.groups.items():
                if id1 == id2 or len(g1.signals) == 0 or len(g2.signals) == 0:
                    continue
                d = cdist(np.vstack([s.com for s in g1.signals]), np.vstack([s.com for s in g2.signals]))
                result[(id1, id2)] = float(self._to_scale(np.min(d), g1.signals, scale))
        return result

    def calculate_colocalisation(self, id1: uuid.UUID, id2: uuid.UUID,
                                 scale: MeasurementScale = MeasurementScale.PIXELS) -> list[tuple]:
        """
        Pair signals of two groups one to one with the smallest total distance.

        As many pairs as the smaller group holds are made, each signal used at
        most once. Pairs are returned closest first.

        Args:
            id1 (UUID): First group.
            id2 (UUID): Second group.
            scale (MeasurementScale): Units of the returned distances.

        Returns:
            list[tuple[NuclearSignal, NuclearSignal, float]]: Paired signals and their distance.

        Raises:
            ValueError: If both ids are the same group.
        """
        if id1 == id2:
            raise ValueError('Colocalisation needs two different signal groups')
        s1, s2 = self.get_signals(id1), self.get_signals(id2)
        if len(s1) == 0 or len(s2) == 0:
            return []

        d = cdist(np.vstack([s.com for s in s1]), np.vstack([s.com for s in s2]))
        G = nx.Graph()
        for i in range(len(s1)):
            for j in range(len(s2)):
                G.add_edge(('a', i), ('b', j), weight=d[i, j])

        pairs = []
        for u, v in nx.min_weight_matching(G):
            (_, i), (_, j) = sorted((u, v))
            pairs.append((s1[i], s2[j], float(self._to_scale(d[i, j], s1, scale))))
        return sorted(pairs, key=lambda p: p[2])

    ######################################Transforms

    def offset(self, dx: float, dy: float):
        for s in self.get_signals():
            s.offset(dx, dy)

    def rotate(self, degrees: float, anchor: np.ndarray):
        for s in self.get_signals():
            s.rotate(degrees, anchor)

    def flip_horizontal(self, x: float):
        for s in self.get_signals():
            s.flip_horizontal(x)

    def flip_vertical(self, y: float):
        for s in self.get_signals():
            s.flip_vertical(y)

    def duplicate(self) -> 'SignalCollection':
        return copy.deepcopy(self)
