"""
connectivity_statistics.py

Neighbor-type statistics built from a training corpus of
(structure, spectrum, assignment) triples.

For every assigned atom of the target element the table counts which
neighbors it has, keyed by

    (multiplicity, hybridization, shift, neighbor type,
     neighbor hybridization, neighbor proton count)

The table is a single flat dictionary with composite keys. Increments
go through one lock, so concurrent writers never lose counts. Parallel
accumulation computes per-item count deltas in worker threads and merges
them in the calling thread only.

Querying happens through `extract_connectivities` (the neighbor subtree
of one multiplicity/hybridization/shift bin), followed by
`convert_to_numeric_hybridization_keys` and
`filter_extracted_connectivities`.
"""

import logging
import threading
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Iterable, NamedTuple, Optional, Set

import pandas as pd

from ..constants import hybridizationConversionMap
from ..core.spectrum import Assignment, Spectrum
from ..utils.nmr_utils import get_atom_type_from_nucleus, get_multiplicity_from_protons_count
from ..utils.structure import get_heavy_neighbors, get_hybridization_name, get_protons_count

logger = logging.getLogger(__name__)


class ConnectivityKey(NamedTuple):
    multiplicity: str
    hybridization: str
    shift: int
    neighbor_type: str
    neighbor_hybridization: str
    neighbor_proton_count: int


@dataclass
class TrainingItem:
    """One reference structure with its assigned spectrum."""
    structure: object
    spectrum: Spectrum
    assignment: Assignment
    name: Optional[str] = None


def collect_connectivity_counts(item: TrainingItem, atom_type: str) -> Counter:
    """
    Count deltas contributed by one training item. Pure; safe to run in
    any worker thread.

    Atoms with more than three attached protons or without a known
    hybridization are skipped, as are neighbors without a known
    hybridization. Shifts are truncated toward zero.
    """
    counts = Counter()
    structure = item.structure
    for signal_index in range(item.spectrum.signal_count):
        shift_value = item.spectrum.get_shift(signal_index, 0)
        if shift_value is None:
            continue
        shift = int(shift_value)
        for atom_index in item.assignment.get_assignment(0, signal_index):
            if atom_index < 0 or atom_index >= structure.GetNumAtoms():
                logger.debug(f"{item.name}: assigned atom index {atom_index} out of range, skipped")
                continue
            atom = structure.GetAtomWithIdx(atom_index)
            if atom.GetSymbol() != atom_type:
                continue
            multiplicity = get_multiplicity_from_protons_count(get_protons_count(atom))
            if multiplicity is None:
                logger.debug(f"{item.name}: atom {atom_index} has no multiplicity, skipped")
                continue
            hybridization = get_hybridization_name(atom)
            if hybridization is None:
                logger.debug(f"{item.name}: atom {atom_index} has no known hybridization, skipped")
                continue
            for neighbor in get_heavy_neighbors(atom):
                neighbor_hybridization = get_hybridization_name(neighbor)
                if neighbor_hybridization is None:
                    continue
                key = ConnectivityKey(multiplicity, hybridization, shift, neighbor.GetSymbol(),
                                      neighbor_hybridization, get_protons_count(neighbor))
                counts[key] += 1
    return counts


class ConnectivityStatistics:
    """Flat composite-key occurrence table with atomic increments."""

    def __init__(self):
        self._counts: Dict[ConnectivityKey, int] = {}
        # (multiplicity, hybridization, shift) -> keys of that bin
        self._bins: Dict[tuple, Set[ConnectivityKey]] = {}
        self._lock = threading.Lock()

    def __len__(self):
        return len(self._counts)

    def __contains__(self, key):
        return key in self._counts

    def get(self, key: ConnectivityKey) -> int:
        return self._counts.get(key, 0)

    def items(self):
        with self._lock:
            return list(self._counts.items())

    def increment(self, key: ConnectivityKey, amount: int = 1):
        """Insert-if-absent and add, as one step."""
        with self._lock:
            self._add(key, amount)

    def merge(self, other):
        """Add the counts of another table or of a key -> count mapping."""
        entries = other.items() if isinstance(other, ConnectivityStatistics) else dict(other).items()
        with self._lock:
            for key, count in entries:
                self._add(key, count)

    def _add(self, key: ConnectivityKey, amount: int):
        if key not in self._counts:
            self._bins.setdefault(tuple(key[:3]), set()).add(key)
        self._counts[key] = self._counts.get(key, 0) + amount

    def accumulate(self, training_set: Iterable[TrainingItem], nucleus: str, n_workers: int = 1) -> int:
        """
        Add the neighbor counts of all training items whose spectrum was
        recorded for `nucleus`.

        Parameters
        ----------
        training_set : iterable of TrainingItem
        nucleus : str
            Isotope label of the target element, e.g. '13C'.
        n_workers : int
            Number of worker threads computing per-item deltas.

        Returns
        -------
        int
            Number of training items used.
        """
        atom_type = get_atom_type_from_nucleus(nucleus)
        if atom_type is None:
            raise ValueError(f"Invalid nucleus: {nucleus}")
        items = [item for item in training_set
                 if item.spectrum is not None and item.spectrum.nuclei[0] == nucleus]

        if n_workers > 1 and len(items) > 1:
            with ThreadPoolExecutor(max_workers=n_workers) as executor:
                for delta in executor.map(lambda item: collect_connectivity_counts(item, atom_type), items):
                    self.merge(delta)
        else:
            for item in items:
                self.merge(collect_connectivity_counts(item, atom_type))

        logger.info(f"Accumulated connectivity statistics from {len(items)} training items "
                    f"({len(self)} distinct keys)")
        return len(items)

    def get_neighbor_counts(self, multiplicity: str, hybridization: str, shift: int
                            ) -> Dict[str, Dict[str, Dict[int, int]]]:
        """Neighbor type -> hybridization -> proton count -> count for one bin."""
        neighbors: Dict[str, Dict[str, Dict[int, int]]] = {}
        with self._lock:
            entries = [(key, self._counts[key]) for key in self._bins.get((multiplicity, hybridization, shift), ())]
        for key, count in entries:
            per_hybridization = neighbors.setdefault(key.neighbor_type, {})
            per_proton_count = per_hybridization.setdefault(key.neighbor_hybridization, {})
            per_proton_count[key.neighbor_proton_count] = count
        return neighbors

    def to_nested(self) -> dict:
        """multiplicity -> hybridization -> shift -> neighbor type -> neighbor hybridization -> proton count -> count"""
        nested = {}
        for key, count in self.items():
            level = nested
            for part in key[:-1]:
                level = level.setdefault(part, {})
            level[key.neighbor_proton_count] = count
        return nested

    def to_dataframe(self) -> pd.DataFrame:
        rows = [dict(key._asdict(), count=count) for key, count in self.items()]
        columns = list(ConnectivityKey._fields) + ['count']
        return pd.DataFrame(rows, columns=columns)

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame) -> 'ConnectivityStatistics':
        missing = [column for column in list(ConnectivityKey._fields) + ['count'] if column not in df.columns]
        if missing:
            raise ValueError(f"Statistics table is missing columns: {missing}")
        statistics = cls()
        for row in df.itertuples(index=False):
            key = ConnectivityKey(str(row.multiplicity), str(row.hybridization), int(row.shift),
                                  str(row.neighbor_type), str(row.neighbor_hybridization),
                                  int(row.neighbor_proton_count))
            statistics.increment(key, int(row.count))
        return statistics

    def __getstate__(self):
        return {'_counts': dict(self._counts)}

    def __setstate__(self, state):
        self._counts = {}
        self._bins = {}
        self._lock = threading.Lock()
        self.merge(state['_counts'])


def extract_connectivities(statistics: ConnectivityStatistics, multiplicity: str, hybridization: str,
                           shift: int, allowed_elements: Set[str]) -> Dict[str, Dict[str, Dict[int, int]]]:
    """Neighbor subtree of one bin, restricted to the allowed elements; {} if the bin is absent."""
    neighbors = statistics.get_neighbor_counts(multiplicity, hybridization, shift)
    return {neighbor_type: per_hybridization for neighbor_type, per_hybridization in neighbors.items()
            if neighbor_type in allowed_elements}


def convert_to_numeric_hybridization_keys(extracted: Dict[str, Dict[str, Dict[int, int]]]
                                          ) -> Dict[str, Dict[int, Dict[int, int]]]:
    """SP1/SP2/SP3 keys -> 1/2/3; unknown hybridization names are dropped."""
    converted = {}
    for neighbor_type, per_hybridization in extracted.items():
        converted[neighbor_type] = {}
        for hybridization_name, per_proton_count in per_hybridization.items():
            if hybridization_name not in hybridizationConversionMap:
                continue
            numeric = hybridizationConversionMap[hybridization_name]
            target = converted[neighbor_type].setdefault(numeric, {})
            for proton_count, count in per_proton_count.items():
                target[proton_count] = target.get(proton_count, 0) + count
    return converted


def filter_extracted_connectivities(extracted: Dict[str, Dict[int, Dict[int, int]]], threshold: float,
                                    on_atom_type_level: bool,
                                    known_carbon_hybridizations: Set[int]) -> Dict[str, Dict[int, Set[int]]]:
    """
    Keep the neighbor combinations that occur often enough.

    Carbon neighbor hybridizations outside `known_carbon_hybridizations`
    are dropped first. Fractions are taken relative to the total count of
    all remaining entries.

    Parameters
    ----------
    extracted : dict
        neighbor type -> numeric hybridization -> proton count -> count
    threshold : float
        Minimum fraction (inclusive).
    on_atom_type_level : bool
        If True, a neighbor type is kept as a whole (with an empty value)
        when its summed fraction reaches the threshold. Otherwise every
        (hybridization, proton count) combination is tested on its own.
    known_carbon_hybridizations : set of int

    Returns
    -------
    dict
        neighbor type -> hybridization -> proton counts
    """
    remaining = {}
    for neighbor_type, per_hybridization in extracted.items():
        remaining[neighbor_type] = {
            hybridization: dict(per_proton_count)
            for hybridization, per_proton_count in per_hybridization.items()
            if neighbor_type != 'C' or hybridization in known_carbon_hybridizations
        }

    total = sum(count for per_hybridization in remaining.values()
                for per_proton_count in per_hybridization.values()
                for count in per_proton_count.values())
    filtered: Dict[str, Dict[int, Set[int]]] = {}
    if total == 0:
        return filtered

    for neighbor_type, per_hybridization in remaining.items():
        if on_atom_type_level:
            neighbor_total = sum(count for per_proton_count in per_hybridization.values()
                                 for count in per_proton_count.values())
            if neighbor_total / total >= threshold:
                filtered[neighbor_type] = {}
            continue
        for hybridization, per_proton_count in per_hybridization.items():
            for proton_count, count in per_proton_count.items():
                if count / total >= threshold:
                    filtered.setdefault(neighbor_type, {}).setdefault(hybridization, set()).add(proton_count)

    return filtered


def get_connectivities(statistics: ConnectivityStatistics, multiplicity: str, hybridization: str,
                       shift: int, allowed_elements: Set[str], threshold: float, on_atom_type_level: bool,
                       known_carbon_hybridizations: Set[int]) -> Dict[str, Dict[int, Set[int]]]:
    """extract -> numeric keys -> filter, in one call."""
    extracted = extract_connectivities(statistics, multiplicity, hybridization, shift, allowed_elements)
    return filter_extracted_connectivities(convert_to_numeric_hybridization_keys(extracted), threshold,
                                           on_atom_type_level, known_carbon_hybridizations)
