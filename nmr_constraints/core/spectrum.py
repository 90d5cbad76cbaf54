"""
spectrum.py

Signal, Spectrum and Assignment containers for one- and multi-dimensional
NMR data.

1. **Signal**: one resolved peak position, one shift per dimension, with
   multiplicity, equivalence count, phase and kind.

2. **Spectrum**: an ordered list of signals sharing one nucleus vector.
   The nucleus vector fixes the dimensionality and never changes after
   creation. Adding a signal can search for an already present
   equivalent signal and merge into it instead of appending.

3. **Assignment**: per dimension, the structure atom indices realizing
   each signal. Equivalent atoms are appended to the same signal index.

Validation failures (unknown dimension, index out of range, different
nuclei) never raise here: the methods return None, False, -1 or an empty
list and the caller decides what to do.
"""

from dataclasses import dataclass, field
from typing import List, Dict, Optional, Sequence, Tuple
import copy


@dataclass
class Signal:
    """One peak position; identity is its position in the owning Spectrum."""

    nuclei: Tuple[str, ...]
    shifts: List[Optional[float]]
    multiplicity: Optional[str] = None
    equivalences_count: int = 1
    phase: Optional[int] = None
    kind: str = 'signal'

    def __post_init__(self):
        self.nuclei = tuple(self.nuclei)
        self.shifts = list(self.shifts)

    @property
    def n_dim(self) -> int:
        return len(self.nuclei)

    def contains_dim(self, dim: int) -> bool:
        return 0 <= dim < self.n_dim

    def get_shift(self, dim: int) -> Optional[float]:
        if not self.contains_dim(dim) or dim >= len(self.shifts):
            return None
        return self.shifts[dim]

    def set_shift(self, shift: float, dim: int) -> bool:
        if not self.contains_dim(dim):
            return False
        self.shifts[dim] = shift
        return True

    def build_clone(self) -> 'Signal':
        return copy.deepcopy(self)


@dataclass
class Spectrum:
    """Insertion-ordered signals that all share this spectrum's nuclei."""

    nuclei: Tuple[str, ...]
    signals: List[Signal] = field(default_factory=list)
    meta: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        if len(self.nuclei) == 0:
            raise ValueError("A spectrum needs at least one nucleus")
        self.nuclei = tuple(self.nuclei)

    @property
    def n_dim(self) -> int:
        return len(self.nuclei)

    @property
    def signal_count(self) -> int:
        return len(self.signals)

    def contains_dim(self, dim: int) -> bool:
        return 0 <= dim < self.n_dim

    def compare_nuclei(self, nuclei: Sequence[str]) -> bool:
        return self.nuclei == tuple(nuclei)

    def add_meta_info(self, key: str, value: str):
        self.meta[key] = value

    def remove_meta_info(self, key: str):
        self.meta.pop(key, None)

    def get_signal_count_with_equivalences(self) -> int:
        return sum(signal.equivalences_count for signal in self.signals)

    def _check_signal_index(self, signal_index: Optional[int]) -> bool:
        return signal_index is not None and 0 <= signal_index < self.signal_count

    def add_signal_without_equivalence_search(self, signal: Signal) -> bool:
        """Append a signal at the end of the signal list."""
        if signal is None or not self.compare_nuclei(signal.nuclei):
            return False
        self.signals.append(signal)
        return True

    def check_for_equivalences(self, signal: Signal, pick_precisions: Sequence[float],
                               check_multiplicity: bool) -> Optional[List[int]]:
        """
        Indices of signals equivalent to the given one in every dimension.

        Per dimension the closest signals within the pick precision are
        taken; the result is their intersection over all dimensions,
        optionally restricted to the same multiplicity. Returns None if the
        signal has no shift in the first dimension.
        """
        if signal.get_shift(0) is None or len(pick_precisions) < self.n_dim:
            return None
        closest = self.pick_by_closest_shift(signal.get_shift(0), 0, pick_precisions[0])
        for dim in range(1, self.n_dim):
            shift = signal.get_shift(dim)
            if shift is None:
                return []
            in_dim = set(self.pick_by_closest_shift(shift, dim, pick_precisions[dim]))
            closest = [index for index in closest if index in in_dim]
        if check_multiplicity:
            same_multiplicity = set(self.pick_by_multiplicity(signal.multiplicity))
            closest = [index for index in closest if index in same_multiplicity]

        return closest

    def add_signal(self, signal: Signal, pick_precisions: Optional[Sequence[float]] = None,
                   check_multiplicity: bool = True) -> Optional[int]:
        """
        Add a signal, merging it into an equivalent signal if one exists.

        Parameters
        ----------
        signal : Signal
            Signal to add; its nuclei must equal the spectrum's nuclei.
        pick_precisions : sequence of float, optional
            Tolerance per dimension for the equivalence search.
            Default: 0.0 in every dimension (exact shift match).
        check_multiplicity : bool
            Whether an equivalent signal must also have the same multiplicity.

        Returns
        -------
        int or None
            Index of the appended signal, or of the existing signal the
            equivalences were merged into. None if the signal does not fit
            this spectrum.
        """
        if signal is None or not self.compare_nuclei(signal.nuclei):
            return None
        if pick_precisions is None:
            pick_precisions = [0.0] * self.n_dim

        equivalent_indices = self.check_for_equivalences(signal, pick_precisions, check_multiplicity)
        if equivalent_indices is None:
            return None
        if len(equivalent_indices) == 0:
            self.add_signal_without_equivalence_search(signal)
            return self.signal_count - 1

        # store as equivalence in first hit only
        closest_signal = self.signals[equivalent_indices[0]]
        closest_signal.equivalences_count += signal.equivalences_count
        return equivalent_indices[0]

    def remove_signal(self, signal_index: int) -> bool:
        if not self._check_signal_index(signal_index):
            return False
        del self.signals[signal_index]
        return True

    def get_signal(self, signal_index: int) -> Optional[Signal]:
        if not self._check_signal_index(signal_index):
            return None
        return self.signals[signal_index]

    def set_signal(self, signal_index: int, signal: Signal) -> bool:
        if not self._check_signal_index(signal_index) or signal is None \
                or not self.compare_nuclei(signal.nuclei):
            return False
        self.signals[signal_index] = signal
        return True

    def get_signal_index(self, signal: Signal) -> int:
        """Position of this exact signal object, -1 if not contained."""
        for index, contained in enumerate(self.signals):
            if contained is signal:
                return index
        return -1

    def get_shift(self, signal_index: int, dim: int) -> Optional[float]:
        if not self._check_signal_index(signal_index):
            return None
        return self.signals[signal_index].get_shift(dim)

    def get_shifts(self, dim: int) -> List[Optional[float]]:
        return [signal.get_shift(dim) for signal in self.signals]

    def get_multiplicity(self, signal_index: int) -> Optional[str]:
        if not self._check_signal_index(signal_index):
            return None
        return self.signals[signal_index].multiplicity

    def get_equivalences_count(self, signal_index: int) -> Optional[int]:
        if not self._check_signal_index(signal_index):
            return None
        return self.signals[signal_index].equivalences_count

    def get_equivalences_counts(self) -> List[int]:
        return [signal.equivalences_count for signal in self.signals]

    def has_equivalences(self, signal_index: int) -> Optional[bool]:
        count = self.get_equivalences_count(signal_index)
        if count is None:
            return None
        return count > 1

    def pick_by_multiplicity(self, multiplicity: Optional[str]) -> List[int]:
        """Indices of signals with the same multiplicity (None matches None)."""
        return [index for index, signal in enumerate(self.signals)
                if signal.multiplicity == multiplicity]

    def pick_by_closest_shift(self, shift: float, dim: int, pick_precision: float) -> List[int]:
        """
        Indices of the signals closest to the query shift within the pick
        precision. Several indices are returned only on exact ties; an
        empty list if nothing lies within the window.
        """
        if not self.contains_dim(dim) or shift is None:
            return []
        diffs = {}
        for index, signal in enumerate(self.signals):
            signal_shift = signal.get_shift(dim)
            if signal_shift is None:
                continue
            diff = abs(signal_shift - shift)
            if diff <= pick_precision:
                diffs[index] = diff
        if len(diffs) == 0:
            return []
        min_diff = min(diffs.values())
        return [index for index, diff in diffs.items() if diff == min_diff]

    def pick_signals(self, shift: float, dim: int, pick_precision: float) -> List[int]:
        """Indices of all signals within the window, sorted by distance."""
        if not self.contains_dim(dim) or shift is None:
            return []
        picked = [index for index, signal in enumerate(self.signals)
                  if signal.get_shift(dim) is not None
                  and abs(signal.get_shift(dim) - shift) <= pick_precision]
        picked.sort(key=lambda index: abs(shift - self.signals[index].get_shift(dim)))
        return picked

    def build_clone(self) -> 'Spectrum':
        """Independent deep copy; equal to this spectrum until one of them changes."""
        clone = Spectrum(nuclei=tuple(self.nuclei), signals=[], meta=dict(self.meta))
        for signal in self.signals:
            clone.add_signal_without_equivalence_search(signal.build_clone())
        return clone


class Assignment:
    """Signal index -> structure atom indices, per dimension."""

    def __init__(self, nuclei: Sequence[str], signal_count: int = 0):
        self.nuclei = tuple(nuclei)
        self.assignments: List[List[List[int]]] = [[[] for _ in range(signal_count)]
                                                   for _ in self.nuclei]

    @property
    def n_dim(self) -> int:
        return len(self.nuclei)

    def contains_dim(self, dim: int) -> bool:
        return 0 <= dim < self.n_dim

    def get_set_assignments_count(self, dim: int) -> int:
        if not self.contains_dim(dim):
            return 0
        return sum(1 for atoms in self.assignments[dim] if len(atoms) > 0)

    def get_signal_count(self) -> int:
        return len(self.assignments[0]) if self.n_dim > 0 else 0

    def add_assignment(self, dim: int, atom_indices: Sequence[int]) -> bool:
        """Append a new signal slot holding the given atom indices."""
        if not self.contains_dim(dim):
            return False
        for atom_index in atom_indices:
            if self.get_indices(dim, atom_index):
                return False
        self.assignments[dim].append(list(atom_indices))
        return True

    def add_assignment_equivalence(self, dim: int, signal_index: int, atom_index: int) -> bool:
        """
        Append an equivalent atom to an existing signal slot. An atom index
        already assigned to another signal in that dimension is refused.
        """
        if not self.contains_dim(dim):
            return False
        while signal_index >= len(self.assignments[dim]):
            self.assignments[dim].append([])
        if signal_index < 0:
            return False
        assigned_to = self.get_indices(dim, atom_index)
        if assigned_to and assigned_to != [signal_index]:
            return False
        self.assignments[dim][signal_index].append(atom_index)
        return True

    def get_assignment(self, dim: int, signal_index: int) -> List[int]:
        if not self.contains_dim(dim) or not 0 <= signal_index < len(self.assignments[dim]):
            return []
        return list(self.assignments[dim][signal_index])

    def get_indices(self, dim: int, atom_index: int) -> List[int]:
        """Signal indices the atom is assigned to (at most one)."""
        if not self.contains_dim(dim):
            return []
        return [signal_index for signal_index, atoms in enumerate(self.assignments[dim])
                if atom_index in atoms]

    def set_assignments(self, dim: int, assignments: List[List[int]]) -> bool:
        if not self.contains_dim(dim):
            return False
        self.assignments[dim] = [list(atoms) for atoms in assignments]
        return True

    def build_clone(self) -> 'Assignment':
        clone = Assignment(self.nuclei)
        clone.assignments = copy.deepcopy(self.assignments)
        return clone

    def __repr__(self):
        return f"Assignment(nuclei={self.nuclei}, assignments={self.assignments})"
