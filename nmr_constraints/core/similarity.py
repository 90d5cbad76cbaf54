"""
Spectrum-to-spectrum comparison: one-to-one shift matching, deviation
statistics and a section-fingerprint Tanimoto coefficient.
"""

from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial import distance

from .spectrum import Assignment, Spectrum


def _check_dimensions(spectrum1: Spectrum, spectrum2: Spectrum, dim1: int, dim2: int) -> bool:
    return spectrum1.contains_dim(dim1) and spectrum2.contains_dim(dim2)


def build_distance_list(spectrum1: Spectrum, spectrum2: Spectrum, dim1: int, dim2: int,
                        shift_tolerance: float, check_multiplicity: bool = True,
                        check_equivalences_count: bool = False,
                        allow_lower_equivalences_count: bool = False) -> List[Tuple[int, int, float]]:
    """
    All signal pairs (i in spectrum1, j in spectrum2, |shift difference|)
    within the tolerance, sorted by increasing difference.
    """
    distances = []
    for i, signal1 in enumerate(spectrum1.signals):
        shift1 = signal1.get_shift(dim1)
        if shift1 is None:
            continue
        for j, signal2 in enumerate(spectrum2.signals):
            shift2 = signal2.get_shift(dim2)
            if shift2 is None:
                continue
            diff = abs(shift1 - shift2)
            if diff > shift_tolerance:
                continue
            if check_multiplicity and signal1.multiplicity != signal2.multiplicity:
                continue
            if check_equivalences_count:
                if allow_lower_equivalences_count:
                    if signal2.equivalences_count > signal1.equivalences_count:
                        continue
                elif signal2.equivalences_count != signal1.equivalences_count:
                    continue
            distances.append((i, j, diff))
    # stable sort keeps (i, j) scan order for equal differences
    distances.sort(key=lambda entry: entry[2])
    return distances


def match_spectra(spectrum1: Spectrum, spectrum2: Spectrum, dim1: int, dim2: int,
                  shift_tolerance: float, check_multiplicity: bool = True,
                  check_equivalences_count: bool = False,
                  allow_lower_equivalences_count: bool = False) -> Optional[Assignment]:
    """
    Greedy closest-first matching of the signals of two spectra.

    Each signal of either spectrum is used at most once. The matched
    spectrum2 index is stored once per equivalent nucleus of that signal.

    Returns
    -------
    Assignment or None
        One dimension, signal index of spectrum1 -> matched signal indices
        of spectrum2. None if a spectrum lacks the selected dimension.
    """
    if not _check_dimensions(spectrum1, spectrum2, dim1, dim2):
        return None

    match_assignment = Assignment(spectrum1.nuclei[dim1:dim1 + 1], spectrum1.signal_count)
    assigned1 = set()
    assigned2 = set()
    for i, j, _ in build_distance_list(spectrum1, spectrum2, dim1, dim2, shift_tolerance,
                                       check_multiplicity, check_equivalences_count,
                                       allow_lower_equivalences_count):
        if i in assigned1 or j in assigned2:
            continue
        for _ in range(spectrum2.get_equivalences_count(j)):
            match_assignment.add_assignment_equivalence(0, i, j)
        assigned1.add(i)
        assigned2.add(j)

    return match_assignment


def get_deviations(spectrum1: Spectrum, spectrum2: Spectrum, dim1: int, dim2: int,
                   assignment: Assignment) -> List[Optional[float]]:
    """Absolute shift deviation per spectrum1 signal, None if unmatched."""
    deviations = []
    for i in range(spectrum1.signal_count):
        matched = assignment.get_assignment(0, i)
        if len(matched) == 0:
            deviations.append(None)
            continue
        deviations.append(abs(spectrum1.get_shift(i, dim1) - spectrum2.get_shift(matched[0], dim2)))
    return deviations


def calculate_average_deviation(deviations: Sequence[Optional[float]]) -> Optional[float]:
    """Mean of the deviations; None if any signal stayed unmatched."""
    if len(deviations) == 0 or any(deviation is None for deviation in deviations):
        return None
    return float(np.mean(deviations))


def calculate_rmsd(deviations: Sequence[Optional[float]]) -> Optional[float]:
    if len(deviations) == 0 or any(deviation is None for deviation in deviations):
        return None
    return float(np.sqrt(np.mean(np.square(deviations))))


class MultiplicitySectionsBuilder:
    """
    Splits a shift range into equally sized sections, one block of
    sections per multiplicity, for spectrum fingerprints.
    """

    def __init__(self, min_limit: float = -20.0, max_limit: float = 260.0, step_size: float = 5.0,
                 multiplicities: Sequence[Optional[str]] = ('s', 'd', 't', 'q', None)):
        if max_limit <= min_limit or step_size <= 0:
            raise ValueError("Invalid section limits")
        self.min_limit = min_limit
        self.max_limit = max_limit
        self.step_size = step_size
        self.multiplicities = list(multiplicities)
        self.steps = int(np.ceil((max_limit - min_limit) / step_size))

    @property
    def size(self) -> int:
        return self.steps * len(self.multiplicities)

    def build_multiplicity_sections(self, spectrum: Spectrum, dim: int) -> Dict[Optional[str], List[int]]:
        """Multiplicity -> section indices occupied by signals in that dimension."""
        sections = {multiplicity: [] for multiplicity in self.multiplicities}
        for signal in spectrum.signals:
            shift = signal.get_shift(dim)
            if shift is None or signal.multiplicity not in sections:
                continue
            if shift < self.min_limit or shift >= self.max_limit:
                continue
            section = int((shift - self.min_limit) / self.step_size)
            if section not in sections[signal.multiplicity]:
                sections[signal.multiplicity].append(section)
        return sections

    def build_fingerprint(self, spectrum: Spectrum, dim: int) -> np.ndarray:
        fingerprint = np.zeros(self.size, dtype=bool)
        for block, (multiplicity, sections) in enumerate(
                self.build_multiplicity_sections(spectrum, dim).items()):
            for section in sections:
                fingerprint[block * self.steps + section] = True
        return fingerprint


def calculate_tanimoto_coefficient(spectrum1: Spectrum, spectrum2: Spectrum, dim1: int, dim2: int,
                                   sections_builder: Optional[MultiplicitySectionsBuilder] = None
                                   ) -> Optional[float]:
    """
    Tanimoto coefficient of the multiplicity-section fingerprints of two
    spectra. None if a dimension is missing or both fingerprints are empty.
    """
    if not _check_dimensions(spectrum1, spectrum2, dim1, dim2):
        return None
    if sections_builder is None:
        sections_builder = MultiplicitySectionsBuilder()
    fingerprint1 = sections_builder.build_fingerprint(spectrum1, dim1)
    fingerprint2 = sections_builder.build_fingerprint(spectrum2, dim2)
    if not fingerprint1.any() and not fingerprint2.any():
        return None
    return 1.0 - float(distance.jaccard(fingerprint1, fingerprint2))
