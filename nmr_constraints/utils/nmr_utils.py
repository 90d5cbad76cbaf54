"""
nmr_constraints Utility Functions

Small helpers shared by the spectrum model, the statistics engine and
the solver input writer:
- Nucleus / atom type conversion
- Multiplicity labels from attached proton counts
- Molecular formula parsing
- Rounding and median helpers
- Possibility groups as written to the solver input
"""

import re
from typing import Dict, Iterable, List, Optional

import numpy as np

from ..constants import multiplicityMap, nucleusMap

_formula_pattern = re.compile(r'([A-Z][a-z]?)(\d*)')
_nucleus_pattern = re.compile(r'^\d+([A-Z][a-z]?)$')


def get_atom_type_from_nucleus(nucleus: str) -> Optional[str]:
    """
    Strip the mass number of an isotope label.

    Examples: '13C' -> 'C', '1H' -> 'H'. Returns None for labels that
    are not of the form <mass number><element>.
    """
    if nucleus is None:
        return None
    match = _nucleus_pattern.match(nucleus.strip())
    if match is None:
        return None
    return match.group(1)


def get_nucleus_from_atom_type(atom_type: str) -> Optional[str]:
    return nucleusMap.get(atom_type)


def get_multiplicity_from_protons_count(protons_count: int) -> Optional[str]:
    """Return s/d/t/q for 0-3 attached protons, None otherwise."""
    return multiplicityMap.get(protons_count)


def get_molecular_formula_element_counts(mf: str) -> Dict[str, int]:
    """
    Parse a molecular formula into element counts, keeping the order of
    appearance. Carbon and hydrogen are moved to the front (Hill order).

    Raises
    ------
    ValueError
        If the formula is empty or contains anything but element symbols
        and counts.
    """
    if mf is None or not mf.strip():
        raise ValueError("Molecular formula is empty")
    mf = mf.replace(' ', '')
    if ''.join(m.group(0) for m in _formula_pattern.finditer(mf)) != mf:
        raise ValueError(f"Invalid molecular formula: {mf}")

    counts: Dict[str, int] = {}
    for element, count in _formula_pattern.findall(mf):
        counts[element] = counts.get(element, 0) + (int(count) if count else 1)

    ordered = {}
    for element in ('C', 'H'):
        if element in counts:
            ordered[element] = counts[element]
    for element, count in counts.items():
        if element not in ordered:
            ordered[element] = count
    return ordered


def round_double(value: float, decimals: int) -> float:
    return round(float(value), decimals)


def get_median(values: List[float]) -> Optional[float]:
    if len(values) == 0:
        return None
    return float(np.median(values))


def format_shift(value: Optional[float], decimals: int) -> str:
    """Rounded shift as text, '?' when unknown."""
    if value is None:
        return '?'
    return str(round_double(value, decimals))


def build_possibilities_string(possibilities: Iterable[int]) -> str:
    """'(1 2 3)' for several values, '1' for a single one."""
    values = [str(possibility) for possibility in possibilities]
    if len(values) > 1:
        return '(' + ' '.join(values) + ')'
    return ''.join(values)
