"""
Turn connectivity statistics into per-correlation constraints.

- Forbidden neighbors: (type, hybridization, proton count) triples never
  (or too rarely) seen next to a carbon with the observed shift.
- Set neighbors: neighbor types seen often enough that at least one of
  them has to be attached.
- Default narrowing of hetero atoms: candidate hybridizations and proton
  counts restricted to what was seen next to the carbons.
- Fixed neighbors: direct bonds proven by INADEQUATE correlations.
"""

import logging
from typing import Dict, List, Optional, Set

from ..constants import (
    defaultHybridizationMap,
    defaultProtonsCountPerValencyMap,
    lower_element_count_threshold,
    upper_element_count_threshold,
)
from ..core.correlation import Correlation, Detections, Fragment
from ..utils.nmr_utils import get_multiplicity_from_protons_count
from .connectivity_statistics import (
    ConnectivityStatistics,
    convert_to_numeric_hybridization_keys,
    extract_connectivities,
    filter_extracted_connectivities,
)

logger = logging.getLogger(__name__)

_hybridization_names = {1: 'SP1', 2: 'SP2', 3: 'SP3'}


def build_forbidden_neighbors(connectivities: Dict[str, Dict[int, Set[int]]],
                              possible_neighbor_types: Set[str]) -> Dict[str, Dict[int, Set[int]]]:
    """
    Minimal set of neighbor triples to exclude.

    Parameters
    ----------
    connectivities : dict
        Observed neighbor type -> hybridization -> proton counts. A type
        mapped to an empty dict was retained on atom type level and is
        unrestricted.
    possible_neighbor_types : set of str
        Elements of the molecular formula.

    Returns
    -------
    dict
        neighbor type -> hybridization -> forbidden proton counts. A type
        mapped to an empty dict is forbidden as a whole.
    """
    forbidden_neighbors = {}
    for neighbor_type in sorted(possible_neighbor_types):
        if neighbor_type == 'H':
            continue
        if neighbor_type not in connectivities:
            forbidden_neighbors[neighbor_type] = {}
            continue
        observed = connectivities[neighbor_type]
        if len(observed) == 0:
            continue
        forbidden = {hybridization: set(defaultProtonsCountPerValencyMap.get(neighbor_type, []))
                     for hybridization in defaultHybridizationMap.get(neighbor_type, [])}
        for hybridization, proton_counts in observed.items():
            if hybridization not in forbidden:
                continue
            forbidden[hybridization] -= set(proton_counts)
            if len(forbidden[hybridization]) == 0:
                del forbidden[hybridization]
        if len(forbidden) > 0:
            forbidden_neighbors[neighbor_type] = forbidden

    return forbidden_neighbors


def _is_carbon_or_proton(correlations: List[Correlation], correlation_index: int) -> bool:
    return correlations[correlation_index].atom_type in ('C', 'H')


def build_allowed_neighbor_hybridizations(correlations: List[Correlation],
                                          detected_connectivities: Dict[int, Dict[str, Dict[int, Set[int]]]]
                                          ) -> Dict[str, Set[int]]:
    """Union of neighbor hybridizations seen next to carbons and protons, per neighbor type."""
    allowed = {}
    for correlation_index, connectivities in detected_connectivities.items():
        if not _is_carbon_or_proton(correlations, correlation_index):
            continue
        for neighbor_type, per_hybridization in connectivities.items():
            allowed.setdefault(neighbor_type, set()).update(per_hybridization.keys())
    return allowed


def build_allowed_neighbor_proton_counts(correlations: List[Correlation],
                                         detected_connectivities: Dict[int, Dict[str, Dict[int, Set[int]]]]
                                         ) -> Dict[str, Set[int]]:
    """Union of neighbor proton counts seen next to carbons and protons, per neighbor type."""
    allowed = {}
    for correlation_index, connectivities in detected_connectivities.items():
        if not _is_carbon_or_proton(correlations, correlation_index):
            continue
        for neighbor_type, per_hybridization in connectivities.items():
            proton_counts = allowed.setdefault(neighbor_type, set())
            for hybridization_proton_counts in per_hybridization.values():
                proton_counts.update(hybridization_proton_counts)
    return allowed


def reduce_default_hybridizations_and_proton_counts(
        correlations: List[Correlation],
        detected_connectivities: Dict[int, Dict[str, Dict[int, Set[int]]]],
        detected_hybridizations: Dict[int, List[int]]):
    """
    Fill or narrow the candidate sets of hetero atom correlations in place.

    Empty candidate sets get the hybridizations / proton counts seen next
    to carbons (or the element defaults if the element was never seen).
    Non-empty sets are narrowed only if the matching `edited` flag exists
    and is False; user edits are left alone. The resulting hybridizations
    are recorded in `detected_hybridizations`.
    """
    allowed_hybridizations = build_allowed_neighbor_hybridizations(correlations, detected_connectivities)
    allowed_proton_counts = build_allowed_neighbor_proton_counts(correlations, detected_connectivities)

    for i, correlation in enumerate(correlations):
        atom_type = correlation.atom_type
        if atom_type in ('C', 'H'):
            continue
        hybridizations_to_add = allowed_hybridizations.get(atom_type)
        if hybridizations_to_add is None:
            hybridizations_to_add = set(defaultHybridizationMap.get(atom_type, []))
        proton_counts_to_add = allowed_proton_counts.get(atom_type)
        if proton_counts_to_add is None:
            proton_counts_to_add = set(defaultProtonsCountPerValencyMap.get(atom_type, []))

        if len(correlation.hybridization) == 0:
            correlation.hybridization.update(hybridizations_to_add)
        elif correlation.edited.get('hybridization') is False and atom_type in allowed_hybridizations:
            correlation.hybridization.intersection_update(hybridizations_to_add)

        if len(correlation.proton_counts) == 0:
            correlation.proton_counts.update(proton_counts_to_add)
        elif correlation.edited.get('protonsCount') is False:
            correlation.proton_counts.intersection_update(proton_counts_to_add)

        detected_hybridizations.setdefault(i, [])
        for hybridization in sorted(correlation.hybridization):
            if hybridization not in detected_hybridizations[i]:
                detected_hybridizations[i].append(hybridization)


def build_fixed_neighbors_by_inadequate(correlations: List[Correlation]) -> Dict[int, Set[int]]:
    """
    Bonds proven by INADEQUATE links between correlations without
    equivalences. Each unordered pair is stored once, under the index
    that was seen first.
    """
    fixed_neighbors = {}
    seen = set()
    for i, correlation in enumerate(correlations):
        if correlation.equivalence != 1:
            continue
        for match_index in correlation.get_matches('inadequate'):
            if not 0 <= match_index < len(correlations) or match_index == i:
                continue
            if (i, match_index) in seen or correlations[match_index].equivalence != 1:
                continue
            fixed_neighbors.setdefault(i, set()).add(match_index)
            seen.add((i, match_index))
            seen.add((match_index, i))
    return fixed_neighbors


def _merge_extracted(target: dict, extracted: dict):
    for neighbor_type, per_hybridization in extracted.items():
        target_type = target.setdefault(neighbor_type, {})
        for hybridization, per_proton_count in per_hybridization.items():
            target_hybridization = target_type.setdefault(hybridization, {})
            for proton_count, count in per_proton_count.items():
                target_hybridization[proton_count] = target_hybridization.get(proton_count, 0) + count


def get_known_carbon_hybridizations(correlations: List[Correlation]) -> Set[int]:
    """Hybridizations any carbon correlation may have; all defaults if none is set."""
    known = set()
    for correlation in correlations:
        if correlation.atom_type == 'C' and not correlation.pseudo:
            known.update(correlation.hybridization)
    if len(known) == 0:
        known = set(defaultHybridizationMap['C'])
    return known


def extract_correlation_connectivities(correlation: Correlation, statistics: ConnectivityStatistics,
                                       allowed_elements: Set[str], shift_tolerance: float = 0.0
                                       ) -> Optional[Dict[str, Dict[int, Dict[int, int]]]]:
    """
    Summed neighbor counts over every multiplicity, hybridization and
    shift bin the carbon correlation may fall into. None if it has no shift.
    """
    shift = correlation.get_shift()
    if shift is None:
        return None
    proton_counts = correlation.proton_counts or set(defaultProtonsCountPerValencyMap['C'])
    hybridizations = correlation.hybridization or set(defaultHybridizationMap['C'])
    shift_bins = range(int(shift - shift_tolerance), int(shift + shift_tolerance) + 1)

    merged = {}
    for proton_count in sorted(proton_counts):
        multiplicity = get_multiplicity_from_protons_count(proton_count)
        if multiplicity is None:
            continue
        for hybridization in sorted(hybridizations):
            hybridization_name = _hybridization_names.get(hybridization)
            if hybridization_name is None:
                continue
            for shift_bin in shift_bins:
                extracted = extract_connectivities(statistics, multiplicity, hybridization_name,
                                                   shift_bin, allowed_elements)
                _merge_extracted(merged, convert_to_numeric_hybridization_keys(extracted))
    return merged


def detect_connectivities(correlations: List[Correlation], statistics: ConnectivityStatistics,
                          element_counts: Dict[str, int],
                          lower_threshold: float = lower_element_count_threshold,
                          upper_threshold: float = upper_element_count_threshold,
                          shift_tolerance: float = 0.0,
                          fragments: Optional[List[Fragment]] = None) -> Detections:
    """
    Run the statistics against every carbon correlation of a query.

    Parameters
    ----------
    correlations : list of Correlation
        Query correlations. Hetero atom candidate sets are narrowed in place.
    statistics : ConnectivityStatistics
    element_counts : dict
        Element counts of the molecular formula; restrict the neighbor types.
    lower_threshold : float
        Neighbor combinations below this fraction become forbidden.
    upper_threshold : float
        Neighbor types at or above this fraction become set neighbors.
    shift_tolerance : float
        Additional shift bins to pool on both sides of the observed shift.
    fragments : list of Fragment, optional
        Fragment hypotheses passed through to the detections.

    Returns
    -------
    Detections
    """
    allowed_elements = set(element_counts.keys())
    known_carbon_hybridizations = get_known_carbon_hybridizations(correlations)
    detections = Detections(fragments=list(fragments or []))

    for i, correlation in enumerate(correlations):
        if correlation.atom_type != 'C' or correlation.pseudo:
            continue
        extracted = extract_correlation_connectivities(correlation, statistics, allowed_elements,
                                                       shift_tolerance)
        if not extracted:
            logger.debug(f"No connectivity statistics for correlation {i}")
            continue

        connectivities = filter_extracted_connectivities(extracted, lower_threshold, False,
                                                         known_carbon_hybridizations)
        detections.detected_connectivities[i] = connectivities
        forbidden = build_forbidden_neighbors(connectivities, allowed_elements)
        if forbidden:
            detections.forbidden_neighbors[i] = forbidden
        set_neighbors = filter_extracted_connectivities(extracted, upper_threshold, True,
                                                        known_carbon_hybridizations)
        if set_neighbors:
            detections.set_neighbors[i] = set_neighbors

    reduce_default_hybridizations_and_proton_counts(correlations, detections.detected_connectivities,
                                                    detections.detected_hybridizations)
    detections.fixed_neighbors = build_fixed_neighbors_by_inadequate(correlations)

    logger.info(f"Detected connectivities for {len(detections.detected_connectivities)} correlations, "
                f"forbidden neighbors for {len(detections.forbidden_neighbors)}, "
                f"set neighbors for {len(detections.set_neighbors)}")
    return detections
