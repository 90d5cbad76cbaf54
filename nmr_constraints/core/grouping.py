"""
Greedy equivalence grouping of correlations by shift proximity.

A correlation joins the first group of its atom type that holds *any*
member within the atom type's tolerance. Groups may therefore chain:
two members can be further apart than the tolerance as long as a path of
pairwise matches connects them.
"""

import logging
from typing import Dict, List, Set

from .correlation import Correlation, Grouping

logger = logging.getLogger(__name__)


def has_match(correlation1: Correlation, correlation2: Correlation, tolerance: float) -> bool:
    """Whether the own-atom-type shifts of both correlations lie within `tolerance`."""
    shift1 = correlation1.get_shift()
    shift2 = correlation2.get_shift()
    if shift1 is None or shift2 is None:
        return False
    return abs(shift1 - shift2) <= tolerance


def find_groups(correlations: List[Correlation], tolerances: Dict[str, float]) -> Dict[str, Dict[int, Set[int]]]:
    """
    Single left-to-right pass; pseudo correlations are not grouped.

    Returns
    -------
    dict
        atom type -> group id -> correlation indices. Group ids increase
        over all atom types in order of creation.
    """
    groups: Dict[str, Dict[int, Set[int]]] = {}
    group_id = 0
    for i, correlation in enumerate(correlations):
        if correlation.pseudo:
            continue
        atom_type_groups = groups.setdefault(correlation.atom_type, {})
        tolerance = tolerances.get(correlation.atom_type, 0.0)

        found_group_id = -1
        for existing_group_id, members in atom_type_groups.items():
            if any(has_match(correlation, correlations[member], tolerance) for member in members):
                found_group_id = existing_group_id
                break

        if found_group_id != -1:
            atom_type_groups[found_group_id].add(i)
        else:
            atom_type_groups[group_id] = {i}
            group_id += 1

    logger.debug(f"Built {group_id} equivalence groups from {len(correlations)} correlations")
    return groups


def transform_groups(groups: Dict[str, Dict[int, Set[int]]]) -> Dict[str, Dict[int, int]]:
    """Inverse mapping: atom type -> correlation index -> group id."""
    transformed = {}
    for atom_type, atom_type_groups in groups.items():
        transformed[atom_type] = {}
        for group_id, members in atom_type_groups.items():
            for correlation_index in members:
                transformed[atom_type][correlation_index] = group_id
    return transformed


def build_groups(correlations: List[Correlation], tolerances: Dict[str, float]) -> Grouping:
    groups = find_groups(correlations, tolerances)
    return Grouping(tolerances=dict(tolerances), groups=groups, transformed_groups=transform_groups(groups))
