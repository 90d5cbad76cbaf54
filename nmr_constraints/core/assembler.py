"""
assembler.py

Projects correlations into solver index space.

Solver indices are dense and 1-based: heavy atoms first, one index per
equivalent atom, in correlation order; proton indices follow, one per
heavy atom carrying an HSQC partner. All proton correlations linked to
the same heavy atom share its proton index.

When the molecular formula leaves protons to be distributed over hetero
atoms with undecided proton counts, every valid distribution becomes one
variant with its own molecular connectivity map.
"""

import itertools
import logging
from typing import Dict, List, Optional

from ..constants import (
    DEFAULT_BOND_DISTANCES,
    defaultHybridizationMap,
    defaultProtonsCountPerValencyMap,
    maxCombinations,
)
from .correlation import Correlation, Detections, Grouping, MolecularConnectivity

logger = logging.getLogger(__name__)

MolecularConnectivityMap = Dict[int, List[MolecularConnectivity]]


def _get_partners(correlations: List[Correlation], correlation_index: int, experiment_type: str,
                  partner_atom_type: Optional[str] = None, exclude: bool = False) -> List[int]:
    """
    Correlation indices linked to `correlation_index` by the experiment,
    from either side of the link, optionally filtered by atom type.
    """
    partners = list(correlations[correlation_index].get_matches(experiment_type))
    for j, other in enumerate(correlations):
        if j != correlation_index and j not in partners and correlation_index in other.get_matches(experiment_type):
            partners.append(j)
    valid = []
    for j in partners:
        if not 0 <= j < len(correlations) or j == correlation_index:
            continue
        if partner_atom_type is not None:
            is_type = correlations[j].atom_type == partner_atom_type
            if is_type == exclude:
                continue
        valid.append(j)
    return valid


def _get_path_length(correlations: List[Correlation], i: int, j: int, experiment_type: str,
                     default_bond_distances: Dict[str, List[int]]) -> List[int]:
    for a, b in ((i, j), (j, i)):
        for link in correlations[a].get_links(experiment_type):
            if b in link.match and link.path_length is not None:
                return [int(link.path_length[0]), int(link.path_length[1])]
    return list(default_bond_distances.get(experiment_type, DEFAULT_BOND_DISTANCES[experiment_type]))


def build_indices_map(correlations: List[Correlation]) -> Dict[int, List[int]]:
    """
    Correlation index -> solver indices.

    Proton correlations without an HSQC partner get an empty list.
    """
    indices_map: Dict[int, List[int]] = {}
    next_index = 1
    for i, correlation in enumerate(correlations):
        if correlation.atom_type == 'H':
            continue
        indices_map[i] = list(range(next_index, next_index + max(correlation.equivalence, 1)))
        next_index += max(correlation.equivalence, 1)

    for i, correlation in enumerate(correlations):
        if correlation.atom_type == 'H':
            indices_map[i] = []

    for i, correlation in enumerate(correlations):
        if correlation.atom_type == 'H':
            continue
        proton_partners = _get_partners(correlations, i, 'hsqc', 'H')
        if len(proton_partners) == 0:
            continue
        for _ in indices_map[i]:
            for j in proton_partners:
                indices_map[j].append(next_index)
            next_index += 1

    return indices_map


def _build_proton_allocation(correlations: List[Correlation], indices_map: Dict[int, List[int]]
                             ) -> Dict[int, int]:
    """Heavy solver index -> its proton index, in the allocation order of `build_indices_map`."""
    allocation = {}
    heavy_count = sum(len(indices) for i, indices in indices_map.items() if correlations[i].atom_type != 'H')
    next_index = heavy_count + 1
    for i, correlation in enumerate(correlations):
        if correlation.atom_type == 'H':
            continue
        if len(_get_partners(correlations, i, 'hsqc', 'H')) == 0:
            continue
        for heavy_index in indices_map[i]:
            allocation[heavy_index] = next_index
            next_index += 1
    return allocation


def _get_group_member_indices(correlation: Correlation, correlation_index: int, grouping: Optional[Grouping],
                              indices_map: Dict[int, List[int]]) -> List[int]:
    if grouping is None or correlation.pseudo:
        members = {correlation_index}
    else:
        members = grouping.get_group_members(correlation.atom_type, correlation_index)
    group_member_indices = []
    for member in sorted(members):
        for index in indices_map.get(member, []):
            if index not in group_member_indices:
                group_member_indices.append(index)
    return group_member_indices


def build_molecular_connectivity_map(correlations: List[Correlation], detections: Optional[Detections],
                                     grouping: Optional[Grouping],
                                     default_bond_distances: Optional[Dict[str, List[int]]] = None,
                                     indices_map: Optional[Dict[int, List[int]]] = None,
                                     proton_count_overrides: Optional[Dict[int, int]] = None
                                     ) -> MolecularConnectivityMap:
    """
    Build one molecular connectivity per solver index.

    Parameters
    ----------
    correlations : list of Correlation
    detections : Detections, optional
        Forbidden / set neighbors and fixed (INADEQUATE) neighbors.
    grouping : Grouping, optional
        Equivalence groups; without it every correlation is its own group.
    default_bond_distances : dict, optional
        Experiment type -> [min, max] bond distance for links without a
        path length.
    indices_map : dict, optional
        Precomputed result of `build_indices_map`.
    proton_count_overrides : dict, optional
        Correlation index -> fixed proton count (one hetero atom variant).

    Returns
    -------
    dict
        Correlation index -> molecular connectivities, in solver index order.
    """
    if default_bond_distances is None:
        default_bond_distances = DEFAULT_BOND_DISTANCES
    if indices_map is None:
        indices_map = build_indices_map(correlations)
    if detections is None:
        detections = Detections()
    proton_count_overrides = proton_count_overrides or {}
    proton_allocation = _build_proton_allocation(correlations, indices_map)

    molecular_connectivity_map: MolecularConnectivityMap = {}
    for i, correlation in enumerate(correlations):
        if len(indices_map.get(i, [])) == 0:
            continue
        group_members = _get_group_member_indices(correlation, i, grouping, indices_map)
        molecular_connectivity_map[i] = []

        if correlation.atom_type == 'H':
            cosy = {}
            for j in _get_partners(correlations, i, 'cosy', 'H'):
                for partner_index in indices_map.get(j, []):
                    cosy[partner_index] = _get_path_length(correlations, i, j, 'cosy', default_bond_distances)
            for index in indices_map[i]:
                molecular_connectivity_map[i].append(MolecularConnectivity(
                    index=index,
                    atom_type='H',
                    correlation_index=i,
                    signal=correlation.signal,
                    equivalence=correlation.equivalence,
                    pseudo=correlation.pseudo,
                    cosy=dict(cosy) if cosy else None,
                    group_members=list(group_members),
                ))
            continue

        if i in proton_count_overrides:
            proton_counts = [proton_count_overrides[i]]
        elif correlation.proton_counts:
            proton_counts = sorted(correlation.proton_counts)
        else:
            proton_counts = list(defaultProtonsCountPerValencyMap.get(correlation.atom_type, []))
        if correlation.hybridization:
            hybridizations = sorted(correlation.hybridization)
        else:
            hybridizations = list(defaultHybridizationMap.get(correlation.atom_type, []))

        hmbc = {}
        for j in _get_partners(correlations, i, 'hmbc', 'H'):
            for proton_index in indices_map.get(j, []):
                hmbc[proton_index] = _get_path_length(correlations, i, j, 'hmbc', default_bond_distances)

        fixed_neighbors = []
        for j in sorted(detections.fixed_neighbors.get(i, set())):
            for neighbor_index in indices_map.get(j, [])[:1]:
                fixed_neighbors.append(neighbor_index)

        for index in indices_map[i]:
            molecular_connectivity_map[i].append(MolecularConnectivity(
                index=index,
                atom_type=correlation.atom_type,
                correlation_index=i,
                hybridizations=list(hybridizations),
                proton_counts=list(proton_counts),
                signal=correlation.signal,
                equivalence=correlation.equivalence,
                pseudo=correlation.pseudo,
                hsqc=[proton_allocation[index]] if index in proton_allocation else None,
                hmbc=dict(hmbc) if hmbc else None,
                fixed_neighbors=list(fixed_neighbors) if fixed_neighbors else None,
                group_members=list(group_members),
                forbidden_neighbors=detections.forbidden_neighbors.get(i),
                set_neighbors=detections.set_neighbors.get(i),
            ))

    return molecular_connectivity_map


def build_hetero_atom_combinations(correlations: List[Correlation], element_counts: Dict[str, int],
                                   indices_map: Optional[Dict[int, List[int]]] = None) -> List[Dict[int, int]]:
    """
    Distributions of the formula's remaining protons over hetero atoms
    with more than one candidate proton count.

    Only enumerated if every other heavy atom has exactly one candidate
    proton count. Each returned dict maps a hetero correlation index to
    its proton count; a single empty dict means "one variant, no
    overrides".
    """
    if indices_map is None:
        indices_map = build_indices_map(correlations)
    total_protons = element_counts.get('H', 0)
    fixed_protons = 0
    ambiguous = []
    for i, correlation in enumerate(correlations):
        if correlation.atom_type == 'H' or len(indices_map.get(i, [])) == 0:
            continue
        proton_counts = sorted(correlation.proton_counts) or \
            list(defaultProtonsCountPerValencyMap.get(correlation.atom_type, []))
        if len(proton_counts) == 1:
            fixed_protons += proton_counts[0] * len(indices_map[i])
        elif correlation.atom_type != 'C':
            ambiguous.append((i, proton_counts))
        else:
            return [{}]

    if len(ambiguous) == 0:
        return [{}]

    remaining = total_protons - fixed_protons
    n_combinations = 1
    for _, proton_counts in ambiguous:
        n_combinations *= len(proton_counts)
    if n_combinations > maxCombinations:
        logger.warning(f"{n_combinations} hetero atom proton distributions exceed the limit "
                       f"of {maxCombinations}, not enumerated")
        return [{}]

    combinations = []
    for distribution in itertools.product(*[proton_counts for _, proton_counts in ambiguous]):
        assigned = sum(proton_count * len(indices_map[i]) for (i, _), proton_count in zip(ambiguous, distribution))
        if assigned == remaining:
            combinations.append({i: proton_count for (i, _), proton_count in zip(ambiguous, distribution)})

    if len(combinations) == 0:
        logger.warning(f"No hetero atom proton distribution matches the {remaining} remaining protons")
        return [{}]
    logger.info(f"Found {len(combinations)} hetero atom proton distributions")
    return combinations


def build_molecular_connectivity_map_combination_list(correlations: List[Correlation],
                                                      detections: Optional[Detections],
                                                      grouping: Optional[Grouping],
                                                      element_counts: Dict[str, int],
                                                      default_bond_distances: Optional[Dict[str, List[int]]] = None
                                                      ) -> List[MolecularConnectivityMap]:
    """One molecular connectivity map per hetero atom proton distribution."""
    indices_map = build_indices_map(correlations)
    return [
        build_molecular_connectivity_map(correlations, detections, grouping, default_bond_distances,
                                         indices_map, proton_count_overrides=combination)
        for combination in build_hetero_atom_combinations(correlations, element_counts, indices_map)
    ]


def find_molecular_connectivity_by_index(molecular_connectivity_map: MolecularConnectivityMap, index: int,
                                         atom_type: Optional[str] = None,
                                         exclude: bool = False) -> Optional[MolecularConnectivity]:
    """
    Molecular connectivity with the given solver index.

    With `atom_type`, only connectivities of that type are searched, or
    of any other type if `exclude` is True.
    """
    for molecular_connectivities in molecular_connectivity_map.values():
        for molecular_connectivity in molecular_connectivities:
            if atom_type is not None and (molecular_connectivity.atom_type == atom_type) == exclude:
                continue
            if molecular_connectivity.index == index:
                return molecular_connectivity
    return None


def get_heavy_atom_molecular_connectivity(molecular_connectivity_map: MolecularConnectivityMap,
                                          proton_index: int) -> Optional[MolecularConnectivity]:
    """Heavy atom whose HSQC partner is the given proton index."""
    for molecular_connectivities in molecular_connectivity_map.values():
        for molecular_connectivity in molecular_connectivities:
            if molecular_connectivity.atom_type != 'H' and molecular_connectivity.hsqc is not None \
                    and proton_index in molecular_connectivity.hsqc:
                return molecular_connectivity
    return None
