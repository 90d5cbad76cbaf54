"""
Auxiliary filter files referenced from the DEFF section of a solver input.

- Fragment files: one substructure per file, SSTR lines per heavy atom
  and LINK lines per bond.
- Neighbors files: for every correlation and neighbor hypothesis, a
  substructure of the atom itself (SSTR + ASGN to its solver index) linked
  to a neighbor substructure.
"""

import logging
import os
from typing import Dict, List, Sequence, Set

from ..constants import defaultHybridizationMap, defaultProtonsCountPerValencyMap, hybridizationConversionMap
from ..core.correlation import Correlation, Fragment
from ..utils.nmr_utils import build_possibilities_string, format_shift
from ..utils.structure import (
    canonical_smiles,
    get_heavy_atom_indices,
    get_heavy_bonds,
    get_hybridization_name,
    get_protons_count,
)

logger = logging.getLogger(__name__)


def build_sstr(index: int, atom_type: str, hybridizations: Sequence[int], proton_counts: Sequence[int]) -> str:
    """SSTR line; empty candidate lists fall back to the element defaults."""
    hybridizations = sorted(hybridizations) or list(defaultHybridizationMap.get(atom_type, []))
    proton_counts = sorted(proton_counts) or list(defaultProtonsCountPerValencyMap.get(atom_type, []))
    return (f"SSTR S{index} {atom_type} {build_possibilities_string(hybridizations)} "
            f"{build_possibilities_string(proton_counts)}")


def build_fragment_content(fragment: Fragment) -> str:
    structure = fragment.structure
    lines = [f"; fragment: {canonical_smiles(structure)}"]
    sstr_indices = {}
    for atom_index in get_heavy_atom_indices(structure):
        atom = structure.GetAtomWithIdx(atom_index)
        sstr_indices[atom_index] = len(sstr_indices) + 1
        hybridization_name = get_hybridization_name(atom)
        hybridizations = [hybridizationConversionMap[hybridization_name]] if hybridization_name else []
        lines.append(build_sstr(sstr_indices[atom_index], atom.GetSymbol(), hybridizations,
                                [get_protons_count(atom)]))
    for begin, end in get_heavy_bonds(structure):
        lines.append(f"LINK S{sstr_indices[begin]} S{sstr_indices[end]}")
    return '\n'.join(lines) + '\n'


def write_fragment_file(path_to_fragment_file: str, fragment: Fragment) -> bool:
    """Write one fragment file; False if the fragment has no heavy atom."""
    if fragment.structure is None or fragment.structure.GetNumHeavyAtoms() == 0:
        return False
    content = build_fragment_content(fragment)
    directory = os.path.dirname(path_to_fragment_file)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path_to_fragment_file, 'w') as f:
        f.write(content)
    logger.debug(f"Fragment file written to {path_to_fragment_file}")
    return True


def build_neighbors_content(correlations: List[Correlation], indices_map: Dict[int, List[int]],
                            neighbors: Dict[int, Dict[str, Dict[int, Set[int]]]]) -> str:
    """
    Parameters
    ----------
    correlations : list of Correlation
    indices_map : dict
        Correlation index -> solver indices.
    neighbors : dict
        Correlation index -> neighbor type -> hybridization -> proton counts.
        An empty hybridization mapping describes the neighbor type alone.
    """
    lines = []
    sstr_index = 1
    for i, correlation in enumerate(correlations):
        if i not in neighbors:
            continue
        shift = format_shift(correlation.get_shift(), 2)
        for solver_index in indices_map.get(i, []):
            for neighbor_type, per_hybridization in neighbors[i].items():
                entries = list(per_hybridization.items()) or [(None, set())]
                for hybridization, proton_counts in entries:
                    correlation_sstr_index = sstr_index
                    lines.append(build_sstr(correlation_sstr_index, correlation.atom_type,
                                            correlation.hybridization, correlation.proton_counts)
                                 + f"; {correlation.atom_type} at {shift} ({solver_index})")
                    lines.append(f"ASGN S{correlation_sstr_index} {solver_index}")
                    sstr_index += 1
                    lines.append(build_sstr(sstr_index, neighbor_type,
                                            [hybridization] if hybridization is not None else [],
                                            proton_counts))
                    lines.append(f"LINK S{correlation_sstr_index} S{sstr_index}")
                    lines.append('')
                    sstr_index += 1
    return '\n'.join(lines)


def write_neighbors_file(path_to_neighbors_file: str, correlations: List[Correlation],
                         indices_map: Dict[int, List[int]],
                         neighbors: Dict[int, Dict[str, Dict[int, Set[int]]]]) -> bool:
    """Write a neighbors file; False (and nothing written) if there is nothing to write."""
    content = build_neighbors_content(correlations, indices_map, neighbors)
    if not content:
        return False
    directory = os.path.dirname(path_to_neighbors_file)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path_to_neighbors_file, 'w') as f:
        f.write(content)
    logger.debug(f"Neighbors file written to {path_to_neighbors_file}")
    return True
