"""
lsd_input_file.py

Renders molecular connectivity maps as LSD/PyLSD solver input text.

Sections, in file order:

    FORM, PIEC, ELIM (optional), MULT, HSQC, BOND, HMBC, COSY, SHIX,
    SHIH, LIST/PROP, DEFF/FEXP

Every section is built independently from the map. Duplicate lines are
suppressed by a canonical key of their semantic fields (section, solver
indices, values), never by comparing rendered text.
"""

import datetime
import logging
import os
import re
from typing import Dict, List, Optional, Tuple

from ..constants import DEFAULT_BOND_DISTANCES, defaultAtomLabelMap
from ..core.assembler import (
    MolecularConnectivityMap,
    build_indices_map,
    build_molecular_connectivity_map_combination_list,
    find_molecular_connectivity_by_index,
    get_heavy_atom_molecular_connectivity,
)
from ..core.correlation import Correlation, Detections, ElucidationOptions, Grouping, MolecularConnectivity
from ..utils.nmr_utils import build_possibilities_string, format_shift, get_molecular_formula_element_counts
from ..version import __version__
from .auxiliary_files import write_fragment_file, write_neighbors_file

logger = logging.getLogger(__name__)

SECTION_KEYS = ['MULT', 'HSQC', 'BOND', 'HMBC', 'COSY', 'SHIX', 'SHIH']


def build_header(date: Optional[datetime.datetime] = None) -> str:
    if date is None:
        date = datetime.datetime.now().astimezone()
    return (f"; PyLSD input file created by nmr_constraints {__version__}\n"
            f"; {date.strftime('%Y-%m-%d at %H:%M:%S %Z').strip()}")


def build_form(mf: str, element_counts: Dict[str, int]) -> str:
    # "<element> <count> " per element, trailing space included
    counts = ''.join(f"{element} {count} " for element, count in element_counts.items())
    return f"; Molecular Formula: {mf}\nFORM {counts}"


def build_piec() -> str:
    return "PIEC 1"


def build_elim(elim_p1: int, elim_p2: int) -> str:
    return f"ELIM {elim_p1} {elim_p2}"


def build_shift_string(molecular_connectivity: Optional[MolecularConnectivity]) -> str:
    if molecular_connectivity is None:
        return '?'
    return format_shift(molecular_connectivity.get_shift(), 3)


def build_shifts_comment(molecular_connectivity1: MolecularConnectivity,
                         molecular_connectivity2: Optional[MolecularConnectivity],
                         atom_type2: str = 'H') -> str:
    if molecular_connectivity2 is not None:
        atom_type2 = molecular_connectivity2.atom_type
    return (f"; {molecular_connectivity1.atom_type}: {build_shift_string(molecular_connectivity1)}"
            f" -> {atom_type2}: {build_shift_string(molecular_connectivity2)}")


class _SectionLines:
    """Ordered section lines, each added once per canonical key."""

    def __init__(self):
        self.lines: Dict[str, List[str]] = {key: [] for key in SECTION_KEYS}
        self.keys = set()

    def add(self, section: str, key: Tuple, line: str) -> bool:
        if key in self.keys:
            return False
        self.keys.add(key)
        self.lines[section].append(line)
        return True

    def render(self) -> Dict[str, str]:
        return {section: ''.join(line + '\n' for line in lines) for section, lines in self.lines.items()}


def _add_heavy_atom_lines(sections: _SectionLines, molecular_connectivity_map: MolecularConnectivityMap,
                          molecular_connectivity: MolecularConnectivity, first_of_equivalence: int,
                          equivalents_count: int):
    index = molecular_connectivity.index
    # MULT
    line = (f"MULT {index} {defaultAtomLabelMap.get(molecular_connectivity.atom_type, molecular_connectivity.atom_type)}"
            f" {build_possibilities_string(molecular_connectivity.hybridizations)}"
            f" {build_possibilities_string(molecular_connectivity.proton_counts)}"
            f"; {build_shift_string(molecular_connectivity)}")
    if equivalents_count > 1 and index != first_of_equivalence:
        line += f"; equivalent to {first_of_equivalence}"
    sections.add('MULT', ('MULT', index), line)

    # HSQC
    if molecular_connectivity.hsqc is not None:
        proton_index = molecular_connectivity.hsqc[0]
        proton = find_molecular_connectivity_by_index(molecular_connectivity_map, proton_index, 'H')
        sections.add('HSQC', ('HSQC', index, proton_index),
                     f"HSQC {index} {proton_index}" + build_shifts_comment(molecular_connectivity, proton))

    # HMBC, without group members directly bonded to the proton
    if molecular_connectivity.hmbc is not None:
        for proton_index, (min_distance, max_distance) in molecular_connectivity.hmbc.items():
            group_members = []
            for member_index in sorted(set(molecular_connectivity.group_members)):
                member = find_molecular_connectivity_by_index(molecular_connectivity_map, member_index,
                                                              molecular_connectivity.atom_type)
                if member is not None and member.hsqc is not None and proton_index in member.hsqc:
                    continue
                group_members.append(member_index)
            if len(group_members) == 0:
                continue
            proton = find_molecular_connectivity_by_index(molecular_connectivity_map, proton_index, 'H')
            sections.add('HMBC', ('HMBC', tuple(group_members), proton_index, min_distance, max_distance),
                         f"HMBC {build_possibilities_string(group_members)} {proton_index}"
                         f" {min_distance} {max_distance}"
                         + build_shifts_comment(molecular_connectivity, proton))

    # BOND, each unordered pair once
    if molecular_connectivity.fixed_neighbors is not None:
        for bonded_index in molecular_connectivity.fixed_neighbors:
            bonded = find_molecular_connectivity_by_index(molecular_connectivity_map, bonded_index, 'H',
                                                          exclude=True)
            sections.add('BOND', ('BOND', frozenset((index, bonded_index))),
                         f"BOND {index} {bonded_index}"
                         + build_shifts_comment(molecular_connectivity, bonded,
                                                bonded.atom_type if bonded is not None else '?'))


def _add_proton_lines(sections: _SectionLines, molecular_connectivity_map: MolecularConnectivityMap,
                      molecular_connectivity: MolecularConnectivity):
    if molecular_connectivity.cosy is None:
        return
    for partner_index, (min_distance, max_distance) in molecular_connectivity.cosy.items():
        # one proton per heavy atom
        group_members = []
        found_heavy_atoms = set()
        for member_index in sorted(set(molecular_connectivity.group_members)):
            heavy_atom = get_heavy_atom_molecular_connectivity(molecular_connectivity_map, member_index)
            if heavy_atom is None or heavy_atom.index in found_heavy_atoms:
                continue
            found_heavy_atoms.add(heavy_atom.index)
            group_members.append(member_index)
        # no correlation of a proton with the protons of its own heavy atom
        partner_heavy_atom = get_heavy_atom_molecular_connectivity(molecular_connectivity_map, partner_index)
        if partner_heavy_atom is None:
            continue
        group_members = [member_index for member_index in group_members
                         if member_index not in partner_heavy_atom.hsqc]
        if len(group_members) == 0:
            continue
        partner = find_molecular_connectivity_by_index(molecular_connectivity_map, partner_index, 'H')
        sections.add('COSY', ('COSY', tuple(group_members), partner_index, min_distance, max_distance),
                     f"COSY {build_possibilities_string(group_members)} {partner_index}"
                     f" {min_distance} {max_distance}"
                     + build_shifts_comment(molecular_connectivity, partner))


def build_sections(molecular_connectivity_map: MolecularConnectivityMap) -> Dict[str, str]:
    """
    MULT, HSQC, BOND, HMBC, COSY, SHIX and SHIH sections of one variant.

    Returns
    -------
    dict
        Section keyword -> section text (one line per entry, each ending
        with a newline; empty string for an empty section).
    """
    sections = _SectionLines()
    for molecular_connectivities in molecular_connectivity_map.values():
        if len(molecular_connectivities) == 0:
            continue
        first_of_equivalence = molecular_connectivities[0].index
        for molecular_connectivity in molecular_connectivities:
            if molecular_connectivity.atom_type != 'H':
                _add_heavy_atom_lines(sections, molecular_connectivity_map, molecular_connectivity,
                                      first_of_equivalence, len(molecular_connectivities))
            else:
                _add_proton_lines(sections, molecular_connectivity_map, molecular_connectivity)

            shift = molecular_connectivity.get_shift()
            if shift is None:
                continue
            section = 'SHIH' if molecular_connectivity.atom_type == 'H' else 'SHIX'
            sections.add(section, (section, molecular_connectivity.index),
                         f"{section} {molecular_connectivity.index} {format_shift(shift, 5)}")

    return sections.render()


class _ListRegistry:
    """LIST names keyed by what the list contains."""

    def __init__(self, lines: List[str]):
        self.lines = lines
        self.names: Dict[Tuple, str] = {}

    def get(self, key: Tuple) -> Optional[str]:
        return self.names.get(key)

    def register(self, key: Tuple, definition: str) -> str:
        """Add a list definition; `definition` is formatted with the new list name."""
        if key not in self.names:
            self.names[key] = f"L{len(self.names) + 1}"
            self.lines.append(definition.format(name=self.names[key]))
        return self.names[key]


def _get_heavy_atoms(molecular_connectivity_map: MolecularConnectivityMap) -> List[MolecularConnectivity]:
    return [molecular_connectivity for molecular_connectivities in molecular_connectivity_map.values()
            for molecular_connectivity in molecular_connectivities if molecular_connectivity.atom_type != 'H']


def _register_index_list(registry: _ListRegistry, key: Tuple, indices: List[int], comment: str) -> Optional[str]:
    if len(indices) == 0:
        return None
    return registry.register(key, "LIST {name} " + ' '.join(str(index) for index in indices) + f"; {comment}")


def build_lists_and_props(molecular_connectivity_map: MolecularConnectivityMap, element_counts: Dict[str, int],
                          allow_hetero_hetero_bonds: bool = False) -> str:
    """
    LIST and PROP lines.

    1. Without hetero-hetero bonds allowed: the list of all hetero atoms
       must have no neighbor in itself.
    2. One LIST per heavy element of the formula.
    3. Forbidden neighbors: `PROP i 0 Lk -` against lists of atoms that
       are certain to have a forbidden type, hybridization and proton count.
    4. Set neighbors: `PROP i 1 Lk +` against lists of atoms that may have
       the required neighbor type (and hybridization / proton count).
    """
    lines: List[str] = []
    registry = _ListRegistry(lines)
    heavy_atoms = _get_heavy_atoms(molecular_connectivity_map)

    contains_hetero_atoms = any(element not in ('C', 'H') for element in element_counts)
    if contains_hetero_atoms and not allow_hetero_hetero_bonds:
        name = registry.register(('HETE',), "HETE {name}; list of all hetero atoms")
        lines.append(f"PROP {name} 0 {name} -; no hetero-hetero bonds")

    for element in element_counts:
        if element == 'H':
            continue
        indices = [atom.index for atom in heavy_atoms if atom.atom_type == element]
        _register_index_list(registry, ('ELEM', element), indices, f"list of all {element} atoms")

    prop_keys = set()
    for atom in heavy_atoms:
        if not atom.forbidden_neighbors:
            continue
        for neighbor_type, per_hybridization in atom.forbidden_neighbors.items():
            if len(per_hybridization) == 0:
                name = registry.get(('ELEM', neighbor_type))
                targets = [(name, f"no {neighbor_type} neighbors")]
            else:
                targets = []
                for hybridization, proton_counts in sorted(per_hybridization.items()):
                    indices = [other.index for other in heavy_atoms
                               if other.atom_type == neighbor_type
                               and other.hybridizations == [hybridization]
                               and set(other.proton_counts) <= set(proton_counts)]
                    name = _register_index_list(
                        registry, ('FORBID', neighbor_type, hybridization, tuple(sorted(proton_counts))), indices,
                        f"{neighbor_type} SP{hybridization} {build_possibilities_string(sorted(proton_counts))}")
                    targets.append((name, f"no {neighbor_type} SP{hybridization} neighbors"
                                          f" with {build_possibilities_string(sorted(proton_counts))} H"))
            for name, comment in targets:
                if name is None or ('PROP', atom.index, 0, name) in prop_keys:
                    continue
                prop_keys.add(('PROP', atom.index, 0, name))
                lines.append(f"PROP {atom.index} 0 {name} -; {comment}")

    for atom in heavy_atoms:
        if not atom.set_neighbors:
            continue
        for neighbor_type, per_hybridization in atom.set_neighbors.items():
            if len(per_hybridization) == 0:
                name = registry.get(('ELEM', neighbor_type))
                comment = f"at least one {neighbor_type} neighbor"
            else:
                hybridizations = set(per_hybridization.keys())
                proton_counts = set().union(*per_hybridization.values())
                indices = [other.index for other in heavy_atoms
                           if other.atom_type == neighbor_type and other.index != atom.index
                           and hybridizations & set(other.hybridizations)
                           and proton_counts & set(other.proton_counts)]
                name = _register_index_list(
                    registry, ('ALLOW', neighbor_type, tuple(sorted(hybridizations)), tuple(sorted(proton_counts))),
                    indices, f"possible {neighbor_type} neighbors")
                comment = f"at least one of the possible {neighbor_type} neighbors"
            if name is None or ('PROP', atom.index, 1, name) in prop_keys:
                continue
            prop_keys.add(('PROP', atom.index, 1, name))
            lines.append(f"PROP {atom.index} 1 {name} +; {comment}")

    return ''.join(line + '\n' for line in lines)


def build_deffs(filter_paths: List[str], paths_to_auxiliary_files: List[str]) -> str:
    """DEFF lines, labels F1..Fn in order of the given paths."""
    paths = list(filter_paths) + list(paths_to_auxiliary_files)
    if len(paths) == 0:
        return ''
    lines = ["; externally defined filters"]
    for k, path in enumerate(paths, start=1):
        lines.append(f"DEFF F{k} \"{path}\"")
    return '\n'.join(lines) + '\n\n'


def build_fexp(fexp_map: Dict[str, bool]) -> str:
    """FEXP line; labels mapped to False are negated."""
    if len(fexp_map) == 0:
        return ''
    terms = [label if include else f"NOT {label}" for label, include in fexp_map.items()]
    return 'FEXP "' + ' AND '.join(terms) + '"\n'


def build_deffs_and_fexp(options: ElucidationOptions, detections: Optional[Detections],
                         correlations: Optional[List[Correlation]] = None,
                         indices_map: Optional[Dict[int, List[int]]] = None) -> str:
    """
    DEFF and FEXP sections. Writes the auxiliary files they refer to.

    External filters (`options.filter_paths`) must not match. Included
    fragments, and set neighbors files, must match; forbidden neighbors
    files must not.
    """
    fexp_map: Dict[str, bool] = {}
    for k in range(len(options.filter_paths)):
        fexp_map[f"F{k + 1}"] = False

    auxiliary_paths = []
    if detections is not None and options.path_to_neighbors_files and correlations is not None:
        if indices_map is None:
            indices_map = build_indices_map(correlations)
        for suffix, neighbors, include in (('forbidden', detections.forbidden_neighbors, False),
                                           ('set', detections.set_neighbors, True)):
            path = f"{options.path_to_neighbors_files}_{suffix}.txt"
            if neighbors and write_neighbors_file(path, correlations, indices_map, neighbors):
                fexp_map[f"F{len(fexp_map) + 1}"] = include
                auxiliary_paths.append(path)

    if detections is not None and options.path_to_fragment_files:
        for k, fragment in enumerate(detections.fragments):
            if not fragment.include:
                continue
            path = f"{options.path_to_fragment_files}_{k}.deff"
            if write_fragment_file(path, fragment):
                fexp_map[f"F{len(fexp_map) + 1}"] = True
                auxiliary_paths.append(path)

    return build_deffs(options.filter_paths, auxiliary_paths) + '\n' + build_fexp(fexp_map) + '\n'


def build_input_file_content(molecular_connectivity_map: MolecularConnectivityMap, mf: str,
                             options: ElucidationOptions, detections: Optional[Detections] = None,
                             correlations: Optional[List[Correlation]] = None,
                             date: Optional[datetime.datetime] = None) -> str:
    """Complete solver input text for one variant."""
    element_counts = get_molecular_formula_element_counts(mf)
    parts = [build_header(date), '\n\n', build_form(mf, element_counts), '\n\n', build_piec(), '\n\n']
    if options.use_elim:
        parts += [build_elim(options.elim_p1, options.elim_p2), '\n\n']

    sections = build_sections(molecular_connectivity_map)
    for key in SECTION_KEYS:
        parts += [sections[key], '\n']

    parts += [build_lists_and_props(molecular_connectivity_map, element_counts,
                                    options.allow_hetero_hetero_bonds), '\n']
    parts += [build_deffs_and_fexp(options, detections, correlations), '\n']

    return ''.join(parts)


def build_input_file_content_list(correlations: List[Correlation], mf: str, detections: Optional[Detections],
                                  grouping: Optional[Grouping], options: Optional[ElucidationOptions] = None,
                                  default_bond_distances: Optional[Dict[str, List[int]]] = None,
                                  date: Optional[datetime.datetime] = None) -> List[str]:
    """
    One solver input text per variant; an empty list without a molecular formula.
    """
    if not mf:
        return []
    if options is None:
        options = ElucidationOptions()
    if default_bond_distances is None:
        default_bond_distances = DEFAULT_BOND_DISTANCES
    element_counts = get_molecular_formula_element_counts(mf)
    molecular_connectivity_maps = build_molecular_connectivity_map_combination_list(
        correlations, detections, grouping, element_counts, default_bond_distances)
    logger.info(f"Rendering {len(molecular_connectivity_maps)} solver input variant(s)")
    return [build_input_file_content(molecular_connectivity_map, mf, options, detections, correlations, date)
            for molecular_connectivity_map in molecular_connectivity_maps]


def write_input_files(contents: List[str], output_directory: str, base_name: str = 'compilation') -> List[str]:
    """
    Write every variant to `output_directory`.

    A single variant is written as `<base_name>.lsd`, several as
    `<base_name>_<k>.lsd` with k starting at 1.
    Input files of an earlier run with the same base name are removed
    first.

    Returns
    -------
    list of str
        Paths of the written files, in variant order.
    """
    os.makedirs(output_directory, exist_ok=True)
    stale_pattern = re.compile(rf"{re.escape(base_name)}(_\d+)?\.lsd")
    for file_name in sorted(os.listdir(output_directory)):
        if stale_pattern.fullmatch(file_name):
            logger.info(f"Removing input file of an earlier run: {file_name}")
            os.remove(os.path.join(output_directory, file_name))

    paths = []
    for k, content in enumerate(contents, start=1):
        file_name = f"{base_name}.lsd" if len(contents) == 1 else f"{base_name}_{k}.lsd"
        path = os.path.join(output_directory, file_name)
        with open(path, 'w') as f:
            f.write(content)
        paths.append(path)
    logger.info(f"Wrote {len(paths)} solver input file(s) to {output_directory}")
    return paths
