"""
correlation.py

Correlation-level data model of a structure elucidation query.

- `Link`: one experiment edge (hsqc, hmbc, cosy, inadequate, ...) from a
  correlation to the correlation indices matched on the other side.
- `Correlation`: one structural position under elucidation with candidate
  hybridization states and attached proton counts, narrowed in place by
  the constraint filter unless the user edited them.
- `Grouping`: equivalence groups of correlations with similar shifts.
- `Detections`: everything derived from the connectivity statistics for
  one query (detected connectivities, forbidden / set neighbors, fixed
  neighbors, hybridizations, fragments).
- `MolecularConnectivity`: the solver-facing projection of a correlation,
  one per equivalent atom, keyed by a dense 1-based solver index.
- `ElucidationOptions`: switches for the solver input file.
"""

from dataclasses import dataclass, field
from typing import List, Dict, Optional, Set, Tuple, Any

from .spectrum import Signal
from ..utils.nmr_utils import get_atom_type_from_nucleus


@dataclass
class Link:
    """Experiment edge from one correlation to others."""
    experiment_type: str
    match: List[int] = field(default_factory=list)
    path_length: Optional[Tuple[int, int]] = None
    signal: Optional[Signal] = None
    pseudo: bool = False


@dataclass
class Correlation:
    """One structural position: candidate sets plus the evidence linking it."""

    atom_type: str
    signal: Optional[Signal] = None
    hybridization: Set[int] = field(default_factory=set)
    proton_counts: Set[int] = field(default_factory=set)
    equivalence: int = 1
    pseudo: bool = False
    edited: Dict[str, bool] = field(default_factory=dict)
    links: List[Link] = field(default_factory=list)

    def get_dim(self) -> int:
        """Signal dimension belonging to this correlation's atom type, -1 if none."""
        if self.signal is None:
            return -1
        for dim, nucleus in enumerate(self.signal.nuclei):
            if get_atom_type_from_nucleus(nucleus) == self.atom_type:
                return dim
        return -1

    def get_shift(self) -> Optional[float]:
        dim = self.get_dim()
        if dim == -1:
            return None
        return self.signal.get_shift(dim)

    def get_links(self, experiment_type: str) -> List[Link]:
        return [link for link in self.links if link.experiment_type == experiment_type]

    def get_matches(self, experiment_type: str) -> List[int]:
        """Correlation indices linked through the given experiment, in link order."""
        matches = []
        for link in self.get_links(experiment_type):
            for match_index in link.match:
                if match_index not in matches:
                    matches.append(match_index)
        return matches


@dataclass
class Grouping:
    tolerances: Dict[str, float]
    groups: Dict[str, Dict[int, Set[int]]]
    transformed_groups: Dict[str, Dict[int, int]]

    def get_group_id(self, atom_type: str, correlation_index: int) -> Optional[int]:
        return self.transformed_groups.get(atom_type, {}).get(correlation_index)

    def get_group_members(self, atom_type: str, correlation_index: int) -> Set[int]:
        """Correlation indices sharing the group of the given correlation (itself included)."""
        group_id = self.get_group_id(atom_type, correlation_index)
        if group_id is None:
            return {correlation_index}
        return set(self.groups[atom_type][group_id])


@dataclass
class Fragment:
    """Structural fragment a solution has to contain (include) or not."""
    structure: Any
    include: bool = True
    label: Optional[str] = None


@dataclass
class Detections:
    detected_hybridizations: Dict[int, List[int]] = field(default_factory=dict)
    detected_connectivities: Dict[int, Dict[str, Dict[int, Set[int]]]] = field(default_factory=dict)
    forbidden_neighbors: Dict[int, Dict[str, Dict[int, Set[int]]]] = field(default_factory=dict)
    set_neighbors: Dict[int, Dict[str, Dict[int, Set[int]]]] = field(default_factory=dict)
    fixed_neighbors: Dict[int, Set[int]] = field(default_factory=dict)
    fragments: List[Fragment] = field(default_factory=list)


@dataclass
class MolecularConnectivity:
    """One solver atom. `hsqc`, `hmbc`, `cosy` and `fixed_neighbors` hold solver indices."""

    index: int
    atom_type: str
    correlation_index: int
    hybridizations: List[int] = field(default_factory=list)
    proton_counts: List[int] = field(default_factory=list)
    signal: Optional[Signal] = None
    equivalence: int = 1
    pseudo: bool = False
    hsqc: Optional[List[int]] = None
    hmbc: Optional[Dict[int, List[int]]] = None
    cosy: Optional[Dict[int, List[int]]] = None
    fixed_neighbors: Optional[List[int]] = None
    group_members: List[int] = field(default_factory=list)
    forbidden_neighbors: Optional[Dict[str, Dict[int, Set[int]]]] = None
    set_neighbors: Optional[Dict[str, Dict[int, Set[int]]]] = None

    def get_shift(self) -> Optional[float]:
        if self.signal is None:
            return None
        for dim, nucleus in enumerate(self.signal.nuclei):
            if get_atom_type_from_nucleus(nucleus) == self.atom_type:
                return self.signal.get_shift(dim)
        return None


@dataclass
class ElucidationOptions:
    """Solver input switches and auxiliary file locations."""
    use_elim: bool = False
    elim_p1: int = 1
    elim_p2: int = 4
    allow_hetero_hetero_bonds: bool = False
    filter_paths: List[str] = field(default_factory=list)
    path_to_fragment_files: Optional[str] = None
    path_to_neighbors_files: Optional[str] = None
