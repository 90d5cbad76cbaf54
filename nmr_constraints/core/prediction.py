"""
prediction.py

Environment-code based 1D shift prediction and concurrent candidate
filtering.

Atom environments are encoded as the rooted SMILES of the substructure
within a given bond radius around an atom. Reference shifts are pooled
per environment code and solvent; a prediction takes the median of the
largest radius that is known for the solvent, falling back to smaller
radii. 2D spectra (HSQC, edited HSQC, longer range) are combined from
two 1D predictions over the bond path distance between their atoms.

`predict_batch` runs independent per-structure tasks on a thread pool.
Results are collected in a thread-safe queue and drained after all
tasks are done, so their order is consumption order. A task that raises
is logged and recorded as a `TaskFailure`; the rest of the batch still
completes. There is no retry and no timeout.
"""

import logging
import queue
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd
from rdkit import Chem

from ..utils.nmr_utils import get_atom_type_from_nucleus, get_multiplicity_from_protons_count
from ..utils.structure import canonical_smiles, get_protons_count
from .similarity import calculate_average_deviation, calculate_rmsd, get_deviations, match_spectra
from .spectrum import Assignment, Signal, Spectrum

logger = logging.getLogger(__name__)

DEFAULT_MAX_SPHERE = 3
# Solvent label of reference spectra without solvent information
DEFAULT_SOLVENT = 'Unreported'


def get_environment_code(structure: Chem.Mol, atom_index: int, radius: int) -> Optional[str]:
    """
    Rooted canonical SMILES of the atoms within `radius` bonds, prefixed by
    the radius. None if the structure does not reach that far.
    """
    bonds = Chem.FindAtomEnvironmentOfRadiusN(structure, radius, atom_index)
    if len(bonds) == 0:
        return None
    atoms = {atom_index}
    for bond_index in bonds:
        bond = structure.GetBondWithIdx(bond_index)
        atoms.add(bond.GetBeginAtomIdx())
        atoms.add(bond.GetEndAtomIdx())
    smiles = Chem.MolFragmentToSmiles(structure, atomsToUse=sorted(atoms), bondsToUse=list(bonds),
                                      rootedAtAtom=atom_index, canonical=True)
    return f"{radius}:{smiles}"


def get_environment_codes(structure: Chem.Mol, atom_index: int, max_sphere: int) -> Dict[int, str]:
    """Radius -> environment code for every radius the structure reaches."""
    codes = {}
    for radius in range(1, max_sphere + 1):
        code = get_environment_code(structure, atom_index, radius)
        if code is None:
            break
        codes[radius] = code
    return codes


def build_shift_statistics(training_set: Iterable[Any], nucleus: str,
                           max_sphere: int = DEFAULT_MAX_SPHERE) -> pd.DataFrame:
    """
    Shift statistics per environment code and solvent.

    Parameters
    ----------
    training_set : iterable of TrainingItem
        Items with `structure`, `spectrum` and `assignment`.
    nucleus : str
        Only spectra of this nucleus are used.
    max_sphere : int
        Largest environment radius.

    Returns
    -------
    pandas.DataFrame
        Indexed by (code, solvent) with columns count, min, mean, median
        and max. Spectra without a 'solvent' meta entry count as
        `DEFAULT_SOLVENT`.
    """
    atom_type = get_atom_type_from_nucleus(nucleus)
    rows = []
    for item in training_set:
        if item.spectrum is None or item.spectrum.nuclei[0] != nucleus:
            continue
        solvent = item.spectrum.meta.get('solvent') or DEFAULT_SOLVENT
        for signal_index in range(item.spectrum.signal_count):
            shift = item.spectrum.get_shift(signal_index, 0)
            if shift is None:
                continue
            for atom_index in item.assignment.get_assignment(0, signal_index):
                if atom_index >= item.structure.GetNumAtoms() \
                        or item.structure.GetAtomWithIdx(atom_index).GetSymbol() != atom_type:
                    continue
                for code in get_environment_codes(item.structure, atom_index, max_sphere).values():
                    rows.append((code, solvent, shift))

    df = pd.DataFrame(rows, columns=['code', 'solvent', 'shift'])
    statistics = df.groupby(['code', 'solvent'])['shift'].agg(['count', 'min', 'mean', 'median', 'max'])
    logger.info(f"Built shift statistics for {len(statistics)} environment code / solvent pairs")
    return statistics


def predict_shift(structure: Chem.Mol, atom_index: int, shift_statistics: pd.DataFrame,
                  max_sphere: int = DEFAULT_MAX_SPHERE, solvent: str = DEFAULT_SOLVENT) -> Optional[float]:
    """Median shift in `solvent` of the largest known environment of the atom."""
    codes = get_environment_codes(structure, atom_index, max_sphere)
    for radius in sorted(codes, reverse=True):
        if (codes[radius], solvent) in shift_statistics.index:
            return float(shift_statistics.loc[(codes[radius], solvent), 'median'])
    return None


def predict_1d(structure: Chem.Mol, shift_statistics: pd.DataFrame, nucleus: str = '13C',
               max_sphere: int = DEFAULT_MAX_SPHERE, solvent: str = DEFAULT_SOLVENT
               ) -> Optional[Tuple[Spectrum, Assignment]]:
    """
    Predicted 1D spectrum of all atoms of the nucleus' element.

    Atoms with equal predicted shift and multiplicity are merged into one
    signal. The solvent is stored in the spectrum's meta info. Returns None
    if any of those atoms cannot be predicted.
    """
    atom_type = get_atom_type_from_nucleus(nucleus)
    spectrum = Spectrum(nuclei=(nucleus,))
    spectrum.add_meta_info('solvent', solvent)
    assignment = Assignment((nucleus,))
    for atom in structure.GetAtoms():
        if atom.GetSymbol() != atom_type:
            continue
        shift = predict_shift(structure, atom.GetIdx(), shift_statistics, max_sphere, solvent)
        if shift is None:
            logger.debug(f"No shift prediction for atom {atom.GetIdx()} of {canonical_smiles(structure)}")
            return None
        multiplicity = None
        if atom_type == 'C':
            multiplicity = get_multiplicity_from_protons_count(get_protons_count(atom))
        signal = Signal(nuclei=(nucleus,), shifts=[shift], multiplicity=multiplicity)
        signal_index = spectrum.add_signal(signal, pick_precisions=[0.0], check_multiplicity=True)
        assignment.add_assignment_equivalence(0, signal_index, atom.GetIdx())
    return spectrum, assignment


def predict_2d(structure: Chem.Mol, spectrum_dim1: Spectrum, spectrum_dim2: Spectrum,
               assignment_dim1: Assignment, assignment_dim2: Assignment,
               min_path_length: int, max_path_length: int) -> Optional[Tuple[Spectrum, Assignment]]:
    """
    Combine two predicted 1D spectra into a 2D spectrum.

    Every atom of the first nucleus' element is paired with every atom of
    the second nucleus' element between `min_path_length` and
    `max_path_length` bonds away. Pairs with identical shifts are merged
    into one signal as equivalences. If 1H is involved it has to be the
    first dimension, and the structure needs explicit hydrogens.

    Returns
    -------
    (Spectrum, Assignment) or None
        None if the two spectra were predicted for different solvents.
    """
    solvent = spectrum_dim1.meta.get('solvent')
    if solvent != spectrum_dim2.meta.get('solvent'):
        logger.debug(f"Cannot combine spectra of solvents {solvent} and {spectrum_dim2.meta.get('solvent')}")
        return None
    nuclei = (spectrum_dim1.nuclei[0], spectrum_dim2.nuclei[0])
    atom_type_dim1 = get_atom_type_from_nucleus(nuclei[0])
    atom_type_dim2 = get_atom_type_from_nucleus(nuclei[1])

    spectrum = Spectrum(nuclei=nuclei)
    if solvent is not None:
        spectrum.add_meta_info('solvent', solvent)
    # atoms per signal and dimension; an atom may take part in several 2D signals
    atoms_per_dim: List[List[List[int]]] = [[], []]

    distances = Chem.GetDistanceMatrix(structure)
    for atom in structure.GetAtoms():
        if atom.GetSymbol() != atom_type_dim1:
            continue
        i = atom.GetIdx()
        for partner in structure.GetAtoms():
            j = partner.GetIdx()
            if partner.GetSymbol() != atom_type_dim2 or not min_path_length <= distances[i][j] <= max_path_length:
                continue
            for signal_index_dim1 in assignment_dim1.get_indices(0, i):
                for signal_index_dim2 in assignment_dim2.get_indices(0, j):
                    signal = Signal(nuclei=nuclei, shifts=[spectrum_dim1.get_shift(signal_index_dim1, 0),
                                                           spectrum_dim2.get_shift(signal_index_dim2, 0)])
                    signal_index = spectrum.add_signal(signal)
                    if signal_index is None:
                        continue
                    if signal_index >= len(atoms_per_dim[0]):
                        atoms_per_dim[0].append([])
                        atoms_per_dim[1].append([])
                    for dim, atom_index in ((0, i), (1, j)):
                        if atom_index not in atoms_per_dim[dim][signal_index]:
                            atoms_per_dim[dim][signal_index].append(atom_index)

    assignment = Assignment(nuclei)
    assignment.set_assignments(0, atoms_per_dim[0])
    assignment.set_assignments(1, atoms_per_dim[1])
    return spectrum, assignment


def predict_hsqc(structure: Chem.Mol, spectrum_dim1: Spectrum, spectrum_dim2: Spectrum,
                 assignment_dim1: Assignment, assignment_dim2: Assignment
                 ) -> Optional[Tuple[Spectrum, Assignment]]:
    return predict_2d(structure, spectrum_dim1, spectrum_dim2, assignment_dim1, assignment_dim2, 1, 1)


def predict_hsqc_edited(structure: Chem.Mol, spectrum_dim1: Spectrum, spectrum_dim2: Spectrum,
                        assignment_dim1: Assignment, assignment_dim2: Assignment
                        ) -> Optional[Tuple[Spectrum, Assignment]]:
    """HSQC with phase -1 for CH2 and +1 for CH and CH3 signals."""
    prediction = predict_hsqc(structure, spectrum_dim1, spectrum_dim2, assignment_dim1, assignment_dim2)
    if prediction is None:
        return None
    spectrum, assignment = prediction
    atom_type_dim2 = get_atom_type_from_nucleus(spectrum.nuclei[1])
    for signal_index, signal in enumerate(spectrum.signals):
        atoms = assignment.get_assignment(1, signal_index)
        if len(atoms) == 0:
            continue
        atom = structure.GetAtomWithIdx(atoms[0])
        if atom.GetSymbol() != atom_type_dim2:
            continue
        protons_count = get_protons_count(atom)
        if protons_count == 2:
            signal.phase = -1
        elif protons_count in (1, 3):
            signal.phase = 1
    return spectrum, assignment


@dataclass
class PredictionResult:
    smiles: str
    spectrum: Spectrum
    assignment: Assignment
    average_deviation: Optional[float]
    rmsd: Optional[float]


@dataclass
class TaskFailure:
    index: int
    reason: str


@dataclass
class BatchResult:
    """Best-effort batch outcome: kept results plus the tasks that failed."""
    results: List[Any] = field(default_factory=list)
    failures: List[TaskFailure] = field(default_factory=list)

    @property
    def failure_count(self) -> int:
        return len(self.failures)


def predict_1d_and_filter(structure: Chem.Mol, query_spectrum: Spectrum, shift_statistics: pd.DataFrame,
                          max_sphere: int = DEFAULT_MAX_SPHERE, shift_tolerance: float = 5.0,
                          max_average_deviation: float = 2.0, check_multiplicity: bool = True
                          ) -> Optional[PredictionResult]:
    """
    Predict the candidate's spectrum and keep it only if every query
    signal finds a predicted partner within `shift_tolerance` and the
    average deviation stays within `max_average_deviation`.
    """
    solvent = query_spectrum.meta.get('solvent') or DEFAULT_SOLVENT
    prediction = predict_1d(structure, shift_statistics, query_spectrum.nuclei[0], max_sphere, solvent)
    if prediction is None:
        return None
    spectrum, assignment = prediction
    matches = match_spectra(query_spectrum, spectrum, 0, 0, shift_tolerance, check_multiplicity)
    if matches is None:
        return None
    deviations = get_deviations(query_spectrum, spectrum, 0, 0, matches)
    average_deviation = calculate_average_deviation(deviations)
    if average_deviation is None or average_deviation > max_average_deviation:
        return None
    return PredictionResult(smiles=canonical_smiles(structure), spectrum=spectrum, assignment=assignment,
                            average_deviation=average_deviation, rmsd=calculate_rmsd(deviations))


def predict_batch(structures: Sequence[Any], task: Callable[[Any], Any], n_workers: int = 1) -> BatchResult:
    """
    Run `task` on every structure; results that are None are dropped.

    Returns
    -------
    BatchResult
        Results in consumption order and one TaskFailure per raising task.
    """
    results = queue.SimpleQueue()
    failures = queue.SimpleQueue()

    def run(index, structure):
        try:
            result = task(structure)
        except Exception as e:
            logger.warning(f"Prediction task {index} failed: {e}")
            failures.put(TaskFailure(index=index, reason=f"{type(e).__name__}: {e}"))
            return
        if result is not None:
            results.put(result)

    if n_workers <= 1:
        for index, structure in enumerate(structures):
            run(index, structure)
    else:
        with ThreadPoolExecutor(max_workers=n_workers) as executor:
            for index, structure in enumerate(structures):
                executor.submit(run, index, structure)

    batch = BatchResult()
    while not results.empty():
        batch.results.append(results.get())
    while not failures.empty():
        batch.failures.append(failures.get())
    batch.failures.sort(key=lambda failure: failure.index)

    logger.info(f"Batch finished: {len(batch.results)} kept, {batch.failure_count} failed "
                f"of {len(structures)} structures")
    return batch


def predict_1d_and_filter_batch(structures: Sequence[Chem.Mol], query_spectrum: Spectrum,
                                shift_statistics: pd.DataFrame, max_sphere: int = DEFAULT_MAX_SPHERE,
                                shift_tolerance: float = 5.0, max_average_deviation: float = 2.0,
                                check_multiplicity: bool = True, n_workers: int = 1) -> BatchResult:
    """Concurrent `predict_1d_and_filter` over candidate structures."""
    return predict_batch(
        structures,
        lambda structure: predict_1d_and_filter(structure, query_spectrum, shift_statistics, max_sphere,
                                                shift_tolerance, max_average_deviation, check_multiplicity),
        n_workers,
    )
