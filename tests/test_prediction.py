import threading

import pytest
from rdkit import Chem

from nmr_constraints.analysis.connectivity_statistics import TrainingItem
from nmr_constraints.core.prediction import (
    BatchResult,
    TaskFailure,
    build_shift_statistics,
    get_environment_code,
    get_environment_codes,
    predict_1d,
    predict_1d_and_filter,
    predict_1d_and_filter_batch,
    predict_2d,
    predict_batch,
    predict_hsqc_edited,
    predict_shift,
)
from nmr_constraints.core.spectrum import Assignment, Signal, Spectrum
from nmr_constraints.data.load_data import parse_nmrshiftdb_spectrum
from nmr_constraints.utils.structure import mol_from_smiles


@pytest.fixture
def shift_statistics(isopropanol_item):
    return build_shift_statistics([isopropanol_item], '13C')


def test_environment_codes_stop_at_molecule_size():
    isopropanol = mol_from_smiles('CC(C)O')

    codes = get_environment_codes(isopropanol, 0, 3)
    assert sorted(codes) == [1, 2]
    assert codes[1].startswith('1:')
    assert get_environment_code(isopropanol, 1, 2) is None
    # both methyl groups share their environments
    assert get_environment_codes(isopropanol, 2, 3) == codes


def test_shift_statistics(shift_statistics):
    assert list(shift_statistics.columns) == ['count', 'min', 'mean', 'median', 'max']
    methyl_code = get_environment_code(mol_from_smiles('CC(C)O'), 0, 2)
    assert shift_statistics.at[(methyl_code, 'Unreported'), 'count'] == 2
    assert shift_statistics.at[(methyl_code, 'Unreported'), 'median'] == pytest.approx(25.3)


def test_predict_shift_falls_back_to_smaller_sphere(shift_statistics):
    # the ethyl methyl of butan-2-ol resembles isopropanol's methyls within one bond only
    butanol = mol_from_smiles('CC(O)CC')
    assert predict_shift(butanol, 4, shift_statistics) == pytest.approx(25.3)
    assert predict_shift(mol_from_smiles('c1ccccc1'), 0, shift_statistics) is None
    assert predict_shift(mol_from_smiles('CC(C)O'), 1, shift_statistics) == pytest.approx(64.2)


def test_predict_1d_merges_equivalent_atoms(shift_statistics):
    spectrum, assignment = predict_1d(mol_from_smiles('CC(C)O'), shift_statistics)

    assert spectrum.get_shifts(0) == pytest.approx([25.3, 64.2])
    assert spectrum.get_equivalences_counts() == [2, 1]
    assert [spectrum.get_multiplicity(i) for i in range(2)] == ['q', 'd']
    assert assignment.get_assignment(0, 0) == [0, 2]
    assert assignment.get_assignment(0, 1) == [1]


def test_predict_1d_needs_every_atom(shift_statistics):
    assert predict_1d(mol_from_smiles('c1ccccc1'), shift_statistics) is None


def solvent_item(spectrum_string, solvent):
    spectrum, assignment = parse_nmrshiftdb_spectrum(spectrum_string, '13C')
    spectrum.add_meta_info('solvent', solvent)
    return TrainingItem(structure=mol_from_smiles('CC(C)O'), spectrum=spectrum, assignment=assignment)


def test_shift_statistics_per_solvent():
    shift_statistics = build_shift_statistics([
        solvent_item("25.3;0.0Q;0|25.3;0.0Q;2|64.2;0.0D;1|", 'CDCl3'),
        solvent_item("26.0;0.0Q;0|26.0;0.0Q;2|65.0;0.0D;1|", 'DMSO'),
    ], '13C')
    isopropanol = mol_from_smiles('CC(C)O')
    methyl_code = get_environment_code(isopropanol, 0, 2)

    assert shift_statistics.at[(methyl_code, 'CDCl3'), 'median'] == pytest.approx(25.3)
    assert shift_statistics.at[(methyl_code, 'DMSO'), 'median'] == pytest.approx(26.0)
    assert predict_shift(isopropanol, 1, shift_statistics, solvent='DMSO') == pytest.approx(65.0)
    assert predict_shift(isopropanol, 1, shift_statistics) is None

    spectrum, _ = predict_1d(isopropanol, shift_statistics, solvent='CDCl3')
    assert spectrum.meta['solvent'] == 'CDCl3'
    assert spectrum.get_shifts(0) == pytest.approx([25.3, 64.2])


def test_predict_2d_merges_equivalent_pairs(shift_statistics):
    isopropanol = mol_from_smiles('CC(C)O')
    spectrum_1d, assignment_1d = predict_1d(isopropanol, shift_statistics)

    spectrum, assignment = predict_2d(isopropanol, spectrum_1d, spectrum_1d, assignment_1d, assignment_1d, 1, 1)

    assert spectrum.nuclei == ('13C', '13C')
    assert [signal.shifts for signal in spectrum.signals] == [pytest.approx([25.3, 64.2]),
                                                              pytest.approx([64.2, 25.3])]
    assert spectrum.get_equivalences_counts() == [2, 2]
    assert assignment.get_assignment(0, 0) == [0, 2]
    assert assignment.get_assignment(1, 0) == [1]
    assert assignment.get_assignment(0, 1) == [1]
    assert assignment.get_assignment(1, 1) == [0, 2]
    assert spectrum.meta['solvent'] == 'Unreported'

    # no carbon pairs two bonds apart besides the two methyls
    spectrum, _ = predict_2d(isopropanol, spectrum_1d, spectrum_1d, assignment_1d, assignment_1d, 2, 2)
    assert [signal.shifts for signal in spectrum.signals] == [pytest.approx([25.3, 25.3])]
    assert spectrum.get_equivalences_counts() == [2]


def ethanol_1d_spectra(structure):
    """Hand-assigned 1H and 13C spectra of ethanol with explicit hydrogens."""
    def hydrogens(atom_index):
        return [neighbor.GetIdx() for neighbor in structure.GetAtomWithIdx(atom_index).GetNeighbors()
                if neighbor.GetSymbol() == 'H']

    spectrum_h, assignment_h = Spectrum(('1H',)), Assignment(('1H',))
    for shift, atom_index in ((1.22, 0), (3.69, 1), (2.5, 2)):
        spectrum_h.add_signal(Signal(('1H',), [shift]))
        assignment_h.add_assignment(0, hydrogens(atom_index))
    spectrum_c, assignment_c = Spectrum(('13C',)), Assignment(('13C',))
    for shift, atom_index in ((18.1, 0), (58.2, 1)):
        spectrum_c.add_signal(Signal(('13C',), [shift]))
        assignment_c.add_assignment(0, [atom_index])
    return spectrum_h, assignment_h, spectrum_c, assignment_c


def test_edited_hsqc_phases():
    ethanol = Chem.AddHs(mol_from_smiles('CCO'))
    spectrum_h, assignment_h, spectrum_c, assignment_c = ethanol_1d_spectra(ethanol)

    spectrum, assignment = predict_hsqc_edited(ethanol, spectrum_h, spectrum_c, assignment_h, assignment_c)

    assert [signal.shifts for signal in spectrum.signals] == [[1.22, 18.1], [3.69, 58.2]]
    assert spectrum.get_equivalences_counts() == [3, 2]
    # CH3 positive, CH2 negative
    assert [signal.phase for signal in spectrum.signals] == [1, -1]
    assert assignment.get_assignment(1, 1) == [1]
    assert len(assignment.get_assignment(0, 1)) == 2


def test_2d_needs_same_solvent():
    ethanol = Chem.AddHs(mol_from_smiles('CCO'))
    spectrum_h, assignment_h, spectrum_c, assignment_c = ethanol_1d_spectra(ethanol)
    spectrum_h.add_meta_info('solvent', 'CDCl3')
    spectrum_c.add_meta_info('solvent', 'DMSO')

    assert predict_hsqc_edited(ethanol, spectrum_h, spectrum_c, assignment_h, assignment_c) is None


def test_predict_and_filter(shift_statistics, isopropanol_item):
    result = predict_1d_and_filter(mol_from_smiles('OC(C)C'), isopropanol_item.spectrum, shift_statistics)

    assert result.smiles == 'CC(C)O'
    assert result.average_deviation == pytest.approx(0.0)
    assert result.rmsd == pytest.approx(0.0)

    shifted_query = Spectrum(('13C',))
    shifted_query.add_signal(Signal(('13C',), [28.0], 'q', 2))
    shifted_query.add_signal(Signal(('13C',), [67.0], 'd'))
    assert predict_1d_and_filter(mol_from_smiles('CC(C)O'), shifted_query, shift_statistics,
                                 max_average_deviation=2.0) is None


def test_batch_records_failures():
    def task(value):
        if value == 2:
            raise ValueError("bad structure")
        if value == 3:
            return None
        return value * 10

    batch = predict_batch([0, 1, 2, 3, 4], task, n_workers=3)

    assert isinstance(batch, BatchResult)
    assert sorted(batch.results) == [0, 10, 40]
    assert batch.failures == [TaskFailure(index=2, reason="ValueError: bad structure")]
    assert batch.failure_count == 1


def test_batch_runs_concurrently():
    seen_threads = set()
    lock = threading.Lock()
    barrier = threading.Barrier(2, timeout=10)

    def task(value):
        barrier.wait()
        with lock:
            seen_threads.add(threading.get_ident())
        return value

    batch = predict_batch([1, 2], task, n_workers=2)

    assert sorted(batch.results) == [1, 2]
    assert len(seen_threads) == 2


def test_filter_batch(shift_statistics, isopropanol_item):
    structures = [mol_from_smiles('CC(C)O'), mol_from_smiles('c1ccccc1'), None]
    batch = predict_1d_and_filter_batch(structures, isopropanol_item.spectrum, shift_statistics, n_workers=2)

    assert [result.smiles for result in batch.results] == ['CC(C)O']
    assert [failure.index for failure in batch.failures] == [2]
