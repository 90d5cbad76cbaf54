import json

import pandas as pd
import pytest
from rdkit import Chem

from nmr_constraints.analysis.connectivity_statistics import ConnectivityStatistics
from nmr_constraints.core.prediction import build_shift_statistics
from nmr_constraints.data.load_data import (
    load_correlations,
    load_shift_statistics,
    load_spectrum_csv,
    load_statistics,
    load_training_set_sdf,
    parse_correlations,
    parse_nmrshiftdb_spectrum,
    save_shift_statistics,
    save_statistics,
)
from nmr_constraints.utils.structure import mol_from_smiles

from conftest import ISOPROPANOL_SPECTRUM


def write_json(path, data):
    path.write_text(json.dumps(data))
    return str(path)


def test_load_correlations(tmp_path, ethanol_correlations_data):
    correlations = load_correlations(write_json(tmp_path / 'correlations.json', ethanol_correlations_data))

    assert [correlation.atom_type for correlation in correlations] == ['C', 'C', 'H', 'H', 'O']
    methylene = correlations[0]
    assert methylene.get_shift() == 58.2
    assert methylene.signal.nuclei == ('13C',)
    assert methylene.hybridization == {3}
    assert methylene.proton_counts == {2}
    assert [link.experiment_type for link in methylene.links] == ['hsqc', 'hmbc']
    assert correlations[1].hybridization == {3}
    assert correlations[3].get_shift() == 1.22
    assert correlations[3].links[1].path_length == (3, 3)
    assert correlations[4].signal is None
    assert correlations[4].hybridization == set()


def test_plain_list_is_accepted(ethanol_correlations_data):
    assert len(parse_correlations(ethanol_correlations_data['values'])) == 5


def test_invalid_correlations(tmp_path, ethanol_correlations_data):
    ethanol_correlations_data['values'][0]['link'][0]['match'] = [7]
    with pytest.raises(ValueError, match='unknown correlation 7'):
        load_correlations(write_json(tmp_path / 'bad_link.json', ethanol_correlations_data))

    broken = tmp_path / 'broken.json'
    broken.write_text('{"values": [')
    with pytest.raises(ValueError, match='Invalid JSON'):
        load_correlations(str(broken))

    with pytest.raises(ValueError):
        parse_correlations({'values': [{'signal': {'delta': 1.0}}]})
    with pytest.raises(ValueError):
        parse_correlations({'values': [{'atomType': 'C', 'hybridization': ['SP4']}]})
    with pytest.raises(FileNotFoundError):
        load_correlations(str(tmp_path / 'missing.json'))


def test_load_spectrum_csv(tmp_path):
    path = tmp_path / 'spectrum.csv'
    path.write_text("shift,multiplicity,equivalences\n25.3,Q,2\n64.2,d,\n")
    spectrum = load_spectrum_csv(str(path))

    assert spectrum.get_shifts(0) == [25.3, 64.2]
    assert [spectrum.get_multiplicity(i) for i in range(2)] == ['q', 'd']
    assert spectrum.get_equivalences_counts() == [2, 1]

    shifts_only = tmp_path / 'shifts.csv'
    shifts_only.write_text("shift\n120.0\n")
    assert load_spectrum_csv(str(shifts_only)).get_multiplicity(0) is None

    no_shift = tmp_path / 'no_shift.csv'
    no_shift.write_text("multiplicity\ns\n")
    with pytest.raises(ValueError):
        load_spectrum_csv(str(no_shift))


def test_nmrshiftdb_spectrum_merges_equivalent_atoms():
    spectrum, assignment = parse_nmrshiftdb_spectrum(ISOPROPANOL_SPECTRUM, '13C')

    assert spectrum.get_shifts(0) == [25.3, 64.2]
    assert spectrum.get_equivalences_counts() == [2, 1]
    assert assignment.get_assignment(0, 0) == [0, 2]
    assert assignment.get_assignment(0, 1) == [1]

    with pytest.raises(ValueError):
        parse_nmrshiftdb_spectrum("25.3;0.0Q|", '13C')
    with pytest.raises(ValueError):
        parse_nmrshiftdb_spectrum("abc;0.0Q;0|", '13C')


def write_sdf(path, records):
    writer = Chem.SDWriter(str(path))
    for smiles, spectrum in records:
        mol = mol_from_smiles(smiles)
        if spectrum is not None:
            mol.SetProp('Spectrum 13C 0', spectrum)
        writer.write(mol)
    writer.close()
    return str(path)


def test_load_training_set_sdf(tmp_path):
    path = write_sdf(tmp_path / 'training.sdf', [('CC(C)O', ISOPROPANOL_SPECTRUM), ('CCO', None)])
    items = load_training_set_sdf(path)

    assert len(items) == 1
    assert Chem.MolToSmiles(items[0].structure) == 'CC(C)O'
    assert items[0].assignment.get_assignment(0, 1) == [1]

    statistics = ConnectivityStatistics()
    assert statistics.accumulate(items, '13C') == 1


def test_training_set_strictness(tmp_path):
    path = write_sdf(tmp_path / 'training.sdf', [('CC(C)O', "25.3;0.0Q|"), ('CC(C)O', ISOPROPANOL_SPECTRUM)])

    with pytest.raises(ValueError, match='Record 0'):
        load_training_set_sdf(path)
    assert len(load_training_set_sdf(path, strict=False)) == 1


@pytest.mark.parametrize('file_name', ['statistics.pkl', 'statistics.csv'])
def test_statistics_files(tmp_path, isopropanol_statistics, file_name):
    path = str(tmp_path / 'nested' / file_name)
    save_statistics(isopropanol_statistics, path)

    restored = load_statistics(path)
    assert dict(restored.items()) == dict(isopropanol_statistics.items())


def test_pickle_without_statistics(tmp_path):
    path = tmp_path / 'other.pkl'
    pd.DataFrame({'a': [1]}).to_pickle(str(path))
    with pytest.raises(ValueError):
        load_statistics(str(path))


def test_shift_statistics_file(tmp_path, isopropanol_item):
    shift_statistics = build_shift_statistics([isopropanol_item], '13C')
    path = str(tmp_path / 'shifts.csv')
    save_shift_statistics(shift_statistics, path)

    restored = load_shift_statistics(path)
    assert list(restored.index) == list(shift_statistics.index)
    assert restored['median'].tolist() == pytest.approx(shift_statistics['median'].tolist())


def test_training_set_solvent(tmp_path):
    mol = mol_from_smiles('CC(C)O')
    mol.SetProp('Spectrum 13C 0', ISOPROPANOL_SPECTRUM)
    mol.SetProp('Solvent', 'CDCl3 ')
    path = str(tmp_path / 'solvent.sdf')
    writer = Chem.SDWriter(path)
    writer.write(mol)
    writer.close()

    items = load_training_set_sdf(path)
    assert items[0].spectrum.meta['solvent'] == 'CDCl3'

    shift_statistics = build_shift_statistics(items, '13C')
    assert set(shift_statistics.index.get_level_values('solvent')) == {'CDCl3'}
