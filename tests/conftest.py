import pytest

from nmr_constraints.analysis.connectivity_statistics import ConnectivityStatistics, TrainingItem
from nmr_constraints.core.correlation import Correlation, Link
from nmr_constraints.core.spectrum import Signal
from nmr_constraints.data.load_data import parse_nmrshiftdb_spectrum
from nmr_constraints.utils.structure import mol_from_smiles

ISOPROPANOL_SPECTRUM = "25.3;0.0Q;0|25.3;0.0Q;2|64.2;0.0D;1|"


def carbon(shift, proton_counts=(), hybridizations=(), links=(), equivalence=1, pseudo=False):
    return Correlation(atom_type='C', signal=Signal(('13C',), [shift]), hybridization=set(hybridizations),
                       proton_counts=set(proton_counts), equivalence=equivalence, pseudo=pseudo,
                       links=list(links))


def proton(shift, links=()):
    return Correlation(atom_type='H', signal=Signal(('1H',), [shift]), links=list(links))


@pytest.fixture
def ethanol_correlations():
    """CH2 (0), CH3 (1), their protons (2, 3) and the oxygen (4)."""
    return [
        carbon(58.2, [2], [3], [Link('hsqc', [2]), Link('hmbc', [3])]),
        carbon(18.1, [3], [3], [Link('hsqc', [3]), Link('hmbc', [2])]),
        proton(3.69, [Link('hsqc', [0]), Link('cosy', [3])]),
        proton(1.22, [Link('hsqc', [1]), Link('cosy', [2])]),
        Correlation(atom_type='O'),
    ]


@pytest.fixture
def ethanol_correlations_data():
    """The ethanol correlations as they are stored in a correlations file."""
    return {
        'values': [
            {'atomType': 'C', 'signal': {'delta': 58.2}, 'hybridization': ['SP3'], 'protonsCount': [2],
             'link': [{'experimentType': 'HSQC', 'match': [2]}, {'experimentType': 'hmbc', 'match': [3]}]},
            {'atomType': 'C', 'signal': {'delta': 18.1}, 'hybridization': [3], 'protonsCount': [3],
             'link': [{'experimentType': 'hsqc', 'match': [3]}, {'experimentType': 'hmbc', 'match': [2]}]},
            {'atomType': 'H', 'signal': {'delta': 3.69},
             'link': [{'experimentType': 'hsqc', 'match': [0]}, {'experimentType': 'cosy', 'match': [3]}]},
            {'atom_type': 'H', 'signal': {'shift': 1.22},
             'links': [{'experiment_type': 'hsqc', 'match': [1]},
                       {'experiment_type': 'cosy', 'match': [2], 'path_length': [3, 3]}]},
            {'atomType': 'O'},
        ]
    }


@pytest.fixture
def isopropanol_item():
    spectrum, assignment = parse_nmrshiftdb_spectrum(ISOPROPANOL_SPECTRUM, '13C')
    return TrainingItem(structure=mol_from_smiles('CC(C)O'), spectrum=spectrum, assignment=assignment,
                        name='isopropanol')


@pytest.fixture
def isopropanol_statistics(isopropanol_item):
    """Two identical isopropanol entries."""
    statistics = ConnectivityStatistics()
    statistics.accumulate([isopropanol_item, isopropanol_item], '13C')
    return statistics
