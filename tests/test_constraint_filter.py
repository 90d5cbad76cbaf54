from nmr_constraints.analysis.connectivity_statistics import ConnectivityStatistics
from nmr_constraints.analysis.constraint_filter import (
    build_fixed_neighbors_by_inadequate,
    build_forbidden_neighbors,
    detect_connectivities,
    get_known_carbon_hybridizations,
    reduce_default_hybridizations_and_proton_counts,
)
from nmr_constraints.core.correlation import Correlation, Fragment, Link
from nmr_constraints.utils.structure import mol_from_smiles

from conftest import carbon, proton


def test_forbidden_neighbors_at_observed_hybridization():
    forbidden = build_forbidden_neighbors({'C': {3: {3}}, 'O': {3: {1}}}, {'C', 'H', 'O'})

    assert forbidden['C'] == {1: {0, 1, 2, 3}, 2: {0, 1, 2, 3}, 3: {0, 1, 2}}
    assert forbidden['O'] == {2: {0, 1}, 3: {0}}
    assert 'H' not in forbidden


def test_forbidden_neighbors_full_coverage_and_absent_types():
    forbidden = build_forbidden_neighbors({'O': {2: {0, 1}, 3: {0, 1}}, 'C': {}}, {'C', 'N', 'O'})

    assert 'O' not in forbidden
    assert 'C' not in forbidden
    assert forbidden['N'] == {}


def test_narrowing_fills_empty_candidate_sets():
    correlations = [carbon(64.0), Correlation(atom_type='O')]
    detected_hybridizations = {}
    reduce_default_hybridizations_and_proton_counts(correlations, {0: {'O': {3: {1}}}}, detected_hybridizations)

    assert correlations[1].hybridization == {3}
    assert correlations[1].proton_counts == {1}
    assert detected_hybridizations == {1: [3]}


def test_narrowing_without_evidence_uses_defaults():
    correlations = [carbon(64.0), Correlation(atom_type='N')]
    reduce_default_hybridizations_and_proton_counts(correlations, {}, {})

    assert correlations[1].hybridization == {1, 2, 3}
    assert correlations[1].proton_counts == {0, 1, 2}


def test_narrowing_respects_edited_flags():
    detected = {0: {'O': {3: {1}}}}
    unedited = Correlation(atom_type='O', hybridization={2, 3}, proton_counts={0, 1},
                           edited={'hybridization': False, 'protonsCount': False})
    user_edited = Correlation(atom_type='O', hybridization={2, 3}, proton_counts={0, 1},
                              edited={'hybridization': True, 'protonsCount': True})
    no_flags = Correlation(atom_type='O', hybridization={2, 3}, proton_counts={0, 1})
    correlations = [carbon(64.0), unedited, user_edited, no_flags]

    reduce_default_hybridizations_and_proton_counts(correlations, detected, {})

    assert unedited.hybridization == {3}
    assert unedited.proton_counts == {1}
    assert user_edited.hybridization == {2, 3}
    assert user_edited.proton_counts == {0, 1}
    assert no_flags.hybridization == {2, 3}
    assert no_flags.proton_counts == {0, 1}


def test_narrowing_ignores_hetero_atom_evidence():
    # connectivities detected for a nitrogen correlation do not narrow the oxygen
    correlations = [Correlation(atom_type='N'),
                    Correlation(atom_type='O', hybridization={2, 3}, edited={'hybridization': False})]
    reduce_default_hybridizations_and_proton_counts(correlations, {0: {'O': {3: {1}}}}, {})

    assert correlations[1].hybridization == {2, 3}


def test_inadequate_pairs_stored_once():
    correlations = [
        carbon(20.0, links=[Link('inadequate', [1])]),
        carbon(30.0, links=[Link('inadequate', [0, 2])]),
        carbon(40.0, links=[Link('inadequate', [1])], equivalence=2),
    ]
    assert build_fixed_neighbors_by_inadequate(correlations) == {0: {1}}


def test_known_carbon_hybridizations():
    assert get_known_carbon_hybridizations([carbon(20.0)]) == {1, 2, 3}
    assert get_known_carbon_hybridizations([carbon(20.0, hybridizations=[3]),
                                            carbon(120.0, hybridizations=[2]),
                                            carbon(10.0, hybridizations=[1], pseudo=True)]) == {2, 3}


def test_detect_connectivities(isopropanol_statistics):
    correlations = [
        carbon(64.5, [1], [3], [Link('hsqc', [2])]),
        carbon(25.1, [3], [3], [Link('hsqc', [3])]),
        proton(4.0, [Link('hsqc', [0])]),
        proton(1.2, [Link('hsqc', [1])]),
        Correlation(atom_type='O'),
    ]
    fragment = Fragment(structure=mol_from_smiles('CO'))
    detections = detect_connectivities(correlations, isopropanol_statistics, {'C': 3, 'H': 8, 'O': 1},
                                       fragments=[fragment])

    assert detections.detected_connectivities[0] == {'C': {3: {3}}, 'O': {3: {1}}}
    assert detections.forbidden_neighbors[0]['O'] == {2: {0, 1}, 3: {0}}
    assert detections.set_neighbors[0] == {'C': {}}
    assert detections.detected_connectivities[1] == {'C': {3: {1}}}
    assert detections.forbidden_neighbors[1]['O'] == {}
    assert correlations[4].hybridization == {3}
    assert correlations[4].proton_counts == {1}
    assert detections.detected_hybridizations[4] == [3]
    assert detections.fragments == [fragment]


def test_detect_connectivities_pools_shift_bins(isopropanol_statistics):
    correlations = [carbon(62.8, [1], [3])]

    assert detect_connectivities(correlations, isopropanol_statistics,
                                 {'C': 3, 'H': 8, 'O': 1}).detected_connectivities == {}
    detections = detect_connectivities(correlations, isopropanol_statistics, {'C': 3, 'H': 8, 'O': 1},
                                       shift_tolerance=1.5)
    assert detections.detected_connectivities[0] == {'C': {3: {3}}, 'O': {3: {1}}}


def test_detect_connectivities_without_statistics():
    correlations = [carbon(64.5, [1], [3]), Correlation(atom_type='O')]
    detections = detect_connectivities(correlations, ConnectivityStatistics(), {'C': 3, 'H': 8, 'O': 1})

    assert detections.forbidden_neighbors == {}
    assert detections.set_neighbors == {}
    assert correlations[1].hybridization == {2, 3}
    assert correlations[1].proton_counts == {0, 1}
