import math

import pytest

from nmr_constraints.core.similarity import (
    MultiplicitySectionsBuilder,
    calculate_average_deviation,
    calculate_rmsd,
    calculate_tanimoto_coefficient,
    get_deviations,
    match_spectra,
)
from nmr_constraints.core.spectrum import Signal, Spectrum


def build_spectrum(*peaks, nucleus='13C'):
    spectrum = Spectrum((nucleus,))
    for shift, multiplicity, equivalences in peaks:
        spectrum.add_signal_without_equivalence_search(Signal((nucleus,), [shift], multiplicity, equivalences))
    return spectrum


def test_match_spectra_closest_first():
    query = build_spectrum((20.0, 'q', 1), (60.0, 't', 1))
    candidate = build_spectrum((60.5, 't', 1), (21.0, 'q', 1), (100.0, 's', 1))
    assignment = match_spectra(query, candidate, 0, 0, 2.0)

    assert assignment.get_assignment(0, 0) == [1]
    assert assignment.get_assignment(0, 1) == [0]

    deviations = get_deviations(query, candidate, 0, 0, assignment)
    assert deviations == [1.0, 0.5]
    assert calculate_average_deviation(deviations) == pytest.approx(0.75)
    assert calculate_rmsd(deviations) == pytest.approx(math.sqrt(0.625))


def test_each_signal_used_once():
    query = build_spectrum((20.0, None, 1), (20.4, None, 1))
    candidate = build_spectrum((20.3, None, 1))
    assignment = match_spectra(query, candidate, 0, 0, 1.0)

    assert assignment.get_assignment(0, 0) == []
    assert assignment.get_assignment(0, 1) == [0]
    assert calculate_average_deviation(get_deviations(query, candidate, 0, 0, assignment)) is None


def test_equivalences_are_repeated():
    query = build_spectrum((25.0, 'q', 2))
    candidate = build_spectrum((25.1, 'q', 2))

    assert match_spectra(query, candidate, 0, 0, 1.0).get_assignment(0, 0) == [0, 0]
    assert match_spectra(query, build_spectrum((25.1, 'q', 1)), 0, 0, 1.0,
                         check_equivalences_count=True).get_assignment(0, 0) == []
    assert match_spectra(query, build_spectrum((25.1, 'q', 1)), 0, 0, 1.0, check_equivalences_count=True,
                         allow_lower_equivalences_count=True).get_assignment(0, 0) == [0]


def test_multiplicity_check():
    query = build_spectrum((20.0, 'q', 1))
    candidate = build_spectrum((20.1, 't', 1))

    assert match_spectra(query, candidate, 0, 0, 1.0).get_set_assignments_count(0) == 0
    assert match_spectra(query, candidate, 0, 0, 1.0, check_multiplicity=False).get_set_assignments_count(0) == 1


def test_missing_dimension():
    query = build_spectrum((20.0, 'q', 1))
    assert match_spectra(query, query, 0, 1, 1.0) is None
    assert calculate_tanimoto_coefficient(query, query, 1, 0) is None


def test_multiplicity_sections():
    builder = MultiplicitySectionsBuilder()
    spectrum = build_spectrum((20.0, 'q', 1), (21.0, 'q', 1), (60.0, 't', 1), (300.0, 's', 1))

    sections = builder.build_multiplicity_sections(spectrum, 0)
    assert sections['q'] == [8]
    assert sections['t'] == [16]
    assert sections['s'] == []
    assert builder.build_fingerprint(spectrum, 0).sum() == 2

    with pytest.raises(ValueError):
        MultiplicitySectionsBuilder(min_limit=10.0, max_limit=0.0)


def test_tanimoto_coefficient():
    spectrum1 = build_spectrum((20.0, 'q', 1), (60.0, 't', 1))
    spectrum2 = build_spectrum((21.0, 'q', 1), (60.5, 't', 1))
    spectrum3 = build_spectrum((21.0, 'q', 1), (130.0, 'd', 1))

    assert calculate_tanimoto_coefficient(spectrum1, spectrum2, 0, 0) == pytest.approx(1.0)
    assert calculate_tanimoto_coefficient(spectrum1, spectrum3, 0, 0) == pytest.approx(1 / 3)
    assert calculate_tanimoto_coefficient(Spectrum(('13C',)), Spectrum(('13C',)), 0, 0) is None
