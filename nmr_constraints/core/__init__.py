from .spectrum import Signal, Spectrum, Assignment
from .correlation import (
    Link,
    Correlation,
    Grouping,
    Fragment,
    Detections,
    MolecularConnectivity,
    ElucidationOptions
)
from .shift_matching import find_matches, correct_matches
from .grouping import build_groups
from .assembler import build_molecular_connectivity_map, build_molecular_connectivity_map_combination_list
from .similarity import match_spectra, calculate_tanimoto_coefficient
from .prediction import predict_1d, predict_2d, predict_hsqc, predict_hsqc_edited, predict_1d_and_filter_batch

__all__ = [
    'Signal',
    'Spectrum',
    'Assignment',
    'Link',
    'Correlation',
    'Grouping',
    'Fragment',
    'Detections',
    'MolecularConnectivity',
    'ElucidationOptions',
    'find_matches',
    'correct_matches',
    'build_groups',
    'build_molecular_connectivity_map',
    'build_molecular_connectivity_map_combination_list',
    'match_spectra',
    'calculate_tanimoto_coefficient',
    'predict_1d',
    'predict_2d',
    'predict_hsqc',
    'predict_hsqc_edited',
    'predict_1d_and_filter_batch'
]
