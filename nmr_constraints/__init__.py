"""
nmr_constraints - NMR correlation to structure-solver constraint compiler

Turns experimental 1D/2D NMR correlations, a molecular formula and
statistics mined from assigned reference spectra into LSD/PyLSD input
files for computer-assisted structure elucidation.
"""

import logging

from .version import __version__
from .main import (
    compile_constraints,
    run_pipeline,
    cli_entry
)
from .constants import (
    DEFAULT_BOND_DISTANCES,
    DEFAULT_TOLERANCES,
    lower_element_count_threshold,
    upper_element_count_threshold
)
from .core.spectrum import Signal, Spectrum, Assignment
from .core.correlation import Correlation, Link, Fragment, ElucidationOptions
from .core.shift_matching import find_matches, correct_matches
from .analysis.connectivity_statistics import ConnectivityStatistics
from .analysis.constraint_filter import detect_connectivities
from .data.load_data import load_correlations, load_training_set_sdf
from .output.lsd_input_file import build_input_file_content_list, write_input_files

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    '__version__',
    'compile_constraints',
    'run_pipeline',
    'cli_entry',
    'DEFAULT_BOND_DISTANCES',
    'DEFAULT_TOLERANCES',
    'lower_element_count_threshold',
    'upper_element_count_threshold',
    'Signal',
    'Spectrum',
    'Assignment',
    'Correlation',
    'Link',
    'Fragment',
    'ElucidationOptions',
    'find_matches',
    'correct_matches',
    'ConnectivityStatistics',
    'detect_connectivities',
    'load_correlations',
    'load_training_set_sdf',
    'build_input_file_content_list',
    'write_input_files'
]
