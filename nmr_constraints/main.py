"""
Main entry point for nmr_constraints package.
"""

import logging
import os
import time
from typing import Any, Dict, List, Optional

import yaml

from .analysis.connectivity_statistics import ConnectivityStatistics
from .analysis.constraint_filter import detect_connectivities
from .config.config_handler import get_parameters, load_config_file, validate_config
from .core.correlation import ElucidationOptions, Fragment
from .core.grouping import build_groups
from .data.load_data import load_correlations, load_statistics, load_training_set_sdf, save_statistics
from .output.lsd_input_file import build_input_file_content_list, write_input_files
from .utils.nmr_utils import get_molecular_formula_element_counts
from .utils.structure import mol_from_smiles
from .version import __version__

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'


def compile_constraints(
    config_path: Optional[str] = None,
    correlations_path: Optional[str] = None,
    molecular_formula: Optional[str] = None,
    output_directory: Optional[str] = None,
    **kwargs
) -> Dict[str, Any]:
    """
    Main function to compile NMR correlations into solver input files.

    Parameters
    ----------
    config_path : str, optional
        Path to YAML or JSON configuration file. If provided, other parameters
        are loaded from config file.
    correlations_path : str, optional
        Path to the correlations JSON file. Used if config_path not provided.
    molecular_formula : str, optional
        Molecular formula of the unknown, e.g. 'C2H6O'.
    output_directory : str, optional
        Existing directory the solver input files are written to.
    **kwargs : dict
        Additional parameters:
        - statistics_path : str, optional
            Pickle or CSV file with connectivity statistics.
        - training_set_path : str, optional
            SDF file with assigned reference spectra; statistics are built
            from it when no statistics_path is given.
        - save_statistics_path : str, optional
            Where to save statistics built from the training set.
        - nucleus : str, optional
            Nucleus of the training spectra. Default: '13C'
        - tolerances : dict, optional
            Shift tolerance per atom type for equivalence grouping.
            Default: {'C': 0.25, 'H': 0.02, 'N': 0.25}
        - lower_threshold : float, optional
            Neighbor combinations below this fraction are forbidden. Default: 0.1
        - upper_threshold : float, optional
            Neighbor types at or above this fraction are required. Default: 0.5
        - shift_tolerance : float, optional
            Shift bins pooled on each side of a query shift. Default: 0.0
        - hmbc_bond_distance, cosy_bond_distance : [min, max], optional
            Default bond distances. Default: [2, 3] and [3, 4]
        - use_elim, elim_p1, elim_p2 : optional
            ELIM section. Default: off, 1, 4
        - allow_hetero_hetero_bonds : bool, optional
            Default: False
        - filter_paths : list of str, optional
            External filter files that must not match.
        - use_neighbors_files : bool, optional
            Write forbidden/set neighbors files. Default: False
        - fragments : list, optional
            SMILES strings or {'smiles': ..., 'include': ...} entries.
        - n_workers : int, optional
            Worker threads for statistics accumulation. Default: 1
        - base_name : str, optional
            File name stem of the written files. Default: 'compilation'

    Returns
    -------
    results : dict
        Dictionary containing:
        - 'contents': solver input text per variant
        - 'output_files': paths of the written files
        - 'correlations': the (narrowed) correlations
        - 'statistics': ConnectivityStatistics used, or None
        - 'detections': Detections
        - 'grouping': Grouping
        - 'execution_time': Total time taken (seconds)

    Examples
    --------
    Using config file:
    >>> import nmr_constraints
    >>> results = nmr_constraints.compile_constraints(config_path='config.yaml')

    With direct inputs:
    >>> results = nmr_constraints.compile_constraints(
    ...     correlations_path='correlations.json',
    ...     molecular_formula='C10H16O',
    ...     output_directory='./lsd/',
    ...     statistics_path='statistics.pkl',
    ...     use_elim=True,
    ... )
    """
    if config_path:
        logger.info(f"Loading configuration from: {config_path}")
        params = load_config_file(config_path)
    else:
        if not (correlations_path and molecular_formula and output_directory):
            raise ValueError("config_path or correlations_path, molecular_formula and "
                             "output_directory are required")
        params = _build_parameters_from_kwargs(correlations_path, molecular_formula, output_directory,
                                               **kwargs)

    return run_pipeline(params)


def _build_statistics(params: Dict[str, Any]) -> Optional[ConnectivityStatistics]:
    if params.get('statistics_path'):
        statistics = load_statistics(params['statistics_path'])
        logger.info(f"Loaded {len(statistics)} connectivity statistics entries")
        return statistics
    if params.get('training_set_path'):
        training_set = load_training_set_sdf(params['training_set_path'], params['nucleus'])
        statistics = ConnectivityStatistics()
        used = statistics.accumulate(training_set, params['nucleus'], params['n_workers'])
        logger.info(f"Built {len(statistics)} connectivity statistics entries from {used} training items")
        if params.get('save_statistics_path'):
            save_statistics(statistics, params['save_statistics_path'])
        return statistics
    logger.warning("No connectivity statistics given; neighbor constraints are skipped")
    return None


def _build_fragments(fragment_entries: List[Dict[str, Any]]) -> List[Fragment]:
    return [Fragment(structure=mol_from_smiles(entry['smiles']), include=entry['include'], label=entry['smiles'])
            for entry in fragment_entries]


def _build_options(params: Dict[str, Any]) -> ElucidationOptions:
    stem = os.path.join(params['output_directory'], params['base_name'])
    return ElucidationOptions(
        use_elim=params['use_elim'],
        elim_p1=params['elim_p1'],
        elim_p2=params['elim_p2'],
        allow_hetero_hetero_bonds=params['allow_hetero_hetero_bonds'],
        filter_paths=list(params['filter_paths']),
        path_to_fragment_files=f"{stem}_fragment" if params['fragments'] else None,
        path_to_neighbors_files=f"{stem}_neighbors" if params['use_neighbors_files'] else None,
    )


def save_parameters(params: Dict[str, Any], results: Dict[str, Any], output_directory: str) -> str:
    """Write the parameters and a short run summary to parameters.yaml."""
    summary = {
        'version': __version__,
        'parameters': params,
        'variants': len(results['contents']),
        'output_files': results['output_files'],
        'execution_time': round(results['execution_time'], 3),
    }
    path = os.path.join(output_directory, 'parameters.yaml')
    with open(path, 'w') as f:
        yaml.safe_dump(summary, f, default_flow_style=False, sort_keys=False)
    return path


def run_pipeline(params: Dict[str, Any]) -> Dict[str, Any]:
    """
    Execute the full compilation with given parameters.

    This function orchestrates the complete workflow:
    1. Load correlations
    2. Load or build connectivity statistics
    3. Detect forbidden and set neighbors, narrow hetero atom defaults
    4. Group equivalent correlations
    5. Build one molecular connectivity map per hetero atom proton variant
    6. Render and write the solver input files

    Parameters
    ----------
    params : dict
        Validated parameter dictionary (see `validate_config`).

    Returns
    -------
    results : dict
        See `compile_constraints`.
    """
    initial_time = time.perf_counter()

    logger.info("=== Loading Correlations ===")
    correlations = load_correlations(params['correlations_path'])
    element_counts = get_molecular_formula_element_counts(params['molecular_formula'])

    logger.info("=== Connectivity Statistics ===")
    statistics = _build_statistics(params)
    statistics_time = time.perf_counter()
    logger.info(f"Statistics time: {round(statistics_time - initial_time, 2)} seconds")

    logger.info("=== Detecting Connectivities ===")
    detections = detect_connectivities(
        correlations,
        statistics if statistics is not None else ConnectivityStatistics(),
        element_counts,
        params['lower_threshold'],
        params['upper_threshold'],
        params['shift_tolerance'],
        _build_fragments(params['fragments']),
    )

    logger.info("=== Grouping Equivalent Correlations ===")
    grouping = build_groups(correlations, params['tolerances'])

    logger.info("=== Rendering Solver Input ===")
    options = _build_options(params)
    contents = build_input_file_content_list(
        correlations,
        params['molecular_formula'],
        detections,
        grouping,
        options,
        params['bond_distances'],
    )
    output_files = write_input_files(contents, params['output_directory'], params['base_name'])

    total_time = time.perf_counter() - initial_time
    logger.info("=== Compilation Complete ===")
    logger.info(f"Total execution time: {round(total_time, 2)} seconds")
    for path in output_files:
        logger.info(f"  - {path}")

    results = {
        'contents': contents,
        'output_files': output_files,
        'correlations': correlations,
        'statistics': statistics,
        'detections': detections,
        'grouping': grouping,
        'execution_time': total_time,
    }

    save_parameters(params, results, params['output_directory'])

    return results


def _build_parameters_from_kwargs(correlations_path: str, molecular_formula: str, output_directory: str,
                                  **kwargs) -> Dict[str, Any]:
    """
    Build and validate parameter dictionary from keyword arguments.

    Accepts the same keys as a config file.

    Raises
    ------
    ValueError, FileNotFoundError
        See `validate_config`.
    """
    config = dict(kwargs)
    config['correlations_path'] = correlations_path
    config['molecular_formula'] = molecular_formula
    config['output_directory'] = output_directory
    return validate_config(config)


def cli_entry(argv: Optional[list] = None):
    """Console script entry point."""
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    params = get_parameters(argv)
    logging.getLogger('nmr_constraints').setLevel(params['log_level'])
    results = run_pipeline(params)
    return 0 if results['output_files'] else 1
