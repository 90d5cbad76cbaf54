"""
Configuration file handler for nmr_constraints.
Loads a JSON or YAML config file and fills in defaults.
"""

import json
import yaml
import argparse
import logging
from typing import Dict, Any, Optional
import os

from ..constants import (
    DEFAULT_BOND_DISTANCES,
    DEFAULT_TOLERANCES,
    lower_element_count_threshold,
    upper_element_count_threshold,
)

logger = logging.getLogger(__name__)

LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR']


def load_config_file(config_path: str) -> Dict[str, Any]:
    """
    Load configuration from JSON or YAML file.

    Args:
        config_path: Path to configuration file (.json or .yaml/.yml)

    Returns:
        Dictionary of validated configuration parameters
    """
    if not os.path.isfile(config_path):
        raise FileNotFoundError(f"Config file not found: {config_path}")

    # Determine file type and load
    if config_path.endswith('.json'):
        with open(config_path, 'r') as f:
            config = json.load(f)
    elif config_path.endswith(('.yaml', '.yml')):
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)
    else:
        raise ValueError("Config file must be .json, .yaml, or .yml")

    if not isinstance(config, dict):
        raise ValueError(f"Config file {config_path} does not contain a mapping")

    return validate_config(config)


def _to_bond_distance(value, name: str):
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        raise ValueError(f"'{name}' must be a [min, max] pair")
    min_distance, max_distance = int(value[0]), int(value[1])
    if min_distance > max_distance or min_distance < 1:
        raise ValueError(f"Invalid '{name}': {value}")
    return [min_distance, max_distance]


def validate_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate and process configuration parameters.

    Args:
        config: Raw configuration dictionary

    Returns:
        Validated configuration with defaults for every optional field
    """
    required_fields = [
        'correlations_path',
        'molecular_formula',
        'output_directory',
    ]

    # Check required fields
    missing = [field for field in required_fields if config.get(field) in (None, '')]
    if missing:
        raise ValueError(f"Missing required fields: {missing}")

    # Validate file paths
    if not os.path.isfile(config['correlations_path']):
        raise FileNotFoundError(f"Correlations file not found: {config['correlations_path']}")

    if not os.path.exists(config['output_directory']):
        raise FileNotFoundError(f"Directory not found: {config['output_directory']}")

    for path_field in ('statistics_path', 'training_set_path'):
        if config.get(path_field) is not None and not os.path.isfile(config[path_field]):
            raise FileNotFoundError(f"File not found for '{path_field}': {config[path_field]}")
        config.setdefault(path_field, None)

    config['molecular_formula'] = str(config['molecular_formula']).replace(' ', '')
    config['nucleus'] = str(config.get('nucleus', '13C'))
    config.setdefault('save_statistics_path', None)
    config['base_name'] = str(config.get('base_name', 'compilation'))

    # Shift tolerances per atom type for equivalence grouping
    tolerances = dict(DEFAULT_TOLERANCES)
    tolerances.update({atom_type: float(tol) for atom_type, tol in (config.get('tolerances') or {}).items()})
    config['tolerances'] = tolerances

    # Convert numeric values
    config['lower_threshold'] = float(config.get('lower_threshold', lower_element_count_threshold))
    config['upper_threshold'] = float(config.get('upper_threshold', upper_element_count_threshold))
    for threshold_field in ('lower_threshold', 'upper_threshold'):
        if not 0.0 <= config[threshold_field] <= 1.0:
            raise ValueError(f"'{threshold_field}' must be between 0 and 1")
    config['shift_tolerance'] = float(config.get('shift_tolerance', 0.0))
    config['n_workers'] = int(config.get('n_workers', 1))
    if config['n_workers'] < 1:
        raise ValueError("'n_workers' must be at least 1")

    config['bond_distances'] = {
        'hmbc': _to_bond_distance(config.get('hmbc_bond_distance', DEFAULT_BOND_DISTANCES['hmbc']),
                                  'hmbc_bond_distance'),
        'cosy': _to_bond_distance(config.get('cosy_bond_distance', DEFAULT_BOND_DISTANCES['cosy']),
                                  'cosy_bond_distance'),
    }

    # Solver options
    config['use_elim'] = bool(config.get('use_elim', False))
    config['elim_p1'] = int(config.get('elim_p1', 1))
    config['elim_p2'] = int(config.get('elim_p2', 4))
    config['allow_hetero_hetero_bonds'] = bool(config.get('allow_hetero_hetero_bonds', False))
    filter_paths = config.get('filter_paths') or []
    if isinstance(filter_paths, str):
        filter_paths = [path.strip() for path in filter_paths.split(',') if path.strip()]
    config['filter_paths'] = list(filter_paths)
    config['use_neighbors_files'] = bool(config.get('use_neighbors_files', False))

    # Fragments: SMILES strings or {'smiles': ..., 'include': ...}
    fragments = []
    for fragment in config.get('fragments') or []:
        if isinstance(fragment, str):
            fragments.append({'smiles': fragment, 'include': True})
        elif isinstance(fragment, dict) and 'smiles' in fragment:
            fragments.append({'smiles': fragment['smiles'], 'include': bool(fragment.get('include', True))})
        else:
            raise ValueError(f"Invalid fragment entry: {fragment}")
    config['fragments'] = fragments

    log_level = str(config.get('log_level', 'INFO')).upper()
    if log_level not in LOG_LEVELS:
        raise ValueError(f"'log_level' must be one of {LOG_LEVELS}")
    config['log_level'] = log_level

    return config


def parse_arguments(argv: Optional[list] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='nmr_constraints: compile NMR correlations into LSD/PyLSD solver input files',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    nmr-constraints --config config.json
    nmr-constraints -c config.yaml -v
        """
    )

    parser.add_argument(
        '-c', '--config',
        type=str,
        required=True,
        help='Path to configuration file (JSON or YAML).'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Log debug messages.'
    )

    return parser.parse_args(argv)


def get_parameters(argv: Optional[list] = None) -> Dict[str, Any]:
    """
    Get parameters from the config file given on the command line.

    Returns:
        Dictionary of all parameters needed for the compilation
    """
    args = parse_arguments(argv)
    parameters = load_config_file(args.config)
    if args.verbose:
        parameters['log_level'] = 'DEBUG'

    logger.info(f"Configuration loaded from {args.config}")
    logger.info(f"  Correlations file: {parameters['correlations_path']}")
    logger.info(f"  Molecular formula: {parameters['molecular_formula']}")
    logger.info(f"  Output directory: {parameters['output_directory']}")
    logger.info(f"  Statistics: {parameters['statistics_path'] or parameters['training_set_path'] or 'none'}")

    return parameters
