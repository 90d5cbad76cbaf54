from .config_handler import load_config_file, validate_config, get_parameters

__all__ = [
    'load_config_file',
    'validate_config',
    'get_parameters'
]
