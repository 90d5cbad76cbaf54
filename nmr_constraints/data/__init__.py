from .load_data import load_correlations, load_spectrum_csv, load_training_set_sdf, load_statistics

__all__ = [
    'load_correlations',
    'load_spectrum_csv',
    'load_training_set_sdf',
    'load_statistics'
]
