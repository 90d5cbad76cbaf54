from .connectivity_statistics import ConnectivityKey, ConnectivityStatistics, TrainingItem
from .constraint_filter import detect_connectivities

__all__ = [
    'ConnectivityKey',
    'ConnectivityStatistics',
    'TrainingItem',
    'detect_connectivities'
]
