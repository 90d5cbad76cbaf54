"""
Data Loading Module

Readers and writers for everything the compiler consumes:
- Correlation lists (NMRium-like JSON, camelCase or snake_case keys)
- 1D peak tables (CSV)
- Assigned reference spectra (nmrshiftdb2-style SDF) as training items
- Connectivity statistics (pickle or CSV) and shift statistics (CSV)

Malformed input raises ValueError, missing files FileNotFoundError.
"""

import json
import logging
import os
import pickle
from typing import Any, Dict, List, Optional

import pandas as pd
from rdkit import Chem

from ..analysis.connectivity_statistics import ConnectivityStatistics, TrainingItem
from ..constants import hybridizationConversionMap
from ..core.correlation import Correlation, Link
from ..core.spectrum import Assignment, Signal, Spectrum
from ..utils.nmr_utils import get_nucleus_from_atom_type

logger = logging.getLogger(__name__)


def _check_file(path: str):
    if not os.path.exists(path):
        raise FileNotFoundError(f"File not found: {path}")


def _get(entry: Dict[str, Any], *keys, default=None):
    for key in keys:
        if key in entry:
            return entry[key]
    return default


def _parse_hybridizations(values) -> set:
    hybridizations = set()
    for value in values or []:
        if isinstance(value, str):
            if value.upper() not in hybridizationConversionMap:
                raise ValueError(f"Unknown hybridization: {value}")
            hybridizations.add(hybridizationConversionMap[value.upper()])
        else:
            hybridizations.add(int(value))
    return hybridizations


def _parse_path_length(value):
    if value is None:
        return None
    if isinstance(value, dict):
        return int(value['min']), int(value['max'])
    if len(value) != 2:
        raise ValueError(f"Path length needs a minimum and a maximum: {value}")
    return int(value[0]), int(value[1])


def _parse_signal(entry: Optional[Dict[str, Any]], atom_type: str) -> Optional[Signal]:
    if not entry:
        return None
    shift = _get(entry, 'delta', 'shift')
    if shift is None:
        return None
    nucleus = get_nucleus_from_atom_type(atom_type)
    if nucleus is None:
        raise ValueError(f"No nucleus known for atom type {atom_type}")
    return Signal(nuclei=(nucleus,), shifts=[float(shift)], multiplicity=entry.get('multiplicity'),
                  kind=entry.get('kind', 'signal'))


def parse_correlation(entry: Dict[str, Any]) -> Correlation:
    atom_type = _get(entry, 'atomType', 'atom_type')
    if not atom_type:
        raise ValueError(f"Correlation without atom type: {entry}")

    links = []
    for link_entry in _get(entry, 'link', 'links', default=[]):
        experiment_type = _get(link_entry, 'experimentType', 'experiment_type')
        if not experiment_type:
            raise ValueError(f"Link without experiment type: {link_entry}")
        links.append(Link(
            experiment_type=experiment_type.lower(),
            match=[int(index) for index in link_entry.get('match', [])],
            path_length=_parse_path_length(_get(link_entry, 'pathLength', 'path_length')),
            pseudo=bool(link_entry.get('pseudo', False)),
        ))

    return Correlation(
        atom_type=atom_type,
        signal=_parse_signal(entry.get('signal'), atom_type),
        hybridization=_parse_hybridizations(entry.get('hybridization')),
        proton_counts={int(count) for count in _get(entry, 'protonsCount', 'proton_counts', default=[]) or []},
        equivalence=int(entry.get('equivalence', 1)),
        pseudo=bool(entry.get('pseudo', False)),
        edited=dict(entry.get('edited') or {}),
        links=links,
    )


def parse_correlations(data) -> List[Correlation]:
    """Correlations from a list, or from a dict holding them under 'values' / 'correlations'."""
    if isinstance(data, dict):
        data = _get(data, 'values', 'correlations')
    if not isinstance(data, list):
        raise ValueError("Correlation data must be a list of correlations")
    correlations = [parse_correlation(entry) for entry in data]

    for i, correlation in enumerate(correlations):
        for link in correlation.links:
            for match_index in link.match:
                if not 0 <= match_index < len(correlations):
                    raise ValueError(f"Correlation {i} links to unknown correlation {match_index}")
    return correlations


def load_correlations(correlations_path: str) -> List[Correlation]:
    """
    Load a correlation list from JSON.

    Args:
        correlations_path: Path to a JSON file; either a list of
            correlations or an object with a 'values' list.

    Returns:
        List of Correlation objects in file order.
    """
    _check_file(correlations_path)
    with open(correlations_path, 'r') as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {correlations_path}: {e}")
    correlations = parse_correlations(data)
    logger.info(f"Loaded {len(correlations)} correlations from {correlations_path}")
    return correlations


def load_spectrum_csv(spectrum_path: str, nucleus: str = '13C') -> Spectrum:
    """
    Load a 1D peak table.

    Columns: `shift` (required), `multiplicity` and `equivalences`
    (optional). Every row becomes one signal.
    """
    _check_file(spectrum_path)
    df = pd.read_csv(spectrum_path)
    if 'shift' not in df.columns:
        raise ValueError(f"Spectrum file {spectrum_path} has no 'shift' column")
    if df['shift'].isnull().any():
        raise ValueError(f"Spectrum file {spectrum_path} contains rows without shift")

    spectrum = Spectrum(nuclei=(nucleus,))
    for _, row in df.iterrows():
        multiplicity = row['multiplicity'] if 'multiplicity' in df.columns else None
        if isinstance(multiplicity, str):
            multiplicity = multiplicity.strip().lower()
        else:
            multiplicity = None
        equivalences = int(row['equivalences']) if 'equivalences' in df.columns \
            and not pd.isnull(row['equivalences']) else 1
        spectrum.add_signal_without_equivalence_search(
            Signal(nuclei=(nucleus,), shifts=[float(row['shift'])], multiplicity=multiplicity,
                   equivalences_count=equivalences))
    return spectrum


def parse_nmrshiftdb_spectrum(spectrum_string: str, nucleus: str) -> tuple:
    """
    Parse a 'shift;intensity[multiplicity];atomIndex|...' property value.

    Entries with identical shift and multiplicity are merged into one
    signal with the atoms assigned as equivalents.

    Returns:
        (Spectrum, Assignment)
    """
    spectrum = Spectrum(nuclei=(nucleus,))
    assignment = Assignment((nucleus,))
    for entry in spectrum_string.strip().split('|'):
        entry = entry.strip()
        if not entry:
            continue
        parts = entry.split(';')
        if len(parts) != 3:
            raise ValueError(f"Invalid spectrum entry: {entry}")
        try:
            shift = float(parts[0])
            atom_index = int(parts[2])
        except ValueError:
            raise ValueError(f"Invalid spectrum entry: {entry}")
        intensity = parts[1].strip()
        multiplicity = intensity[-1].lower() if intensity and intensity[-1].isalpha() else None

        signal = Signal(nuclei=(nucleus,), shifts=[shift], multiplicity=multiplicity)
        signal_index = spectrum.add_signal(signal, pick_precisions=[0.0], check_multiplicity=True)
        assignment.add_assignment_equivalence(0, signal_index, atom_index)
    return spectrum, assignment


def load_training_set_sdf(sdf_path: str, nucleus: str = '13C', spectrum_property: Optional[str] = None,
                          strict: bool = True, solvent_property: str = 'Solvent') -> List[TrainingItem]:
    """
    Load assigned reference spectra from an SDF file.

    Args:
        sdf_path: Path to the SDF file.
        nucleus: Nucleus of the spectra to read.
        spectrum_property: Name of the spectrum property; the first
            property starting with 'Spectrum <nucleus>' if not given.
        strict: Raise ValueError on unreadable records instead of
            skipping them.
        solvent_property: Record property holding the solvent, stored as
            the spectrum's 'solvent' meta info when present.

    Returns:
        List of TrainingItem, records without a spectrum are skipped.
    """
    _check_file(sdf_path)
    prefix = f"Spectrum {nucleus}"
    supplier = Chem.SDMolSupplier(sdf_path, removeHs=False)
    items = []
    for record_index, mol in enumerate(supplier):
        if mol is None:
            if strict:
                raise ValueError(f"Unreadable structure in record {record_index} of {sdf_path}")
            logger.warning(f"Skipping unreadable structure in record {record_index} of {sdf_path}")
            continue
        property_name = spectrum_property
        if property_name is None:
            property_name = next((name for name in mol.GetPropNames() if name.startswith(prefix)), None)
        if property_name is None or not mol.HasProp(property_name):
            continue
        try:
            spectrum, assignment = parse_nmrshiftdb_spectrum(mol.GetProp(property_name), nucleus)
        except ValueError as e:
            if strict:
                raise ValueError(f"Record {record_index} of {sdf_path}: {e}")
            logger.warning(f"Skipping record {record_index} of {sdf_path}: {e}")
            continue
        if mol.HasProp(solvent_property):
            spectrum.add_meta_info('solvent', mol.GetProp(solvent_property).strip())
        name = mol.GetProp('_Name') if mol.HasProp('_Name') else str(record_index)
        items.append(TrainingItem(structure=mol, spectrum=spectrum, assignment=assignment, name=name))

    logger.info(f"Loaded {len(items)} training items from {sdf_path}")
    return items


def save_statistics(statistics: ConnectivityStatistics, path: str):
    """Write connectivity statistics as pickle (.pkl) or CSV (.csv)."""
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    if path.endswith('.csv'):
        statistics.to_dataframe().to_csv(path, index=False)
    else:
        with open(path, 'wb') as f:
            pickle.dump(statistics, f)
    logger.info(f"Connectivity statistics saved to {path}")


def load_statistics(path: str) -> ConnectivityStatistics:
    _check_file(path)
    if path.endswith('.csv'):
        return ConnectivityStatistics.from_dataframe(pd.read_csv(path))
    with open(path, 'rb') as f:
        statistics = pickle.load(f)
    if not isinstance(statistics, ConnectivityStatistics):
        raise ValueError(f"{path} does not contain connectivity statistics")
    return statistics


def save_shift_statistics(shift_statistics: pd.DataFrame, path: str):
    shift_statistics.to_csv(path)


def load_shift_statistics(path: str) -> pd.DataFrame:
    _check_file(path)
    return pd.read_csv(path, index_col=['code', 'solvent'])
