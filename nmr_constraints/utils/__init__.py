from .nmr_utils import *
from .structure import *

__all__ = [
    'get_atom_type_from_nucleus',
    'get_multiplicity_from_protons_count',
    'get_molecular_formula_element_counts',
    'mol_from_smiles',
    'canonical_smiles',
]
