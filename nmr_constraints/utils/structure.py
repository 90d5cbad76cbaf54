"""
Read-only access to chemical structures through RDKit.

Atom level questions the compiler asks about a structure (hybridization,
attached protons, heavy neighbors and bonds, canonical SMILES).
"""

from typing import List, Optional

from rdkit import Chem
from rdkit import RDLogger

# Suppress RDKit parser warnings, invalid input is reported by the callers
RDLogger.DisableLog('rdApp.warning')

_hybridization_names = {
    Chem.HybridizationType.SP: 'SP1',
    Chem.HybridizationType.SP2: 'SP2',
    Chem.HybridizationType.SP3: 'SP3',
}


def mol_from_smiles(smiles: str) -> Chem.Mol:
    mol = Chem.MolFromSmiles(smiles)
    if mol is None:
        raise ValueError(f"Invalid SMILES: {smiles}")
    return mol


def canonical_smiles(mol: Chem.Mol) -> str:
    return Chem.MolToSmiles(mol)


def get_hybridization_name(atom: Chem.Atom) -> Optional[str]:
    """SP1/SP2/SP3, or None if RDKit did not perceive one of those states."""
    return _hybridization_names.get(atom.GetHybridization())


def get_protons_count(atom: Chem.Atom) -> int:
    """Attached hydrogens, implicit and explicit."""
    return int(atom.GetTotalNumHs(includeNeighbors=True))


def get_heavy_neighbors(atom: Chem.Atom) -> List[Chem.Atom]:
    return [neighbor for neighbor in atom.GetNeighbors() if neighbor.GetAtomicNum() > 1]


def get_heavy_atom_indices(mol: Chem.Mol) -> List[int]:
    return [atom.GetIdx() for atom in mol.GetAtoms() if atom.GetAtomicNum() > 1]


def get_heavy_bonds(mol: Chem.Mol) -> List[tuple]:
    """(begin, end) atom index pairs of all bonds between heavy atoms."""
    bonds = []
    for bond in mol.GetBonds():
        begin = bond.GetBeginAtom()
        end = bond.GetEndAtom()
        if begin.GetAtomicNum() > 1 and end.GetAtomicNum() > 1:
            bonds.append((begin.GetIdx(), end.GetIdx()))
    return bonds
