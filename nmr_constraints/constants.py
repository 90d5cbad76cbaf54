"""
Constants and configuration values for nmr_constraints.
"""

# Hybridization states as written to the solver input (1 = sp, 2 = sp2, 3 = sp3)
hybridizationConversionMap = {
    'SP1': 1,
    'SP2': 2,
    'SP3': 3,
}

# Default hybridization states per heavy atom type
defaultHybridizationMap = {
    'C': [1, 2, 3],
    'N': [1, 2, 3],
    'O': [2, 3],
    'S': [1, 2, 3],
    'P': [1, 2, 3],
    'Si': [3],
    'F': [3],
    'Cl': [3],
    'Br': [3],
    'I': [3],
}

# Default attached proton counts per heavy atom type (lowest valence)
defaultProtonsCountPerValencyMap = {
    'C': [0, 1, 2, 3],
    'N': [0, 1, 2],
    'O': [0, 1],
    'S': [0, 1],
    'P': [0, 1, 2],
    'Si': [0, 1, 2, 3],
    'F': [0],
    'Cl': [0],
    'Br': [0],
    'I': [0],
}

# Atom labels understood by the solver (valence encoded in the label)
defaultAtomLabelMap = {
    'C': 'C',
    'N': 'N',
    'O': 'O',
    'S': 'S',
    'P': 'P',
    'Si': 'Si',
    'F': 'F',
    'Cl': 'Cl',
    'Br': 'Br',
    'I': 'I',
}

# Isotope labels per element
nucleusMap = {
    'H': '1H',
    'C': '13C',
    'N': '15N',
    'O': '17O',
    'F': '19F',
    'P': '31P',
    'S': '33S',
    'Si': '29Si',
}

# Multiplicity labels per attached proton count
multiplicityMap = {
    0: 's',
    1: 'd',
    2: 't',
    3: 'q',
}

# Bond distance ranges [min, max] used when a 2D link carries no path length
DEFAULT_BOND_DISTANCES = {
    'hmbc': [2, 3],
    'cosy': [3, 4],
}

# Shift tolerances (ppm) for equivalence grouping
DEFAULT_TOLERANCES = {
    'C': 0.25,
    'H': 0.02,
    'N': 0.25,
}

# Connectivity statistics thresholds
lower_element_count_threshold = 0.1  # forbidden neighbors
upper_element_count_threshold = 0.5  # neighbors that have to be present

# Hetero atom proton distributions above this count are not enumerated
maxCombinations = 64
