"""
This file contains constants and compile defaults.
"""

## Continuous motions
# Half-width of the dihedral angle interval compiled around a conformation's as-built angle
DEFAULT_DIHEDRAL_RADIUS_DEGREES = 9.0
# Rotating a lone hydroxyl hydrogen is allowed by default
DEFAULT_INCLUDE_HYDROXYLS = True
# Rotating other all-hydrogen groups (eg. methyls) is not
DEFAULT_INCLUDE_NON_HYDROXYL_H_GROUPS = False

## Atom pair encoding
# Static atoms are stored in atom pairs as -(static index) - 1
STATIC_INDEX_OFFSET = 1

## Geometry
# Anchor atoms closer than this to a line can't define an orientation (Angstrom)
COLLINEAR_TOLERANCE = 1e-3

## Bond orders
# Accepted bond orders, aromatic bonds are stored as 1.5
BOND_ORDERS = (1.0, 1.5, 2.0, 3.0)

## Electrostatics
# Coulomb constant in kcal*Angstrom/(mol*e^2)
COULOMB_CONSTANT = 332.0636
DEFAULT_DIELECTRIC = 1.0
DEFAULT_DISTANCE_DEPENDENT_DIELECTRIC = False
# Number of decimals kept for partial charges, charges equal at this precision are considered unchanged
DEFAULT_CHARGE_PRECISION = 3

## Bonded scaling
# Atoms 1 or 2 bonds apart do not interact through non-bonded terms
BONDED_EXCLUSION_DISTANCE = 2
# Bonded distance of a 1-4 pair
BONDED_DISTANCE_14 = 3
DEFAULT_SCALE_14_VDW = 0.5
DEFAULT_SCALE_14_ELEC = 1.0 / 1.2
