"""
Physical constants, default values, and system-wide constants.
"""
from typing import Dict, Final

# Unit conversions
MM_PER_M: Final[float] = 1000.0
HOURS_PER_DAY: Final[float] = 24.0

# Sublayer slots per soil layer (thawed, frozen, unfrozen)
N_SUBLAYERS: Final[int] = 3

# A frozen sublayer is treated as an ice lens when its liquid water
# capacity (as a volumetric fraction) falls below this value and it is
# thicker than FROZEN_IMPERMEABLE_THICKNESS_M.
FROZEN_IMPERMEABLE_CAPACITY: Final[float] = 0.13
FROZEN_IMPERMEABLE_THICKNESS_M: Final[float] = 0.05

# Thermal properties of soil constituents
THERMAL_CONDUCTIVITY: Final[Dict[str, float]] = {
    "water": 0.57,  # W/m/K
    "ice": 2.2,
    "quartz": 7.7,
    "other_minerals_fine": 2.0,
    "other_minerals_coarse": 3.0,
}

VOLUMETRIC_HEAT_CAPACITY: Final[Dict[str, float]] = {
    "mineral": 2.0e6,  # J/m³/K
    "water": 4.2e6,
    "ice": 1.9e6,
}
