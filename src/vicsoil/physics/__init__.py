"""Physics modules for the soil column water balance."""
from vicsoil.physics.water_balance import (
    SoilColumnRunoff,
    runoff,
)
from vicsoil.physics.infiltration import (
    arno_surface_runoff,
    upper_zone_moisture,
)
from vicsoil.physics.vertical_flux import (
    VerticalFluxIntegrator,
    brooks_corey_conductivity,
)
from vicsoil.physics.baseflow import arno_baseflow
from vicsoil.physics.thermal import (
    JohansenThermalCalculator,
    average_layer_states,
)

__all__ = [
    "SoilColumnRunoff",
    "runoff",
    # Process closures
    "arno_surface_runoff",
    "upper_zone_moisture",
    "VerticalFluxIntegrator",
    "brooks_corey_conductivity",
    "arno_baseflow",
    # Thermal collaborators
    "JohansenThermalCalculator",
    "average_layer_states",
]
