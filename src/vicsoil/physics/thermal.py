"""
Thermal properties after the moisture redistribution.

The wet and dry precipitation branches are averaged by area and handed to
a thermal property calculator; the resulting conductivity and heat
capacity are written back to both branches and to the top two thermal
nodes of the energy balance.

The default calculator follows Johansen (1975) for thermal conductivity
and de Vries (1963) for volumetric heat capacity.

References:
- Johansen, O. (1975). Thermal conductivity of soils. PhD thesis,
  University of Trondheim.
- de Vries, D.A. (1963). Thermal properties of soils. In: Physics of Plant
  Environment, North-Holland, Amsterdam.
- Farouki, O.T. (1986). Thermal properties of soils. Trans Tech, Clausthal.
"""
import logging
from typing import List, Optional, Sequence

import numpy as np

from vicsoil.core.constants import (
    MM_PER_M,
    THERMAL_CONDUCTIVITY,
    VOLUMETRIC_HEAT_CAPACITY,
)
from vicsoil.core.exceptions import ParameterError
from vicsoil.core.types import (
    EnergyState,
    LayerAverager,
    LayerState,
    SoilProperties,
    ThermalProperties,
    ThermalPropertyCalculator,
)

logger = logging.getLogger(__name__)


def average_layer_states(
    wet: LayerState,
    dry: Optional[LayerState],
    depth_m: float,
    mu: float
) -> LayerState:
    """
    Area-weighted average of the wet and dry branch states of a layer.

    `mu` is the wet fraction. Without a dry branch the wet state is copied.
    """
    if dry is None:
        return wet.copy()

    averaged = {
        name: mu * getattr(wet, name) + (1.0 - mu) * getattr(dry, name)
        for name in LayerState.numeric_fields()
    }
    return LayerState(**averaged)


def kersten_number(saturation: float, frozen: bool) -> float:
    """Normalised conductivity between the dry and saturated states"""
    if saturation <= 0.0:
        return 0.0
    if frozen:
        return min(saturation, 1.0)
    return float(np.clip(0.7 * np.log10(saturation) + 1.0, 0.0, 1.0))


def soil_conductivity(
    liquid: float,
    ice: float,
    porosity: float,
    bulk_density: float,
    soil_density: float,
    quartz: float
) -> float:
    """
    Johansen thermal conductivity (W/m/K).

    Args:
        liquid: Volumetric liquid water content
        ice: Volumetric ice content
        porosity: Volumetric porosity
        bulk_density: Bulk density (kg/m³)
        soil_density: Particle density (kg/m³)
        quartz: Quartz fraction of the solids

    Returns:
        Thermal conductivity
    """
    k_dry = (0.135 * bulk_density + 64.7) / (soil_density - 0.947 * bulk_density)

    if quartz < 0.2:
        k_other = THERMAL_CONDUCTIVITY["other_minerals_coarse"]
    else:
        k_other = THERMAL_CONDUCTIVITY["other_minerals_fine"]
    k_solids = THERMAL_CONDUCTIVITY["quartz"] ** quartz * k_other ** (1.0 - quartz)

    frozen = ice > 0.0
    if frozen:
        unfrozen_pores = min(liquid, porosity)
        k_sat = (
            k_solids ** (1.0 - porosity)
            * THERMAL_CONDUCTIVITY["ice"] ** (porosity - unfrozen_pores)
            * THERMAL_CONDUCTIVITY["water"] ** unfrozen_pores
        )
    else:
        k_sat = k_solids ** (1.0 - porosity) * THERMAL_CONDUCTIVITY["water"] ** porosity

    saturation = (liquid + ice) / porosity
    ke = kersten_number(saturation, frozen)

    return max((k_sat - k_dry) * ke + k_dry, k_dry)


def volumetric_heat_capacity(liquid: float, ice: float, porosity: float) -> float:
    """de Vries volumetric heat capacity (J/m³/K)"""
    return (
        VOLUMETRIC_HEAT_CAPACITY["mineral"] * (1.0 - porosity)
        + VOLUMETRIC_HEAT_CAPACITY["water"] * liquid
        + VOLUMETRIC_HEAT_CAPACITY["ice"] * ice
    )


class JohansenThermalCalculator:
    """
    Default thermal property calculator.

    Layer contents are reduced to volumetric liquid and ice fractions using
    the frost front depths stored on each layer.
    """

    def __call__(
        self,
        soil: SoilProperties,
        layers: Sequence[LayerState],
        energy: EnergyState,
        n_nodes: int
    ) -> ThermalProperties:
        if soil.bulk_density is None or soil.soil_density is None or soil.quartz is None:
            raise ParameterError(
                "Thermal calculations require bulk_density, soil_density and quartz"
            )

        porosity = soil.porosity
        kappa = np.zeros(len(layers))
        Cs = np.zeros(len(layers))

        for lindex, layer in enumerate(layers):
            depth = soil.depth[lindex]
            f_thaw = layer.tdepth / depth
            f_froz = (layer.fdepth - layer.tdepth) / depth
            f_unfr = 1.0 - f_thaw - f_froz

            volume = depth * MM_PER_M
            liquid = (
                layer.moist_thaw * f_thaw
                + layer.moist_froz * f_froz
                + layer.moist * f_unfr
            ) / volume
            ice = layer.ice * f_froz / volume

            kappa[lindex] = soil_conductivity(
                liquid, ice, porosity[lindex],
                soil.bulk_density[lindex], soil.soil_density[lindex],
                soil.quartz[lindex]
            )
            Cs[lindex] = volumetric_heat_capacity(liquid, ice, porosity[lindex])

        return ThermalProperties(kappa=kappa, Cs=Cs)


def reconcile_thermal(
    soil: SoilProperties,
    layers_wet: List[LayerState],
    layers_dry: Optional[List[LayerState]],
    energy: EnergyState,
    mu: float,
    n_nodes: int,
    averager: LayerAverager = average_layer_states,
    thermal: Optional[ThermalPropertyCalculator] = None
) -> List[LayerState]:
    """
    Recompute thermal properties from the new moisture distribution.

    Args:
        soil: Soil properties
        layers_wet: Wet branch layers, updated in place
        layers_dry: Dry branch layers (None without distributed
            precipitation), updated in place
        energy: Energy balance state, top two nodes updated in place
        mu: Wet area fraction
        n_nodes: Number of thermal nodes
        averager: Layer averaging collaborator
        thermal: Thermal property collaborator

    Returns:
        Area-averaged layer states carrying the new thermal properties
    """
    thermal = thermal or JohansenThermalCalculator()

    averaged = []
    for lindex, wet in enumerate(layers_wet):
        dry = layers_dry[lindex] if layers_dry is not None else None
        averaged.append(averager(wet, dry, soil.depth[lindex], mu))

    props = thermal(soil, averaged, energy, n_nodes)

    for lindex, layer in enumerate(averaged):
        layer.kappa = float(props.kappa[lindex])
        layer.Cs = float(props.Cs[lindex])

        layers_wet[lindex].kappa = layer.kappa
        layers_wet[lindex].Cs = layer.Cs
        if layers_dry is not None:
            layers_dry[lindex].kappa = layer.kappa
            layers_dry[lindex].Cs = layer.Cs

    # Surface nodes take the properties of the top layers; the layer/node
    # mapping assumes the default node spacing.
    for node in range(min(2, len(averaged), energy.n_nodes)):
        energy.kappa[node] = averaged[node].kappa
        energy.Cs[node] = averaged[node].Cs

    logger.debug(
        f"Thermal properties: kappa={np.round(props.kappa, 3).tolist()}, "
        f"Cs={np.round(props.Cs, -3).tolist()}"
    )

    return averaged
