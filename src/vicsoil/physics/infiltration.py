"""
Variable infiltration capacity (ARNO / Xinanjiang) surface runoff.

Infiltration capacity is assumed to vary within the grid cell following

    i = i_m × [1 - (1 - A)^(1/b)]

where A is the saturated area fraction and i_m = (1 + b) × W_max is the
maximum point infiltration capacity. Runoff is the part of the incoming
water that falls on saturated area or exceeds the local capacity.

References:
- Zhao, R.J. (1977). Flood forecasting method for humid regions of China.
  East China College of Hydraulic Engineering, Nanjing.
- Wood, E.F., Lettenmaier, D.P. and Zartarian, V.G. (1992). A land-surface
  hydrology parameterization with subgrid variability for general
  circulation models. J. Geophys. Res., 97(D3):2717-2728.
- Liang, X. et al. (1994). A simple hydrologically based model of land
  surface water and energy fluxes for general circulation models.
  J. Geophys. Res., 99(D7):14415-14428.
"""
import logging
from dataclasses import dataclass

import numpy as np

from vicsoil.core.types import LayerState, Sublayer
from vicsoil.physics.sublayers import SublayerState

logger = logging.getLogger(__name__)


@dataclass
class UpperZoneMoisture:
    """Aggregate moisture of the layers feeding the infiltration curve (mm)"""
    moist: float
    max_moist: float
    n_layers: int  # layers included in the aggregate


def upper_zone_moisture(state: SublayerState) -> UpperZoneMoisture:
    """
    Combine the top layers into one upper-zone store.

    The top two layers are combined when the column has more than two
    layers; otherwise only the first layer is used. Ice counts as
    occupied storage.
    """
    n_top = 2 if state.n_layers > 2 else 1

    top = slice(0, n_top)
    fraction = state.fraction[top]
    moist = float(np.sum((state.moist[top] + state.ice[top]) * fraction))
    max_moist = float(np.sum(state.max_moist[top] * fraction))

    return UpperZoneMoisture(
        moist=min(moist, max_moist),
        max_moist=max_moist,
        n_layers=n_top,
    )


def active_top_sublayer(layer: LayerState) -> Sublayer:
    """Uppermost non-empty slot of the surface layer"""
    if layer.tdepth > 0:
        return Sublayer.THAWED
    if layer.fdepth > 0:
        return Sublayer.FROZEN
    return Sublayer.UNFROZEN


def arno_surface_runoff(
    inflow: float,
    moist: float,
    max_moist: float,
    b_infilt: float
) -> float:
    """
    Infiltration-excess runoff for one time step.

    Wood et al. (1992), equations (1) and (3a/3b); (3b) is printed
    incorrectly in the paper and is used here in corrected form.

    Args:
        inflow: Water reaching the soil surface (mm)
        moist: Upper-zone moisture (mm), not above max_moist
        max_moist: Upper-zone capacity (mm)
        b_infilt: Infiltration curve shape parameter

    Returns:
        Surface runoff (mm), never negative
    """
    if inflow == 0.0:
        return 0.0

    max_infil = (1.0 + b_infilt) * max_moist
    if max_infil == 0.0:
        return inflow

    ex = b_infilt / (1.0 + b_infilt)
    A = 1.0 - (1.0 - moist / max_moist) ** ex
    i_0 = max_infil * (1.0 - (1.0 - A) ** (1.0 / b_infilt))

    if i_0 + inflow > max_infil:
        # Whole cell saturates
        runoff = inflow - max_moist + moist
    else:
        basis = 1.0 - (i_0 + inflow) / max_infil
        runoff = (
            inflow - max_moist + moist
            + max_moist * basis ** (1.0 + b_infilt)
        )

    return max(runoff, 0.0)


def surface_runoff(
    state: SublayerState,
    surface_layer: LayerState,
    inflow: float,
    b_infilt: float
) -> float:
    """Surface runoff of a column given its sublayer state"""
    upper = upper_zone_moisture(state)
    top_sub = active_top_sublayer(surface_layer)

    runoff = arno_surface_runoff(inflow, upper.moist, upper.max_moist, b_infilt)

    logger.debug(
        f"Upper zone ({upper.n_layers} layers, top slot {top_sub.name}): "
        f"W={upper.moist:.2f}mm, Wmax={upper.max_moist:.2f}mm, "
        f"inflow={inflow:.2f}mm, runoff={runoff:.3f}mm"
    )

    return runoff
