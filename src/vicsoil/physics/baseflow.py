"""
ARNO baseflow from the bottom soil layer.

Baseflow is linear in moisture below Ws × W_max and gains a non-linear
term above it:

    Q_b = Ds × Dsmax / (Ws × W_max) × W                              W <= Ws W_max
    Q_b = Ds × Dsmax / (Ws × W_max) × W
          + (Dsmax - Ds × Dsmax / Ws) × ((W - Ws W_max) / (W_max - Ws W_max))^c   otherwise

References:
- Francini, M. and Pacciani, M. (1991). Comparative analysis of several
  conceptual rainfall-runoff models. J. Hydrol., 122:161-219.
- Todini, E. (1996). The ARNO rainfall-runoff model. J. Hydrol.,
  175:339-382.
"""
import logging
from dataclasses import dataclass

from vicsoil.core.constants import HOURS_PER_DAY
from vicsoil.core.types import LayerState, SoilProperties, Sublayer
from vicsoil.physics.sublayers import SublayerState

logger = logging.getLogger(__name__)


def arno_baseflow(
    moist: float,
    max_moist: float,
    Ds: float,
    Dsmax: float,
    Ws: float,
    c: float
) -> float:
    """
    Baseflow for one time step before bounds are enforced.

    Args:
        moist: Bottom layer moisture (mm)
        max_moist: Bottom layer maximum moisture (mm)
        Ds: Fraction of Dsmax where non-linear baseflow begins
        Dsmax: Maximum baseflow for the time step (mm)
        Ws: Fraction of max_moist where non-linear baseflow begins
        c: Exponent of the non-linear term

    Returns:
        Baseflow (mm)
    """
    threshold = Ws * max_moist
    baseflow = Ds * Dsmax / threshold * moist

    if moist > threshold:
        frac = (moist - threshold) / (max_moist - threshold)
        baseflow += (Dsmax - Ds * Dsmax / Ws) * frac ** c

    return baseflow


@dataclass
class BaseflowResult:
    baseflow: float  # per unit grid area (mm)
    moist: float  # final reservoir moisture (mm)


def bottom_layer_baseflow(
    state: SublayerState,
    layer: LayerState,
    soil: SoilProperties,
    inflow: float,
    dt: int
) -> BaseflowResult:
    """
    Drain the bottom layer's unfrozen sublayer and update its moisture.

    The reservoir receives the drainage accumulated over all sub-steps,
    loses the layer's evaporative demand and the baseflow. A shortfall
    below residual moisture is taken back from baseflow; water above the
    maximum is added to it.

    Args:
        state: Sublayer state, updated in place
        layer: Bottom layer state, updated in place
        soil: Soil properties
        inflow: Drainage into the reservoir over the step (mm)
        dt: Time step length (hours)

    Returns:
        BaseflowResult
    """
    lindex = state.n_layers - 1
    sub = Sublayer.UNFROZEN
    frac = state.fraction[lindex, sub]

    if frac <= 0.0:
        # Layer frozen to its base: drainage leaves the column directly
        logger.debug("Bottom reservoir has zero thickness, routing drainage to baseflow")
        layer.moist = 0.0
        return BaseflowResult(baseflow=inflow, moist=0.0)

    resid = state.resid_moist[lindex]
    max_moist = state.max_moist[lindex, sub]
    Dsmax = soil.Dsmax * dt / HOURS_PER_DAY

    baseflow = arno_baseflow(
        state.moist[lindex, sub], soil.max_moist[lindex],
        soil.Ds, Dsmax, soil.Ws, soil.c
    )

    state.moist[lindex, sub] += inflow / frac - layer.evap - baseflow

    if state.moist[lindex, sub] + state.ice[lindex, sub] < resid:
        baseflow += state.moist[lindex, sub] - resid
        state.moist[lindex, sub] = resid
        if baseflow < 0.0:
            # Demand exceeds what baseflow can give back
            logger.debug(
                f"Bottom layer evaporation exceeds available water by "
                f"{-baseflow:.4f}mm"
            )
            state.moist[lindex, sub] += baseflow
            baseflow = 0.0

    if state.overflow(lindex, sub) > 0.0:
        baseflow += state.overflow(lindex, sub)
        state.fill_to_capacity(lindex, sub)

    layer.moist = float(state.moist[lindex, sub])

    return BaseflowResult(baseflow=baseflow * frac, moist=layer.moist)
