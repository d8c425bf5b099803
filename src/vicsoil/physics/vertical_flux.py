"""
Gravity-driven drainage between soil sublayers.

Moisture is advanced on an hourly sub-step, independent of the model time
step, to keep the explicit scheme stable:

1. Brooks-Corey unsaturated conductivity for every active sublayer
2. Layer-by-layer moisture update, top to bottom
3. Saturation excess passed downward, or walked back up the column when
   an impermeable frozen sublayer blocks drainage
4. Moisture floored at the residual value by borrowing from the outgoing
   flux

The unfrozen sublayer of the bottom layer is not advanced here; the flux
reaching it is accumulated and handed to the baseflow reservoir.

References:
- Brooks, R.H. and Corey, A.T. (1964). Hydraulic properties of porous media.
  Hydrology Paper No. 3, Colorado State University.
- Cherkauer, K.A. and Lettenmaier, D.P. (1999). Hydrologic effects of
  frozen soils in the upper Mississippi River basin. J. Geophys. Res.,
  104(D16):19599-19610.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

import numpy as np

from vicsoil.core.constants import (
    FROZEN_IMPERMEABLE_CAPACITY,
    FROZEN_IMPERMEABLE_THICKNESS_M,
    MM_PER_M,
    N_SUBLAYERS,
)
from vicsoil.core.types import FloatArray, LayerState, SoilProperties, Sublayer
from vicsoil.physics.sublayers import SublayerState, write_back_layer

logger = logging.getLogger(__name__)

Slot = Tuple[int, int]  # (layer index, sublayer index)


def brooks_corey_conductivity(
    moist: float,
    evap: float,
    resid_moist: float,
    max_moist: float,
    ksat: float,
    expt: float,
    frozen_slot: bool = False
) -> float:
    """
    Unsaturated hydraulic conductivity of a sublayer.

        K = Ksat × ((W - E - W_r) / (W_max - W_r))^expt

    with W - E floored at W_r. The frozen sublayer is normalised by W_max
    alone: freezing does not change the residual fraction of the pore
    space, so the ice-bound slot uses the plain saturation ratio.

    Args:
        moist: Sublayer moisture (mm)
        evap: Evaporative demand of the layer for the step (mm)
        resid_moist: Residual moisture (mm)
        max_moist: Maximum moisture (mm)
        ksat: Saturated conductivity (mm/h)
        expt: Brooks-Corey exponent
        frozen_slot: Whether this is the frozen sublayer

    Returns:
        Conductivity (mm/h)
    """
    tmp_moist = max(moist - evap, resid_moist)

    if frozen_slot:
        return ksat * (tmp_moist / max_moist) ** expt

    if moist <= resid_moist:
        return 0.0

    return ksat * (
        (tmp_moist - resid_moist) / (max_moist - resid_moist)
    ) ** expt


def is_impermeable(
    state: SublayerState,
    soil: SoilProperties,
    lindex: int
) -> bool:
    """
    Whether the frozen sublayer of a layer behaves as an ice lens.

    True when its liquid water capacity (maximum moisture less ice, as a
    volume fraction) is below FROZEN_IMPERMEABLE_CAPACITY and it is thicker
    than FROZEN_IMPERMEABLE_THICKNESS_M.
    """
    depth = soil.depth[lindex]
    liquid_capacity = (
        state.max_moist[lindex, Sublayer.FROZEN] - state.ice[lindex, Sublayer.FROZEN]
    ) / (depth * MM_PER_M)
    thickness = state.fraction[lindex, Sublayer.FROZEN] * depth

    return (
        liquid_capacity < FROZEN_IMPERMEABLE_CAPACITY
        and thickness > FROZEN_IMPERMEABLE_THICKNESS_M
    )


@dataclass
class FluxState:
    """
    Conductivities of one sub-step and the order in which slots are solved.

    `active` is the ordered stack of slots taking part in the sub-step (top
    to bottom); `froz_solid[i]` marks `active[i]` as an impermeable slot.
    """
    Q: np.ndarray
    active: List[Slot] = field(default_factory=list)
    froz_solid: List[bool] = field(default_factory=list)

    @classmethod
    def empty(cls, n_layers: int) -> "FluxState":
        return cls(Q=np.zeros((n_layers, N_SUBLAYERS)))

    def push(self, slot: Slot, solid: bool):
        self.active.append(slot)
        self.froz_solid.append(solid)

    def blocked_below(self, position: int) -> bool:
        """Whether the slot solved after `position` is impermeable"""
        return position + 1 < len(self.froz_solid) and self.froz_solid[position + 1]


@dataclass
class IntegrationResult:
    """Totals of the sub-stepped integration (mm per unit grid area)"""
    runoff: float  # infiltration excess plus saturation excess at the surface
    bottom_inflow: float  # drainage into the baseflow reservoir
    saturation_runoff: float  # part of runoff generated by upward redistribution
    layer_inflow: FloatArray
    layer_outflow: FloatArray


class VerticalFluxIntegrator:
    """
    Hourly explicit integration of drainage through the sublayer column.
    """

    def __init__(
        self,
        soil: SoilProperties,
        frozen_soil: bool = False
    ):
        """
        Initialize integrator.

        Args:
            soil: Soil properties
            frozen_soil: Whether frozen sublayers may become impermeable
        """
        self.soil = soil
        self.frozen_soil = frozen_soil
        self.logger = logging.getLogger(f"{__name__}.VerticalFluxIntegrator")

    def conductivity_pass(
        self,
        state: SublayerState,
        layers: Sequence[LayerState]
    ) -> FluxState:
        """Conductivity of every active slot, recording the solve order"""
        flux = FluxState.empty(state.n_layers)

        for lindex, layer in enumerate(layers):
            for sub in Sublayer:
                if not state.is_active(lindex, sub) or state.is_reservoir(lindex, sub):
                    continue

                solid = False
                if (self.frozen_soil and sub == Sublayer.FROZEN
                        and is_impermeable(state, self.soil, lindex)):
                    q = 0.0
                    solid = True
                    # The ice lens also stops the slot above from draining
                    if flux.active:
                        flux.Q[flux.active[-1]] = 0.0
                else:
                    q = brooks_corey_conductivity(
                        moist=state.moist[lindex, sub],
                        evap=layer.evap,
                        resid_moist=state.resid_moist[lindex],
                        max_moist=self.soil.max_moist[lindex],
                        ksat=state.ksat[lindex],
                        expt=self.soil.expt[lindex],
                        frozen_slot=self.frozen_soil and sub == Sublayer.FROZEN,
                    )

                flux.Q[lindex, sub] = q
                flux.push((lindex, sub), solid)

        return flux

    def _redistribute_upward(
        self,
        state: SublayerState,
        flux: FluxState,
        position: int,
        layer_inflow: FloatArray,
        layer_outflow: FloatArray
    ) -> float:
        """
        Walk saturation excess of `active[position]` back up the column.

        Each earlier slot takes the excess (rescaled by thickness fractions)
        and passes on whatever it cannot hold. Water crossing a layer
        boundary upward is taken off the lower layer's inflow and the upper
        layer's outflow. Returns the excess left at the top of the column,
        as surface runoff per unit grid area.
        """
        src = flux.active[position]
        excess = state.overflow(*src)
        state.fill_to_capacity(*src)

        for tpos in range(position - 1, -1, -1):
            tgt = flux.active[tpos]
            if tgt[0] != src[0]:
                crossing = excess * state.fraction[src]
                layer_inflow[src[0]] -= crossing
                layer_outflow[tgt[0]] -= crossing

            moved = excess * state.fraction[src] / state.fraction[tgt]
            state.moist[tgt] += moved
            flux.Q[tgt] -= moved

            excess = state.overflow(*tgt)
            if excess <= 0.0:
                return 0.0
            state.fill_to_capacity(*tgt)
            src = tgt

        escaped = excess * state.fraction[src]
        layer_inflow[src[0]] -= escaped
        return escaped

    def advance_pass(
        self,
        state: SublayerState,
        layers: Sequence[LayerState],
        flux: FluxState,
        inflow: float,
        runoff_share: float,
        dt: int,
        layer_inflow: FloatArray,
        layer_outflow: FloatArray
    ) -> Tuple[float, float]:
        """
        Advance moisture of all active slots by one hour.

        Args:
            state: Sublayer state, updated in place
            layers: Layer states (evaporative demand)
            flux: Conductivities from conductivity_pass, updated in place
            inflow: Surface inflow for this sub-step (mm)
            runoff_share: Infiltration-excess runoff for this sub-step (mm)
            dt: Number of sub-steps in the model step
            layer_inflow: Per-layer inflow accumulator
            layer_outflow: Per-layer outflow accumulator

        Returns:
            (flux into the baseflow reservoir, saturation-excess runoff)
        """
        extra_runoff = 0.0
        last_out: Dict[int, float] = {}

        if not flux.active:
            # No interior slots: infiltration goes straight to the reservoir
            bottom_flux = inflow - runoff_share
            layer_inflow[-1] += bottom_flux
            return bottom_flux, extra_runoff

        previous_layer = None
        for position, (lindex, sub) in enumerate(flux.active):
            slot = (lindex, sub)
            frac = state.fraction[slot]
            resid = state.resid_moist[lindex]
            evap_step = layers[lindex].evap / dt

            if position == 0:
                inflow -= runoff_share
            if lindex != previous_layer:
                layer_inflow[lindex] += inflow
                previous_layer = lindex

            state.moist[slot] += inflow / frac - (flux.Q[slot] + evap_step)

            tmp_inflow = 0.0
            if state.overflow(*slot) > 0.0:
                if not flux.blocked_below(position):
                    tmp_inflow = state.overflow(*slot)
                    state.fill_to_capacity(*slot)
                else:
                    extra_runoff += self._redistribute_upward(
                        state, flux, position, layer_inflow, layer_outflow
                    )

            if state.moist[slot] < resid:
                # Water cannot fall below residual; borrow from the drainage
                self.logger.debug(
                    f"Layer {lindex} slot {sub} below residual by "
                    f"{resid - state.moist[slot]:.4f}mm, reducing drainage"
                )
                flux.Q[slot] += state.moist[slot] - resid
                state.moist[slot] = resid

            inflow = (flux.Q[slot] + tmp_inflow) * frac
            flux.Q[slot] += tmp_inflow
            last_out[lindex] = inflow

        for lindex, out in last_out.items():
            layer_outflow[lindex] += out

        if flux.active[-1][0] != state.n_layers - 1:
            # Bottom layer has only its reservoir slot
            layer_inflow[-1] += inflow

        return inflow, extra_runoff

    def integrate(
        self,
        state: SublayerState,
        layers: Sequence[LayerState],
        inflow: float,
        runoff: float,
        dt: int
    ) -> IntegrationResult:
        """
        Run `dt` hourly sub-steps.

        Inflow and infiltration-excess runoff are spread evenly over the
        sub-steps. Layer moisture is written back after every sub-step.

        Args:
            state: Sublayer state, updated in place
            layers: Layer states, updated in place
            inflow: Water reaching the surface during the step (mm)
            runoff: Infiltration-excess runoff for the step (mm)
            dt: Number of hourly sub-steps (>= 1)

        Returns:
            IntegrationResult
        """
        dt_inflow = inflow / dt
        dt_runoff = runoff / dt
        dt_outflow = 0.0
        saturation_runoff = 0.0

        layer_inflow = np.zeros(state.n_layers)
        layer_outflow = np.zeros(state.n_layers)

        for time_step in range(dt):
            flux = self.conductivity_pass(state, layers)
            bottom_flux, extra_runoff = self.advance_pass(
                state, layers, flux, dt_inflow, dt_runoff, dt,
                layer_inflow, layer_outflow
            )
            dt_outflow += bottom_flux
            saturation_runoff += extra_runoff

            for lindex, layer in enumerate(layers):
                write_back_layer(state, layer, lindex)

            if extra_runoff > 0.0:
                self.logger.debug(
                    f"Sub-step {time_step}: {extra_runoff:.4f}mm saturation "
                    f"excess returned to the surface"
                )

        return IntegrationResult(
            runoff=runoff + saturation_runoff,
            bottom_inflow=dt_outflow,
            saturation_runoff=saturation_runoff,
            layer_inflow=layer_inflow,
            layer_outflow=layer_outflow,
        )
