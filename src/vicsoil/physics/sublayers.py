"""
Sublayer working state for the soil column solver.

Each soil layer is split into three slots (thawed, frozen, unfrozen) whose
thickness fractions come from the thaw and freeze front depths. Without
frozen soil only the unfrozen slot is populated and the column degenerates
to one effective sublayer per layer.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from vicsoil.core.constants import HOURS_PER_DAY, MM_PER_M, N_SUBLAYERS
from vicsoil.core.exceptions import ErrorContext, FatalInvariantViolation
from vicsoil.core.types import (
    FloatArray, LayerState, SoilProperties, Sublayer, SublayerArray
)

logger = logging.getLogger(__name__)

_SUBLAYER_LABELS = {
    Sublayer.THAWED: "thawed sublayer",
    Sublayer.FROZEN: "frozen sublayer",
    Sublayer.UNFROZEN: "unfrozen sublayer",
}


@dataclass
class SublayerState:
    """
    Transient per-(layer, sublayer) arrays, rebuilt on every call.

    Attributes:
        fraction: Thickness fraction of the layer held by each slot
        moist: Liquid moisture (mm)
        ice: Ice content (mm), non-zero only in the frozen slot
        max_moist: Maximum moisture (mm)
        resid_moist: Residual moisture per layer (mm)
        ksat: Saturated conductivity per layer (mm/h)
    """
    fraction: SublayerArray
    moist: SublayerArray
    ice: SublayerArray
    max_moist: SublayerArray
    resid_moist: FloatArray
    ksat: FloatArray

    @property
    def n_layers(self) -> int:
        return self.fraction.shape[0]

    def is_active(self, lindex: int, sub: int) -> bool:
        """Zero-thickness slots hold no water and pass no flux"""
        return self.fraction[lindex, sub] > 0.0

    def is_reservoir(self, lindex: int, sub: int) -> bool:
        """The unfrozen slot of the bottom layer drains to baseflow"""
        return lindex == self.n_layers - 1 and sub == Sublayer.UNFROZEN

    def overflow(self, lindex: int, sub: int) -> float:
        """Water held above the slot's maximum moisture (mm)"""
        return (
            self.moist[lindex, sub] + self.ice[lindex, sub]
            - self.max_moist[lindex, sub]
        )

    def fill_to_capacity(self, lindex: int, sub: int):
        self.moist[lindex, sub] = self.max_moist[lindex, sub] - self.ice[lindex, sub]

    def storage(self) -> float:
        """Liquid water in the column, per unit grid area (mm)"""
        return float(np.sum(self.moist * self.fraction))


def residual_moisture(soil: SoilProperties, full_energy: bool) -> FloatArray:
    """
    Residual moisture per layer (mm).

    Only the full energy balance accounts for residual moisture; otherwise
    all water above zero is mobile.
    """
    if full_energy:
        return soil.resid_moist * soil.depth * MM_PER_M
    return np.zeros(soil.n_layers)


def sublayer_fractions(
    layer: LayerState,
    depth_m: float,
    frozen_soil: bool
) -> FloatArray:
    """Thickness fractions of the thawed, frozen and unfrozen slots"""
    if not frozen_soil:
        return np.array([0.0, 0.0, 1.0])

    return np.array([
        layer.tdepth / depth_m,
        (layer.fdepth - layer.tdepth) / depth_m,
        (depth_m - layer.fdepth) / depth_m,
    ])


def build_sublayer_state(
    layers: Sequence[LayerState],
    soil: SoilProperties,
    frozen_soil: bool,
    full_energy: bool,
    context: Optional[ErrorContext] = None
) -> SublayerState:
    """
    Assemble the sublayer working arrays from the layer states.

    Args:
        layers: Layer states, top to bottom
        soil: Soil properties
        frozen_soil: Split layers at the frost fronts
        full_energy: Account for residual moisture
        context: Cell/record information attached to fatal errors

    Returns:
        SublayerState

    Raises:
        FatalInvariantViolation: if any sublayer moisture is negative
    """
    n = len(layers)
    fraction = np.zeros((n, N_SUBLAYERS))
    moist = np.zeros((n, N_SUBLAYERS))
    ice = np.zeros((n, N_SUBLAYERS))
    max_moist = np.repeat(soil.max_moist[:, np.newaxis], N_SUBLAYERS, axis=1)

    for lindex, layer in enumerate(layers):
        fraction[lindex] = sublayer_fractions(
            layer, soil.depth[lindex], frozen_soil
        )
        moist[lindex] = (layer.moist_thaw, layer.moist_froz, layer.moist)

        for sub in Sublayer:
            if moist[lindex, sub] < 0:
                message = (
                    f"Layer {lindex} {_SUBLAYER_LABELS[sub]} has negative "
                    f"soil moisture, {moist[lindex, sub]:f}"
                )
                logger.error(message)
                ctx = ErrorContext(**vars(context)) if context else ErrorContext()
                ctx.layer = lindex
                ctx.component = "sublayers"
                ctx.operation = "build_sublayer_state"
                raise FatalInvariantViolation(message, ctx)

        ice[lindex, Sublayer.FROZEN] = layer.ice

        # Ice expansion may legitimately push the frozen slot past capacity
        if moist[lindex, Sublayer.FROZEN] > max_moist[lindex, Sublayer.FROZEN]:
            moist[lindex, Sublayer.FROZEN] = max_moist[lindex, Sublayer.FROZEN]

    return SublayerState(
        fraction=fraction,
        moist=moist,
        ice=ice,
        max_moist=max_moist,
        resid_moist=residual_moisture(soil, full_energy),
        ksat=soil.ksat / HOURS_PER_DAY,
    )


def write_back_layer(state: SublayerState, layer: LayerState, lindex: int):
    """Copy slot moisture into the layer; inactive slots read as zero"""
    sub_moist = np.where(state.fraction[lindex] > 0, state.moist[lindex], 0.0)
    layer.moist_thaw = float(sub_moist[Sublayer.THAWED])
    layer.moist_froz = float(sub_moist[Sublayer.FROZEN])
    layer.moist = float(sub_moist[Sublayer.UNFROZEN])
