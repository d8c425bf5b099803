"""
Type definitions and type aliases for the vicsoil system.
Provides strong typing throughout the codebase.
"""
from dataclasses import dataclass, field, fields, replace
from enum import IntEnum
from typing import List, Optional, Protocol, Sequence, runtime_checkable

import numpy as np
from typing_extensions import TypeAlias

from vicsoil.core.exceptions import ParameterError


# Type aliases for clarity
CellID: TypeAlias = str
MoistureMm: TypeAlias = float
FloatArray: TypeAlias = np.ndarray  # Shape: (n_layers,) or (n_nodes,)
SublayerArray: TypeAlias = np.ndarray  # Shape: (n_layers, 3)


class Sublayer(IntEnum):
    """Sublayer slot within a soil layer"""
    THAWED = 0
    FROZEN = 1
    UNFROZEN = 2


def _as_layer_array(value, name: str) -> FloatArray:
    arr = np.atleast_1d(np.asarray(value, dtype=float))
    if arr.ndim != 1:
        raise ParameterError(f"Soil property '{name}' must be one-dimensional")
    return arr


@dataclass(frozen=True)
class SoilProperties:
    """
    Per-layer soil properties for one grid cell, read-only during a step.

    Layer arrays are ordered top to bottom. Scalar baseflow and infiltration
    parameters apply to the whole column.

    Attributes:
        ksat: Saturated hydraulic conductivity (mm/day)
        max_moist: Maximum moisture content (mm)
        resid_moist: Residual moisture content (volumetric fraction)
        expt: Brooks-Corey exponent
        depth: Layer thickness (m)
        b_infilt: Shape parameter of the variable infiltration curve
        Ds: Fraction of Dsmax where non-linear baseflow begins
        Dsmax: Maximum baseflow velocity (mm/day)
        Ws: Fraction of maximum moisture where non-linear baseflow occurs
        c: Exponent of the non-linear baseflow curve
        bulk_density: Soil bulk density (kg/m³), thermal calculations only
        soil_density: Soil particle density (kg/m³), thermal calculations only
        quartz: Quartz content (fraction of solids), thermal calculations only
    """
    ksat: FloatArray
    max_moist: FloatArray
    resid_moist: FloatArray
    expt: FloatArray
    depth: FloatArray
    b_infilt: float
    Ds: float
    Dsmax: float
    Ws: float
    c: float
    bulk_density: Optional[FloatArray] = None
    soil_density: Optional[FloatArray] = None
    quartz: Optional[FloatArray] = None

    def __post_init__(self):
        n = None
        for name in ("ksat", "max_moist", "resid_moist", "expt", "depth",
                     "bulk_density", "soil_density", "quartz"):
            value = getattr(self, name)
            if value is None:
                continue
            arr = _as_layer_array(value, name)
            object.__setattr__(self, name, arr)
            if n is None:
                n = len(arr)
            elif len(arr) != n:
                raise ParameterError(
                    f"Soil property '{name}' has {len(arr)} layers, expected {n}"
                )

        if np.any(self.depth <= 0):
            raise ParameterError("Layer depths must be positive")
        if np.any(self.max_moist <= 0):
            raise ParameterError("Maximum moisture must be positive")
        if self.b_infilt <= 0:
            raise ParameterError("b_infilt must be positive")
        if not 0 < self.Ws <= 1:
            raise ParameterError("Ws must lie in (0, 1]")

    @property
    def n_layers(self) -> int:
        """Number of soil layers"""
        return len(self.depth)

    @property
    def porosity(self) -> FloatArray:
        """Volumetric porosity implied by maximum moisture"""
        return self.max_moist / (self.depth * 1000.0)


@dataclass
class LayerState:
    """
    Moisture and thermal state of one soil layer (one precipitation branch).

    Moisture values are depths of water (mm) per unit area of the sublayer
    they refer to. Frost front depths are measured from the top of the layer.
    """
    moist: MoistureMm = 0.0  # unfrozen sublayer
    ice: float = 0.0  # frozen sublayer
    evap: float = 0.0  # evaporative demand for the step (mm)
    moist_thaw: MoistureMm = 0.0
    moist_froz: MoistureMm = 0.0
    tdepth: float = 0.0  # thaw front depth (m)
    fdepth: float = 0.0  # freeze front depth (m)
    T: float = 0.0  # unfrozen sublayer temperature (°C)
    T_thaw: float = 0.0
    T_froz: float = 0.0
    kappa: float = 0.0  # thermal conductivity (W/m/K)
    Cs: float = 0.0  # volumetric heat capacity (J/m³/K)

    def copy(self) -> "LayerState":
        return replace(self)

    @classmethod
    def numeric_fields(cls) -> List[str]:
        return [f.name for f in fields(cls)]


@dataclass
class EnergyState:
    """Thermal node values of the energy balance (top of column first)"""
    kappa: FloatArray
    Cs: FloatArray
    T: Optional[FloatArray] = None

    def __post_init__(self):
        self.kappa = np.asarray(self.kappa, dtype=float)
        self.Cs = np.asarray(self.Cs, dtype=float)
        if self.T is not None:
            self.T = np.asarray(self.T, dtype=float)

    @property
    def n_nodes(self) -> int:
        return len(self.kappa)


@dataclass
class ThermalProperties:
    """Per-layer thermal properties returned by a thermal calculator"""
    kappa: FloatArray
    Cs: FloatArray


@dataclass
class BranchBalance:
    """Water balance of one precipitation branch over one time step (mm)"""
    inflow: float = 0.0
    runoff: float = 0.0
    baseflow: float = 0.0
    evaporation: float = 0.0
    initial_storage: float = 0.0
    final_storage: float = 0.0
    layer_inflow: FloatArray = None
    layer_outflow: FloatArray = None

    @property
    def delta_storage(self) -> float:
        return self.final_storage - self.initial_storage

    @property
    def error(self) -> float:
        """Closure error; zero when mass is conserved"""
        return (
            self.inflow - self.runoff - self.baseflow
            - self.evaporation - self.delta_storage
        )


@dataclass
class RunoffResult:
    """Outputs of one soil column time step"""
    wet_runoff: float
    wet_baseflow: float
    dry_runoff: float
    dry_baseflow: float
    layers_wet: List[LayerState]
    layers_dry: Optional[List[LayerState]]
    energy: Optional[EnergyState]
    balance: List[BranchBalance] = field(default_factory=list)

    def total_runoff(self, mu: float) -> float:
        """Grid-cell runoff weighted by the wet area fraction"""
        return mu * self.wet_runoff + (1.0 - mu) * self.dry_runoff

    def total_baseflow(self, mu: float) -> float:
        """Grid-cell baseflow weighted by the wet area fraction"""
        return mu * self.wet_baseflow + (1.0 - mu) * self.dry_baseflow


# Protocol definitions for dependency injection
@runtime_checkable
class LayerAverager(Protocol):
    """Averages the wet and dry branch states of one layer"""

    def __call__(
        self,
        wet: LayerState,
        dry: LayerState,
        depth_m: float,
        mu: float,
    ) -> LayerState:
        ...


@runtime_checkable
class ThermalPropertyCalculator(Protocol):
    """Computes soil thermal properties from a moisture distribution"""

    def __call__(
        self,
        soil: SoilProperties,
        layers: Sequence[LayerState],
        energy: EnergyState,
        n_nodes: int,
    ) -> ThermalProperties:
        ...
