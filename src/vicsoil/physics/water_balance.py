"""
Single time-step water balance of a VIC-style soil column.

Per precipitation branch (wet, then dry when precipitation is distributed):

1. Build the sublayer working state
2. Infiltration-excess runoff from the upper zone
3. Hourly drainage through the sublayers
4. ARNO baseflow from the bottom layer
5. Write moisture back to the layer states

then, once, recompute thermal properties when the energy balance or frozen
soils are active.
"""
import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from vicsoil.core.config import ModelOptions, NumericsConfig, get_config
from vicsoil.core.exceptions import (
    ErrorContext, ParameterError, PhysicsModelError, WaterBalanceError
)
from vicsoil.core.types import (
    BranchBalance,
    CellID,
    EnergyState,
    LayerAverager,
    LayerState,
    RunoffResult,
    SoilProperties,
    ThermalPropertyCalculator,
)
from vicsoil.physics.baseflow import bottom_layer_baseflow
from vicsoil.physics.infiltration import surface_runoff
from vicsoil.physics.sublayers import build_sublayer_state
from vicsoil.physics.thermal import average_layer_states, reconcile_thermal
from vicsoil.physics.vertical_flux import VerticalFluxIntegrator

logger = logging.getLogger(__name__)

_BRANCH_NAMES = ("wet", "dry")


class SoilColumnRunoff:
    """
    Runoff, drainage and baseflow of one soil column.

    The solver holds no state between calls: layer and energy states are
    owned by the caller and mutated in place.
    """

    def __init__(
        self,
        soil: SoilProperties,
        options: Optional[ModelOptions] = None,
        numerics: Optional[NumericsConfig] = None,
        averager: Optional[LayerAverager] = None,
        thermal: Optional[ThermalPropertyCalculator] = None
    ):
        """
        Initialize soil column.

        Args:
            soil: Soil properties
            options: Model switches; defaults to the global configuration
                with the layer count taken from `soil`
            numerics: Mass balance settings; defaults to the global configuration
            averager: Wet/dry layer averaging collaborator
            thermal: Thermal property collaborator
        """
        config = get_config()
        if options is None:
            options = config.options.model_copy(update={"n_layers": soil.n_layers})
        if options.n_layers != soil.n_layers:
            raise ParameterError(
                f"Options declare {options.n_layers} layers but soil "
                f"properties have {soil.n_layers}"
            )

        self.soil = soil
        self.options = options
        self.numerics = numerics or config.numerics
        self.averager = averager or average_layer_states
        self.thermal = thermal
        self.integrator = VerticalFluxIntegrator(soil, frozen_soil=options.frozen_soil)
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def _validate_inputs(
        self,
        layers_wet: Sequence[LayerState],
        layers_dry: Optional[Sequence[LayerState]],
        energy: Optional[EnergyState],
        precipitation: Sequence[float],
        mu: float,
        dt: int,
        context: ErrorContext
    ):
        if not 0.0 <= mu <= 1.0:
            raise ParameterError(f"Wet fraction mu={mu} outside [0, 1]", context)
        if int(dt) != dt or dt < 1:
            raise ParameterError(f"Sub-step count dt={dt} must be an integer >= 1", context)
        if len(layers_wet) != self.options.n_layers:
            raise ParameterError(
                f"Expected {self.options.n_layers} wet layers, got {len(layers_wet)}",
                context
            )
        if len(precipitation) < self.options.n_dist:
            raise ParameterError(
                f"Precipitation needs {self.options.n_dist} values", context
            )
        if self.options.dist_prcp:
            if layers_dry is None or len(layers_dry) != self.options.n_layers:
                raise ParameterError(
                    "Distributed precipitation requires dry layers", context
                )
        if self.options.thermal_enabled and energy is None:
            raise ParameterError("Thermal reconciliation requires an energy state", context)

    def _solve_branch(
        self,
        layers: Sequence[LayerState],
        inflow: float,
        dt: int,
        context: ErrorContext
    ) -> Tuple[float, float, BranchBalance]:
        """Solve one precipitation branch; returns (runoff, baseflow, balance)"""
        state = build_sublayer_state(
            layers, self.soil,
            frozen_soil=self.options.frozen_soil,
            full_energy=self.options.full_energy,
            context=context,
        )
        initial_storage = state.storage()
        evaporation = float(sum(
            layer.evap * state.fraction[lindex].sum()
            for lindex, layer in enumerate(layers)
        ))

        runoff = surface_runoff(state, layers[0], inflow, self.soil.b_infilt)
        result = self.integrator.integrate(state, layers, inflow, runoff, dt)
        bottom = bottom_layer_baseflow(
            state, layers[-1], self.soil, result.bottom_inflow, dt
        )

        layer_outflow = result.layer_outflow.copy()
        layer_outflow[-1] += bottom.baseflow

        balance = BranchBalance(
            inflow=inflow,
            runoff=result.runoff,
            baseflow=bottom.baseflow,
            evaporation=evaporation,
            initial_storage=initial_storage,
            final_storage=state.storage(),
            layer_inflow=result.layer_inflow,
            layer_outflow=layer_outflow,
        )
        return result.runoff, bottom.baseflow, balance

    def _check_water_balance(self, balance: BranchBalance, context: ErrorContext):
        error = balance.error
        if abs(error) <= self.numerics.balance_tolerance_mm:
            return

        message = (
            f"Water balance error of {error:.3e}mm in {context.operation} branch\n"
            f"  Inflow: {balance.inflow:.4f}mm\n"
            f"  Runoff: {balance.runoff:.4f}mm\n"
            f"  Baseflow: {balance.baseflow:.4f}mm\n"
            f"  Evaporation: {balance.evaporation:.4f}mm\n"
            f"  ΔS: {balance.delta_storage:.4f}mm"
        )
        if self.numerics.strict_balance:
            raise WaterBalanceError(message, context)
        self.logger.warning(message)

    def run_step(
        self,
        layers_wet: List[LayerState],
        layers_dry: Optional[List[LayerState]],
        energy: Optional[EnergyState],
        precipitation: Sequence[float],
        mu: float,
        dt: int,
        cell_id: Optional[CellID] = None,
        record: Optional[int] = None
    ) -> RunoffResult:
        """
        Run the soil column for one model time step.

        Args:
            layers_wet: Layer states of the wet fraction, updated in place
            layers_dry: Layer states of the dry fraction, updated in place;
                ignored without distributed precipitation
            energy: Energy balance state; top two nodes updated in place
                when thermal properties are recomputed
            precipitation: Water reaching the surface (mm) of the wet and
                dry fractions
            mu: Fraction of the cell receiving precipitation
            dt: Time step length in hours (number of hourly sub-steps)
            cell_id: Grid cell identifier, diagnostics only
            record: Time step index, diagnostics only

        Returns:
            RunoffResult
        """
        context = ErrorContext(cell_id=cell_id, record=record, component="runoff")
        self._validate_inputs(
            layers_wet, layers_dry, energy, precipitation, mu, dt, context
        )
        dt = int(dt)
        if not self.options.dist_prcp:
            layers_dry = None

        runoff = [0.0, 0.0]
        baseflow = [0.0, 0.0]
        balances = []

        for dist in range(self.options.n_dist):
            layers = layers_wet if dist == 0 else layers_dry
            area_fraction = mu if dist == 0 else 1.0 - mu
            if area_fraction <= 0.0:
                continue

            branch_context = ErrorContext(**vars(context))
            branch_context.operation = _BRANCH_NAMES[dist]

            runoff[dist], baseflow[dist], balance = self._solve_branch(
                layers, precipitation[dist], dt, branch_context
            )
            balances.append(balance)

            if self.numerics.check_water_balance:
                self._check_water_balance(balance, branch_context)

            self.logger.debug(
                f"{_BRANCH_NAMES[dist]} branch (cell={cell_id}, rec={record}): "
                f"P={precipitation[dist]:.2f}mm, runoff={runoff[dist]:.3f}mm, "
                f"baseflow={baseflow[dist]:.3f}mm, error={balance.error:.2e}mm"
            )

        if self.options.thermal_enabled:
            reconcile_thermal(
                self.soil, layers_wet, layers_dry, energy, mu,
                self.options.n_nodes,
                averager=self.averager,
                thermal=self.thermal,
            )

        return RunoffResult(
            wet_runoff=runoff[0],
            wet_baseflow=baseflow[0],
            dry_runoff=runoff[1],
            dry_baseflow=baseflow[1],
            layers_wet=layers_wet,
            layers_dry=layers_dry,
            energy=energy,
            balance=balances,
        )

    def run_period(
        self,
        forcings: pd.DataFrame,
        layers: List[LayerState],
        energy: Optional[EnergyState] = None,
        dt: int = 24,
        mu: float = 1.0,
        cell_id: Optional[CellID] = None
    ) -> pd.DataFrame:
        """
        Run the soil column over a time series of forcings.

        Args:
            forcings: DataFrame with columns:
                - precipitation_mm (required): water reaching the wet fraction
                - precipitation_dry_mm (optional): water reaching the dry fraction
                - evap_layer_<i>_mm (optional): evaporative demand of layer i
            layers: Initial layer states, updated in place (wet branch)
            energy: Energy balance state (created when needed)
            dt: Time step length (hours)
            mu: Wet area fraction
            cell_id: Grid cell identifier, diagnostics only

        Returns:
            DataFrame with runoff, baseflow, balance error and layer moisture
            per time step, indexed like `forcings`
        """
        self._validate_forcings(forcings)
        self.logger.info(f"Running soil column for {len(forcings)} steps (dt={dt}h)")

        layers_dry = [layer.copy() for layer in layers] if self.options.dist_prcp else None
        if energy is None and self.options.thermal_enabled:
            energy = EnergyState(
                kappa=np.zeros(self.options.n_nodes),
                Cs=np.zeros(self.options.n_nodes),
            )

        results = []
        for record, (idx, row) in enumerate(forcings.iterrows()):
            for lindex in range(self.options.n_layers):
                evap = float(row.get(f"evap_layer_{lindex}_mm", 0.0))
                layers[lindex].evap = evap
                if layers_dry is not None:
                    layers_dry[lindex].evap = evap

            precipitation = (
                float(row["precipitation_mm"]),
                float(row.get("precipitation_dry_mm", 0.0)),
            )

            try:
                result = self.run_step(
                    layers, layers_dry, energy, precipitation, mu, dt,
                    cell_id=cell_id, record=record
                )
            except PhysicsModelError as e:
                self.logger.error(f"Error at step {idx}: {e}")
                raise

            row_result = {
                "runoff_mm": result.total_runoff(mu),
                "baseflow_mm": result.total_baseflow(mu),
                "water_balance_error_mm": sum(b.error for b in result.balance),
            }
            for lindex, layer in enumerate(layers):
                row_result[f"moist_layer_{lindex}_mm"] = layer.moist
                if self.options.frozen_soil:
                    row_result[f"ice_layer_{lindex}_mm"] = layer.ice
            results.append(row_result)

        return pd.DataFrame(results, index=forcings.index)

    def _validate_forcings(self, forcings: pd.DataFrame):
        """Validate input forcings DataFrame"""
        if "precipitation_mm" not in forcings.columns:
            raise ValueError("Missing required column: precipitation_mm")

        for col in forcings.columns:
            if col.endswith("_mm") and (forcings[col] < 0).any():
                self.logger.warning(f"Negative values found in {col}")


def runoff(
    layers_wet: List[LayerState],
    layers_dry: Optional[List[LayerState]],
    energy: Optional[EnergyState],
    soil: SoilProperties,
    precipitation: Sequence[float],
    mu: float,
    dt: int,
    options: Optional[ModelOptions] = None,
    averager: Optional[LayerAverager] = None,
    thermal: Optional[ThermalPropertyCalculator] = None,
    cell_id: Optional[CellID] = None,
    record: Optional[int] = None
) -> RunoffResult:
    """
    Surface runoff, drainage and baseflow of one soil column for one step.

    Convenience wrapper around SoilColumnRunoff.run_step.
    """
    column = SoilColumnRunoff(soil, options, averager=averager, thermal=thermal)
    return column.run_step(
        layers_wet, layers_dry, energy, precipitation, mu, dt,
        cell_id=cell_id, record=record
    )
