"""
Tests for the variable infiltration capacity runoff curve.
"""
import numpy as np
import pytest

from vicsoil.core.types import LayerState, SoilProperties, Sublayer
from vicsoil.physics.infiltration import (
    active_top_sublayer,
    arno_surface_runoff,
    upper_zone_moisture,
)
from vicsoil.physics.sublayers import build_sublayer_state


def reference_runoff(inflow, moist, max_moist, b):
    """Independent evaluation of Wood et al. (1992) eq. 3"""
    i_m = (1.0 + b) * max_moist
    i_0 = i_m * (1.0 - (1.0 - moist / max_moist) ** (1.0 / (1.0 + b)))
    if i_0 + inflow >= i_m:
        return max(inflow - (max_moist - moist), 0.0)
    return max(
        inflow - (max_moist - moist)
        + max_moist * (1.0 - (i_0 + inflow) / i_m) ** (1.0 + b),
        0.0,
    )


class TestArnoSurfaceRunoff:
    """Test suite for the infiltration-excess closure"""

    def test_zero_inflow_gives_zero_runoff(self):
        assert arno_surface_runoff(0.0, 50.0, 100.0, 0.3) == 0.0

    def test_zero_capacity_sheds_all_inflow(self):
        assert arno_surface_runoff(12.0, 0.0, 0.0, 0.3) == 12.0

    def test_saturated_upper_zone_sheds_all_inflow(self):
        assert arno_surface_runoff(25.0, 100.0, 100.0, 0.3) == pytest.approx(25.0)

    def test_matches_reference_formula(self):
        """Two-layer upper zone: capacity 400mm, moisture 200mm, 30mm inflow"""
        runoff = arno_surface_runoff(30.0, 200.0, 400.0, 0.3)
        expected = reference_runoff(30.0, 200.0, 400.0, 0.3)

        assert runoff > 0
        assert runoff == pytest.approx(expected, rel=1e-6)

    @pytest.mark.parametrize("moist", [0.0, 35.0, 80.0, 99.0])
    @pytest.mark.parametrize("b", [0.05, 0.3, 1.5])
    def test_matches_reference_over_parameter_space(self, moist, b):
        for inflow in [0.5, 5.0, 50.0, 500.0]:
            assert arno_surface_runoff(inflow, moist, 100.0, b) == pytest.approx(
                reference_runoff(inflow, moist, 100.0, b), rel=1e-6, abs=1e-9
            )

    def test_runoff_bounded_by_inflow(self):
        for inflow in np.linspace(0.1, 300.0, 25):
            runoff = arno_surface_runoff(inflow, 60.0, 150.0, 0.2)
            assert 0.0 <= runoff <= inflow + 1e-12

    def test_runoff_monotonic_in_inflow(self):
        inflows = np.linspace(0.0, 400.0, 200)
        runoffs = [arno_surface_runoff(p, 120.0, 200.0, 0.4) for p in inflows]

        assert np.all(np.diff(runoffs) >= -1e-12)

    def test_regime_boundary_is_continuous(self):
        """At i_0 + P = i_m both branches give the same runoff"""
        b, moist, max_moist = 0.3, 50.0, 100.0
        i_m = (1.0 + b) * max_moist
        i_0 = i_m * (1.0 - (1.0 - moist / max_moist) ** (1.0 / (1.0 + b)))
        p_sat = i_m - i_0

        below = arno_surface_runoff(p_sat - 1e-9, moist, max_moist, b)
        above = arno_surface_runoff(p_sat + 1e-9, moist, max_moist, b)

        assert below == pytest.approx(above, abs=1e-6)
        assert above == pytest.approx(p_sat - (max_moist - moist), abs=1e-6)


class TestUpperZone:
    """Test suite for upper-zone aggregation"""

    @staticmethod
    def _soil(max_moist, depth):
        n = len(max_moist)
        return SoilProperties(
            ksat=[50.0] * n, max_moist=max_moist, resid_moist=[0.0] * n,
            expt=[3.0] * n, depth=depth, b_infilt=0.3,
            Ds=0.1, Dsmax=10.0, Ws=0.75, c=2.0,
        )

    def test_three_layers_combine_top_two(self):
        soil = self._soil([100.0, 300.0, 500.0], [0.25, 0.75, 1.25])
        layers = [LayerState(moist=50.0), LayerState(moist=150.0), LayerState(moist=250.0)]
        state = build_sublayer_state(layers, soil, frozen_soil=False, full_energy=False)

        upper = upper_zone_moisture(state)

        assert upper.n_layers == 2
        assert upper.moist == pytest.approx(200.0)
        assert upper.max_moist == pytest.approx(400.0)

    def test_two_layers_use_surface_layer_only(self):
        soil = self._soil([100.0, 300.0], [0.25, 0.75])
        layers = [LayerState(moist=50.0), LayerState(moist=150.0)]
        state = build_sublayer_state(layers, soil, frozen_soil=False, full_energy=False)

        upper = upper_zone_moisture(state)

        assert upper.n_layers == 1
        assert upper.moist == pytest.approx(50.0)
        assert upper.max_moist == pytest.approx(100.0)

    def test_ice_counts_as_storage_and_is_clipped(self):
        soil = self._soil([100.0, 300.0], [0.25, 0.75])
        layers = [
            LayerState(moist=40.0, moist_froz=60.0, ice=70.0, fdepth=0.25),
            LayerState(moist=150.0),
        ]
        state = build_sublayer_state(layers, soil, frozen_soil=True, full_energy=False)

        upper = upper_zone_moisture(state)

        # frozen slot holds 60 + 70 > 100mm of capacity
        assert upper.moist == pytest.approx(upper.max_moist)


class TestActiveTopSublayer:

    def test_thaw_front_selects_thawed_slot(self):
        assert active_top_sublayer(LayerState(tdepth=0.05, fdepth=0.1)) == Sublayer.THAWED

    def test_freeze_front_selects_frozen_slot(self):
        assert active_top_sublayer(LayerState(fdepth=0.1)) == Sublayer.FROZEN

    def test_unfrozen_soil_selects_unfrozen_slot(self):
        assert active_top_sublayer(LayerState()) == Sublayer.UNFROZEN
