"""
Tests for ARNO baseflow and the bottom-layer reservoir update.
"""
import pytest

from vicsoil.core.types import LayerState, SoilProperties
from vicsoil.physics.baseflow import arno_baseflow, bottom_layer_baseflow
from vicsoil.physics.sublayers import build_sublayer_state


class TestArnoBaseflow:
    """Test suite for the baseflow curve"""

    def test_linear_below_threshold(self):
        # Ds * Dsmax / (Ws * Wmax) * W = 0.1 * 10 / 225 * 100
        assert arno_baseflow(100.0, 300.0, 0.1, 10.0, 0.75, 2.0) == pytest.approx(100.0 / 225.0)

    def test_continuous_at_threshold(self):
        at = arno_baseflow(225.0, 300.0, 0.1, 10.0, 0.75, 2.0)
        above = arno_baseflow(225.0 + 1e-9, 300.0, 0.1, 10.0, 0.75, 2.0)

        assert at == pytest.approx(1.0)
        assert above == pytest.approx(at, abs=1e-6)

    def test_saturated_reservoir_drains_at_dsmax(self):
        assert arno_baseflow(300.0, 300.0, 0.1, 10.0, 0.75, 2.0) == pytest.approx(10.0)

    def test_increases_with_moisture(self):
        flows = [arno_baseflow(w, 300.0, 0.1, 10.0, 0.75, 2.0) for w in range(0, 301, 20)]
        assert all(b >= a for a, b in zip(flows, flows[1:]))


class TestBottomLayerBaseflow:
    """Test suite for the reservoir update"""

    @staticmethod
    def _soil(resid=0.0):
        return SoilProperties(
            ksat=[50.0], max_moist=[300.0], resid_moist=[resid], expt=[3.0],
            depth=[1.0], b_infilt=0.3, Ds=0.1, Dsmax=10.0, Ws=0.75, c=2.0,
        )

    def test_dsmax_scaled_to_step_length(self):
        soil = self._soil()
        layers = [LayerState(moist=100.0)]
        state = build_sublayer_state(layers, soil, frozen_soil=False, full_energy=False)

        result = bottom_layer_baseflow(state, layers[0], soil, inflow=0.0, dt=6)

        expected = 0.1 * (10.0 * 6 / 24) / 225.0 * 100.0
        assert result.baseflow == pytest.approx(expected)
        assert layers[0].moist == pytest.approx(100.0 - expected)

    def test_overflow_joins_baseflow(self):
        soil = self._soil()
        layers = [LayerState(moist=290.0)]
        state = build_sublayer_state(layers, soil, frozen_soil=False, full_energy=False)

        result = bottom_layer_baseflow(state, layers[0], soil, inflow=50.0, dt=24)

        assert layers[0].moist == pytest.approx(300.0)
        assert result.baseflow == pytest.approx(40.0)

    def test_residual_shortfall_taken_from_baseflow(self):
        # 0.02 * 1m * 1000 = 20mm residual
        soil = self._soil(resid=0.02)
        layers = [LayerState(moist=21.0, evap=5.0)]
        state = build_sublayer_state(layers, soil, frozen_soil=False, full_energy=True)

        result = bottom_layer_baseflow(state, layers[0], soil, inflow=0.0, dt=24)

        # Evaporation exceeds what is above residual plus the baseflow
        assert result.baseflow == 0.0
        assert layers[0].moist == pytest.approx(16.0)

    def test_small_shortfall_reduces_baseflow(self):
        soil = self._soil(resid=0.02)
        layers = [LayerState(moist=20.5, evap=0.45)]
        state = build_sublayer_state(layers, soil, frozen_soil=False, full_energy=True)

        result = bottom_layer_baseflow(state, layers[0], soil, inflow=0.0, dt=24)

        # Moisture is held at residual and baseflow gives back the shortfall
        assert layers[0].moist == pytest.approx(20.0)
        assert result.baseflow == pytest.approx(0.05)

    def test_zero_thickness_reservoir_passes_drainage(self):
        soil = self._soil()
        layers = [LayerState(moist_froz=120.0, ice=100.0, fdepth=1.0)]
        state = build_sublayer_state(layers, soil, frozen_soil=True, full_energy=False)

        result = bottom_layer_baseflow(state, layers[0], soil, inflow=3.5, dt=24)

        assert result.baseflow == pytest.approx(3.5)
        assert layers[0].moist == 0.0
