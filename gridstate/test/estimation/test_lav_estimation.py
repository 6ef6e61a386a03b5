# -*- coding: utf-8 -*-

# Copyright (c) 2016-2026 by University of Kassel and Fraunhofer Institute for Energy Economics
# and Energy System Technology (IEE), Kassel. All rights reserved.

import numpy as np
import pytest

from gridstate.auxiliary import AlgorithmUnknown
from gridstate.estimation import MeasurementRegistry, StateEstimation, estimate, \
    add_virtual_meas_from_state, add_virtual_pmu_meas_from_state
from gridstate.estimation.algorithm.lav import LAVAlgorithm

SOLVERS = ["ortools", "scipy"]


@pytest.mark.parametrize("solver", SOLVERS)
def test_lav_dc(net_5bus, state_5bus, solver):
    registry = MeasurementRegistry(net_5bus)
    add_virtual_meas_from_state(net_5bus, registry, *state_5bus, kind="dc")
    se = StateEstimation(net_5bus, registry, kind="dc", algorithm="lav", solver=solver)
    assert se.estimate()
    assert np.allclose(net_5bus.res_bus_est.va_rad.values, state_5bus[1], atol=1e-5)
    assert se.algorithm.objective == pytest.approx(0., abs=1e-4)


@pytest.mark.parametrize("solver", SOLVERS)
def test_lav_pmu(net_5bus, state_5bus, solver):
    registry = MeasurementRegistry(net_5bus)
    add_virtual_pmu_meas_from_state(net_5bus, registry, *state_5bus)
    assert estimate(net_5bus, registry, kind="pmu", algorithm="lav", solver=solver)
    assert np.allclose(net_5bus.res_bus_est.vm_pu.values, state_5bus[0], atol=1e-5)
    assert np.allclose(net_5bus.res_bus_est.va_rad.values, state_5bus[1], atol=1e-5)


@pytest.mark.parametrize("solver", SOLVERS)
def test_lav_ac(net_5bus, state_5bus, registry_5bus, solver):
    assert estimate(net_5bus, registry_5bus, algorithm="lav", solver=solver, tolerance=1e-6,
                    maximum_iterations=30)
    assert np.allclose(net_5bus.res_bus_est.vm_pu.values, state_5bus[0], atol=1e-5)
    assert np.allclose(net_5bus.res_bus_est.va_rad.values, state_5bus[1], atol=1e-5)


def test_lav_persistent_model(net_5bus, state_5bus):
    registry = MeasurementRegistry(net_5bus)
    created = add_virtual_meas_from_state(net_5bus, registry, *state_5bus, kind="dc")
    lav = StateEstimation(net_5bus, registry, kind="dc", algorithm="lav")
    wls = StateEstimation(net_5bus, registry, kind="dc")
    assert lav.estimate() and wls.estimate()
    lp = lav.algorithm.lp
    assert lp is not None

    # a status change reaches both estimators without rebuilding them
    row = lav.model.rows_of("measurement", created[0])[0]
    registry.update_measurement(created[0], in_service=False)
    assert not lav.model.active[row] and not wls.model.active[row]
    assert lp.constraints[row].lb() == -lp.solver.infinity()
    assert lav.estimate()
    assert lav.algorithm.lp is lp
    assert np.allclose(net_5bus.res_bus_est.va_rad.values, state_5bus[1], atol=1e-5)

    # a new value changes the bounds of the constraint only
    value = registry.measurement.at[created[1], "value"]
    row = lav.model.rows_of("measurement", created[1])[0]
    registry.update_measurement(created[1], value=value + 0.1)
    assert lp.constraints[row].lb() == pytest.approx(value + 0.1 - lp.offset[row])
    registry.update_measurement(created[1], value=value)
    registry.update_measurement(created[0], in_service=True)
    assert lav.estimate()
    assert lav.algorithm.lp is lp
    assert np.allclose(net_5bus.res_bus_est.va_rad.values, state_5bus[1], atol=1e-5)

    # new records rebuild the model and the linear program
    registry.create_measurement("p", "bus", 0., element=13, in_service=False)
    assert lav.estimate()
    assert lav.algorithm.lp is not lp
    assert lav.algorithm.lp.model is lav.model


def test_lav_robust_to_single_error(net_5bus, state_5bus):
    registry = MeasurementRegistry(net_5bus)
    created = add_virtual_meas_from_state(net_5bus, registry, *state_5bus, kind="dc")
    bad = created[2]
    registry.update_measurement(bad, value=registry.measurement.at[bad, "value"] + 0.5)
    se = StateEstimation(net_5bus, registry, kind="dc", algorithm="lav")
    assert se.estimate()
    residual = registry.res_measurement.residual
    # the gross error ends up in the residual of the bad measurement
    assert abs(residual.at[bad]) == pytest.approx(0.5, abs=1e-4)
    assert np.allclose(residual.drop(bad).values, 0., atol=1e-4)


def test_unknown_solver():
    with pytest.raises(AlgorithmUnknown):
        LAVAlgorithm(1e-6, 10, solver="glpk")


if __name__ == '__main__':
    pytest.main([__file__, "-xs"])
