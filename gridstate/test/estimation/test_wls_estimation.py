# -*- coding: utf-8 -*-

# Copyright (c) 2016-2026 by University of Kassel and Fraunhofer Institute for Energy Economics
# and Energy System Technology (IEE), Kassel. All rights reserved.

import numpy as np
import pytest

from gridstate.auxiliary import MeasurementConfigurationError, AlgorithmUnknown, \
    FactorizationError
from gridstate.estimation import MeasurementRegistry, StateEstimation, estimate, \
    add_virtual_meas_from_state, add_virtual_pmu_meas_from_state
from gridstate.test.conftest import measure

FACTORIZATIONS = ["lu", "ldlt", "qr", "orthogonal"]


def _assert_state(net, state, atol=1e-8, angles_only=False):
    vm, va = state
    if not angles_only:
        assert np.allclose(net.res_bus_est.vm_pu.values, vm, atol=atol)
    assert np.allclose(net.res_bus_est.va_rad.values, va, atol=atol)


def test_2bus_flat(net_2bus):
    registry = MeasurementRegistry(net_2bus)
    flat = np.ones(2), np.zeros(2)
    measure(net_2bus, registry, flat, "p", "branch", 0, side="from")
    measure(net_2bus, registry, flat, "v", "bus", 0)
    measure(net_2bus, registry, flat, "v", "bus", 1)

    if not estimate(net_2bus, registry, init="flat"):
        raise AssertionError("Estimation failed!")
    _assert_state(net_2bus, flat, atol=1e-10)


def test_3bus():
    import gridstate as gs
    net = gs.create_empty_network()
    gs.create_bus(net, "slack", name="bus1")
    gs.create_bus(net, name="bus2")
    gs.create_bus(net, name="bus3")
    gs.create_branch(net, 0, 1, r_pu=0.7, x_pu=0.2)
    gs.create_branch(net, 0, 2, r_pu=0.8, x_pu=0.8)
    gs.create_branch(net, 1, 2, r_pu=1., x_pu=0.6)

    # injections in generator convention
    registry = MeasurementRegistry(net)
    registry.create_measurement("p", "branch", -0.0011, 1e-4, element=0, side="from")
    registry.create_measurement("q", "branch", 0.024, 1e-4, element=0, side="from")
    registry.create_measurement("p", "bus", 0.018, 1e-4, element=2)
    registry.create_measurement("q", "bus", -0.1, 1e-4, element=2)
    registry.create_measurement("v", "bus", 1.08, 2.5e-3, element=0)
    registry.create_measurement("v", "bus", 1.015, 2.5e-3, element=2)

    se = StateEstimation(net, registry)
    if not se.estimate(init="flat"):
        raise AssertionError("Estimation failed!")

    target_v = np.array([1.0627, 1.0589, 1.0317])
    target_delta = np.array([0., 0.8677, 3.1381])
    diff_v = target_v - net.res_bus_est.vm_pu.values
    diff_delta = target_delta - np.rad2deg(net.res_bus_est.va_rad.values)
    if not (np.nanmax(abs(diff_v)) < 1e-4) or not (np.nanmax(abs(diff_delta)) < 1e-4):
        raise AssertionError("Estimation failed!")


@pytest.mark.parametrize("factorization", FACTORIZATIONS)
def test_ac_known_state(net_5bus, state_5bus, registry_5bus, factorization):
    assert estimate(net_5bus, registry_5bus, tolerance=1e-10, maximum_iterations=20,
                    factorization=factorization)
    _assert_state(net_5bus, state_5bus)
    res = registry_5bus.res_measurement
    assert np.allclose(res.residual.values, 0., atol=1e-8)
    assert np.allclose(res.estimate.values, res.value.values, atol=1e-8)


def test_ac_with_current_measurements(net_5bus, state_5bus):
    registry = MeasurementRegistry(net_5bus)
    add_virtual_meas_from_state(net_5bus, registry, *state_5bus, meas_types=("v", "p", "q", "i"))
    se = StateEstimation(net_5bus, registry, tolerance=1e-10, maximum_iterations=20)
    assert se.estimate()
    _assert_state(net_5bus, state_5bus)


@pytest.mark.parametrize("polar", [True, False])
@pytest.mark.parametrize("correlated", [True, False])
def test_ac_with_pmu(net_5bus, state_5bus, polar, correlated):
    registry = MeasurementRegistry(net_5bus)
    add_virtual_meas_from_state(net_5bus, registry, *state_5bus, meas_types=("p", "q"),
                                element_types=("bus",))
    add_virtual_pmu_meas_from_state(net_5bus, registry, *state_5bus, buses=[11, 14],
                                    branch_ends=[(3, "to")], polar=polar,
                                    correlated=correlated)
    registry.create_measurement("v", "bus", state_5bus[0][0], element=10)
    assert estimate(net_5bus, registry, tolerance=1e-10, maximum_iterations=20)
    _assert_state(net_5bus, state_5bus)
    res = registry.res_pmu
    assert np.allclose(res.magnitude_residual.values, 0., atol=1e-8)
    assert np.allclose(res.angle_residual.values, 0., atol=1e-8)


@pytest.mark.parametrize("factorization", FACTORIZATIONS)
def test_dc_known_state(net_5bus, state_5bus, factorization):
    registry = MeasurementRegistry(net_5bus)
    add_virtual_meas_from_state(net_5bus, registry, *state_5bus, meas_types=("p", "q", "v"),
                                kind="dc")
    # only active powers exist in the dc model
    assert set(registry.measurement.measurement_type) == {"p"}
    se = StateEstimation(net_5bus, registry, kind="dc", factorization=factorization)
    assert se.estimate()
    assert se.algorithm.iterations == 1
    _assert_state(net_5bus, state_5bus, angles_only=True)
    assert np.allclose(net_5bus.res_bus_est.vm_pu.values, 1.)
    assert net_5bus.res_bus_est.q_pu.isnull().all()


@pytest.mark.parametrize("correlated", [True, False])
@pytest.mark.parametrize("factorization", FACTORIZATIONS)
def test_pmu_known_state(net_5bus, state_5bus, correlated, factorization):
    registry = MeasurementRegistry(net_5bus)
    add_virtual_pmu_meas_from_state(net_5bus, registry, *state_5bus, correlated=correlated)
    se = StateEstimation(net_5bus, registry, kind="pmu", factorization=factorization)
    assert se.estimate()
    assert se.algorithm.iterations == 1
    _assert_state(net_5bus, state_5bus)


def test_factorization_equivalence(net_5bus, state_5bus):
    registry = MeasurementRegistry(net_5bus)
    add_virtual_meas_from_state(net_5bus, registry, *state_5bus, noise=True, seed=14)
    results = []
    for factorization in FACTORIZATIONS:
        se = StateEstimation(net_5bus, registry, tolerance=1e-10, maximum_iterations=30,
                             factorization=factorization)
        assert se.estimate()
        results.append(se.algorithm.x.copy())
        se.close()
    for x in results[1:]:
        assert np.allclose(x, results[0], atol=1e-7)


def test_orthogonal_with_pseudo_measurements(net_5bus, state_5bus):
    # near exact zero injection measurements next to ordinary ones
    registry = MeasurementRegistry(net_5bus)
    add_virtual_meas_from_state(net_5bus, registry, *state_5bus)
    for bus in (12, 13):
        for meas_type in ("p", "q"):
            idx = registry.in_service_measurements(meas_type, "bus").index[
                registry.in_service_measurements(meas_type, "bus").element.values == bus][0]
            registry.update_measurement(idx, variance=1e-12)
    assert estimate(net_5bus, registry, tolerance=1e-10, maximum_iterations=20,
                    factorization="orthogonal")
    _assert_state(net_5bus, state_5bus)


def test_stepwise(net_5bus, registry_5bus, state_5bus):
    se = StateEstimation(net_5bus, registry_5bus, tolerance=1e-10)
    model = se.model
    wls = se.algorithm
    wls.initialize(model, model.initial_state(net_5bus, "flat"))
    increments = [wls.step() for _ in range(6)]
    assert wls.iterations == 6
    assert increments[0] > increments[-1]
    assert increments[-1] < 1e-9
    vm, va = model.algebra.voltage(wls.x)
    assert np.allclose(vm, state_5bus[0]) and np.allclose(va, state_5bus[1])


def test_max_iterations(net_5bus, registry_5bus):
    se = StateEstimation(net_5bus, registry_5bus, tolerance=1e-14, maximum_iterations=1)
    assert not se.estimate()
    assert se.algorithm.status == "max_iterations"
    assert se.algorithm.iterations == 1
    # results are only written for successful estimations
    assert net_5bus.res_bus_est.empty


def test_init_results(net_5bus, registry_5bus):
    se = StateEstimation(net_5bus, registry_5bus, tolerance=1e-10, maximum_iterations=20)
    assert se.estimate()
    iterations = se.algorithm.iterations
    assert se.estimate(init="results")
    assert se.algorithm.iterations < iterations
    assert net_5bus._options["init"] == "results"


def test_unobservable(net_5bus):
    # redundant voltage magnitudes, but no measurement relates the angles
    registry = MeasurementRegistry(net_5bus)
    for bus in net_5bus.bus.index:
        registry.create_measurement("v", "bus", 1., element=bus)
        registry.create_measurement("v", "bus", 1.01, element=bus)
    with pytest.raises(FactorizationError):
        estimate(net_5bus, registry)

    with pytest.raises(MeasurementConfigurationError):
        estimate(net_5bus, MeasurementRegistry(net_5bus))


def test_invalid_options(net_5bus, registry_5bus):
    with pytest.raises(AlgorithmUnknown):
        StateEstimation(net_5bus, registry_5bus, algorithm="irwls")
    with pytest.raises(AlgorithmUnknown):
        StateEstimation(net_5bus, registry_5bus, factorization="cholesky")
    with pytest.raises(AlgorithmUnknown):
        StateEstimation(net_5bus, registry_5bus, kind="dcpf")


if __name__ == '__main__':
    pytest.main([__file__, "-xs"])
