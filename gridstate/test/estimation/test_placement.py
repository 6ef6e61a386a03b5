# -*- coding: utf-8 -*-

# Copyright (c) 2016-2026 by University of Kassel and Fraunhofer Institute for Energy Economics
# and Energy System Technology (IEE), Kassel. All rights reserved.

from itertools import combinations

import numpy as np
import pytest

from gridstate.auxiliary import AlgorithmUnknown
from gridstate.estimation import MeasurementRegistry, StateEstimation, pmu_placement, \
    pmu_placement_measurements
from gridstate.estimation.placement import MILP_SOLVERS


def _neighbourhoods(net):
    """Buses observed by a PMU at each bus."""
    branch = net.branch[net.branch.in_service.values]
    observed = {bus: {bus} for bus in net.bus.index}
    for fb, tb in branch[["from_bus", "to_bus"]].values:
        observed[fb].add(tb)
        observed[tb].add(fb)
    return observed


def _minimum_cover(net):
    buses = set(net.bus.index)
    observed = _neighbourhoods(net)
    for size in range(1, len(buses) + 1):
        for combination in combinations(buses, size):
            if set().union(*[observed[bus] for bus in combination]) == buses:
                return size


@pytest.mark.parametrize("solver", MILP_SOLVERS)
def test_placement_covers_all_buses(net_5bus, solver):
    placement = pmu_placement(net_5bus, solver=solver)
    observed = _neighbourhoods(net_5bus)
    locations = [observed[bus] for bus in placement.bus]
    assert set().union(*locations) == set(net_5bus.bus.index)
    assert len(placement) == _minimum_cover(net_5bus) == 2

    # every location is needed
    for k in range(len(locations)):
        rest = locations[:k] + locations[k + 1:]
        assert set().union(*rest) != set(net_5bus.bus.index)


def test_measured_branch_ends(net_5bus):
    placement = pmu_placement(net_5bus)
    branch = net_5bus.branch
    # every branch end at a placed PMU and nothing else
    assert set(placement.from_) == set(branch.index[branch.from_bus.isin(placement.bus)])
    assert set(placement.to) == set(branch.index[branch.to_bus.isin(placement.bus)])


def test_solvers_agree(net_chain, net_5bus):
    for net in (net_chain, net_5bus):
        counts = {len(pmu_placement(net, solver=solver)) for solver in MILP_SOLVERS}
        assert counts == {_minimum_cover(net)}
    assert len(pmu_placement(net_chain)) == 2


def test_out_of_service_branch(net_chain):
    net_chain.branch.loc[1, "in_service"] = False
    placement = pmu_placement(net_chain)
    assert 1 not in placement.from_ and 1 not in placement.to
    observed = _neighbourhoods(net_chain)
    assert set().union(*[observed[bus] for bus in placement.bus]) == set(net_chain.bus.index)
    assert len(placement) == 2


def test_placement_position_lookup(net_5bus):
    placement = pmu_placement(net_5bus)
    lookup = net_5bus["_pd2ppc_lookups"]
    for bus, position in placement.bus.items():
        assert lookup["bus"][bus] == position
    for element, position in list(placement.from_.items()) + list(placement.to.items()):
        assert lookup["branch"][element] == position


@pytest.mark.parametrize("solver", MILP_SOLVERS)
def test_placement_makes_network_observable(net_5bus, state_5bus, solver):
    placement = pmu_placement(net_5bus, solver=solver)
    registry = MeasurementRegistry(net_5bus)
    created = pmu_placement_measurements(net_5bus, registry, placement, *state_5bus)
    assert len(registry.in_service_pmus("bus")) == len(placement)
    assert len(registry.in_service_pmus("branch")) == len(placement.from_) + len(placement.to)
    assert len(created) == len(registry.pmu)

    se = StateEstimation(net_5bus, registry, kind="pmu")
    assert se.estimate()
    assert np.allclose(net_5bus.res_bus_est.vm_pu.values, state_5bus[0], atol=1e-8)
    assert np.allclose(net_5bus.res_bus_est.va_rad.values, state_5bus[1], atol=1e-8)


def test_unknown_solver(net_5bus):
    with pytest.raises(AlgorithmUnknown):
        pmu_placement(net_5bus, solver="cbc")


if __name__ == '__main__':
    pytest.main([__file__, "-xs"])
