# -*- coding: utf-8 -*-

# Copyright (c) 2016-2026 by University of Kassel and Fraunhofer Institute for Energy Economics
# and Energy System Technology (IEE), Kassel. All rights reserved.

import numpy as np
import pytest

from gridstate.estimation import MeasurementRegistry, StateEstimation, \
    island_topological_flow, island_topological, restoration_gram
from gridstate.test.conftest import measure


def _assert_partition(islands, net):
    buses = [b for island in islands.buses for b in island]
    assert sorted(buses) == sorted(net.bus.index)
    assert len(set(buses)) == len(buses)
    for k, island in enumerate(islands.island):
        assert all(islands.bus[i] == k for i in island)


@pytest.fixture
def chain_registry(net_chain):
    registry = MeasurementRegistry(net_chain)
    registry.create_measurement("p", "branch", 0.1, element=0, side="from")
    registry.create_measurement("q", "branch", 0.02, element=0, side="from")
    return registry


def test_flow_islands(net_chain, chain_registry):
    islands = island_topological_flow(net_chain, chain_registry)
    assert islands.buses == [[0, 1], [2], [3]]
    assert islands.tie["branch"] == {1, 2}
    assert islands.tie["bus"] == {1, 2, 3}
    _assert_partition(islands, net_chain)


def test_tie_injection_merges_pair(net_chain, chain_registry):
    chain_registry.create_measurement("p", "bus", -0.05, element=3)
    for strategy in (island_topological_flow, island_topological):
        islands = strategy(net_chain, chain_registry)
        assert islands.buses == [[0, 1], [2, 3]]
        assert islands.tie["branch"] == {1}
        _assert_partition(islands, net_chain)


def test_chain_observable(net_chain, chain_registry):
    chain_registry.create_measurement("p", "bus", -0.05, element=2)
    chain_registry.create_measurement("p", "bus", -0.05, element=3)
    islands = island_topological_flow(net_chain, chain_registry)
    assert len(islands) == 1
    assert islands.tie["bus"] == islands.tie["branch"] == set()


def test_out_of_service_measurements_ignored(net_chain, chain_registry):
    k = chain_registry.create_measurement("p", "branch", 0.05, element=1, side="to")
    assert len(island_topological_flow(net_chain, chain_registry)) == 2
    chain_registry.update_measurement(k, in_service=False)
    assert len(island_topological_flow(net_chain, chain_registry)) == 3


def test_branch_pmu_is_flow(net_chain):
    registry = MeasurementRegistry(net_chain)
    registry.create_pmu("branch", 0.1, -0.1, element=2, side="from")
    islands = island_topological_flow(net_chain, registry)
    assert islands.buses == [[0], [1], [2, 3]]


def test_triangle_needs_group_merge(net_3bus):
    registry = MeasurementRegistry(net_3bus)
    registry.create_measurement("p", "bus", 0.1, element=0)
    registry.create_measurement("p", "bus", -0.1, element=1)

    flow = island_topological_flow(net_3bus, registry)
    # every injection touches two other islands, no pair can be merged
    assert len(flow) == 3
    maximal = island_topological(net_3bus, registry)
    assert maximal.buses == [[0, 1, 2]]


def test_more_measurements_fewer_islands(net_5bus, state_5bus):
    registry = MeasurementRegistry(net_5bus)
    counts = []
    for meas_type, element_type, element, side in [("p", "branch", 0, "from"),
                                                   ("p", "bus", 14, None),
                                                   ("p", "branch", 3, "to"),
                                                   ("p", "bus", 12, None),
                                                   ("p", "bus", 11, None)]:
        measure(net_5bus, registry, state_5bus, meas_type, element_type, element, side=side)
        islands = island_topological(net_5bus, registry)
        _assert_partition(islands, net_5bus)
        counts.append(len(islands))
    assert counts == sorted(counts, reverse=True)
    assert counts[0] == 4
    assert counts[-1] == 1


@pytest.fixture
def chain_restoration(net_chain, state_chain):
    registry = MeasurementRegistry(net_chain)
    for bus in net_chain.bus.index:
        measure(net_chain, registry, state_chain, "v", "bus", bus)
    for meas_type in ("p", "q"):
        measure(net_chain, registry, state_chain, meas_type, "branch", 0, side="from")
        measure(net_chain, registry, state_chain, meas_type, "bus", 3)
    pseudo = MeasurementRegistry(net_chain)
    for meas_type in ("p", "q"):
        measure(net_chain, pseudo, state_chain, meas_type, "bus", 2, variance=1e-2)
    return registry, pseudo


def test_restoration(net_chain, state_chain, chain_restoration):
    registry, pseudo = chain_restoration
    islands = island_topological(net_chain, registry)
    assert islands.buses == [[0, 1], [2, 3]]
    n_before = len(registry.measurement)

    restoration = restoration_gram(net_chain, registry, pseudo, islands)
    assert restoration.observable
    assert restoration.initial_rank == 1
    assert restoration.rank == 2
    assert restoration.added == [("measurement", 0)]
    # the reactive power pseudo measurement is copied with the active one
    assert len(registry.measurement) == n_before + 2
    assert len(restoration.islands) == 1
    # the pool is left unchanged
    assert len(pseudo.measurement) == 2

    se = StateEstimation(net_chain, registry, tolerance=1e-10, maximum_iterations=20)
    assert se.estimate()
    assert np.allclose(net_chain.res_bus_est.vm_pu.values, state_chain[0], atol=1e-8)
    assert np.allclose(net_chain.res_bus_est.va_rad.values, state_chain[1], atol=1e-8)


def test_restoration_without_candidates(net_chain, chain_restoration):
    registry, _ = chain_restoration
    islands = island_topological(net_chain, registry)
    restoration = restoration_gram(net_chain, registry, MeasurementRegistry(net_chain), islands)
    assert not restoration.observable
    assert restoration.rank == restoration.initial_rank == 1
    assert restoration.added == []


def test_restoration_with_bus_pmu(net_chain, chain_registry):
    islands = island_topological(net_chain, chain_registry)
    pseudo = MeasurementRegistry(net_chain)
    for bus in (2, 3):
        pseudo.create_pmu("bus", 1., -0.02, element=bus)
    restoration = restoration_gram(net_chain, chain_registry, pseudo, islands)
    assert restoration.observable
    assert restoration.rank == 3
    assert [table for table, _ in restoration.added] == ["pmu", "pmu"]
    assert len(chain_registry.pmu) == 2


if __name__ == '__main__':
    pytest.main([__file__, "-xs"])
