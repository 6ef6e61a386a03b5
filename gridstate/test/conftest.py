# -*- coding: utf-8 -*-

# Copyright (c) 2016-2026 by University of Kassel and Fraunhofer Institute for Energy Economics
# and Energy System Technology (IEE), Kassel. All rights reserved.

import numpy as np
import pytest

import gridstate as gs
from gridstate.estimation import MeasurementRegistry
from gridstate.estimation.util import evaluate_state

MEAS_FUNCTIONS = {("v", "bus"): "vm_bus", ("p", "bus"): "p_bus", ("q", "bus"): "q_bus"}


def measure(net, registry, state, meas_type, element_type, element, side=None, kind="ac",
            offset=0., **kwargs):
    """Creates one measurement with the value of a known state, optionally shifted by offset."""
    vm, va = state
    if element_type == "bus":
        function = MEAS_FUNCTIONS[(meas_type, "bus")]
        position = list(net.bus.index).index(element)
    else:
        function = "%s_%s" % (meas_type, side)
        position = list(net.branch.index).index(element)
    value = evaluate_state(net, vm, va, [function], [position], kind=kind)[0]
    return registry.create_measurement(meas_type, element_type, value + offset, element=element,
                                       side=side, **kwargs)


@pytest.fixture
def net_2bus():
    net = gs.create_empty_network()
    gs.create_bus(net, "slack", name="bus1")
    gs.create_bus(net, name="bus2")
    gs.create_branch(net, 0, 1, r_pu=0.01, x_pu=0.1, name="line1")
    return net


@pytest.fixture
def net_3bus():
    net = gs.create_empty_network()
    gs.create_bus(net, "slack", name="bus1")
    gs.create_bus(net, name="bus2")
    gs.create_bus(net, name="bus3")
    gs.create_branch(net, 0, 1, r_pu=0.07, x_pu=0.2)
    gs.create_branch(net, 0, 2, r_pu=0.08, x_pu=0.25)
    gs.create_branch(net, 1, 2, r_pu=0.1, x_pu=0.3)
    return net


@pytest.fixture
def net_5bus():
    """
    Meshed network with charging, a bus shunt and a phase shifting transformer between
    bus 11 and bus 13. Bus indices are not contiguous.
    """
    net = gs.create_empty_network(name="5bus")
    for index in (10, 11, 12, 13, 14):
        gs.create_bus(net, "slack" if index == 10 else "pq", index=index,
                      name="bus%d" % index)
    net.bus.loc[12, "bs_pu"] = 0.05
    gs.create_branch(net, 10, 11, r_pu=0.02, x_pu=0.06, b_pu=0.06)
    gs.create_branch(net, 10, 12, r_pu=0.08, x_pu=0.24, b_pu=0.05)
    gs.create_branch(net, 11, 12, r_pu=0.06, x_pu=0.18, b_pu=0.04)
    gs.create_branch(net, 11, 13, r_pu=0.005, x_pu=0.08, tap=0.98, shift_rad=0.03)
    gs.create_branch(net, 12, 14, r_pu=0.04, x_pu=0.12, b_pu=0.03)
    gs.create_branch(net, 13, 14, r_pu=0.08, x_pu=0.24, b_pu=0.05)
    return net


@pytest.fixture
def state_5bus():
    vm = np.array([1.02, 1.005, 0.987, 0.975, 0.968])
    va = np.array([0., -0.021, -0.043, -0.058, -0.071])
    return vm, va


@pytest.fixture
def net_chain():
    """Four buses in a line, bus 0 is the slack."""
    net = gs.create_empty_network(name="chain")
    gs.create_bus(net, "slack")
    for _ in range(3):
        gs.create_bus(net)
    for f, t in ((0, 1), (1, 2), (2, 3)):
        gs.create_branch(net, f, t, r_pu=0.01, x_pu=0.05, b_pu=0.01)
    return net


@pytest.fixture
def state_chain():
    return np.array([1.01, 0.995, 0.98, 0.972]), np.array([0., -0.012, -0.025, -0.031])


@pytest.fixture
def registry_5bus(net_5bus, state_5bus):
    """Full AC measurement set of net_5bus consistent with state_5bus."""
    registry = MeasurementRegistry(net_5bus)
    gs.estimation.add_virtual_meas_from_state(net_5bus, registry, *state_5bus)
    return registry
