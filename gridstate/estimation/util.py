# -*- coding: utf-8 -*-

# Copyright (c) 2016-2026 by University of Kassel and Fraunhofer Institute for Energy Economics
# and Energy System Technology (IEE), Kassel. All rights reserved.

import numpy as np

from gridstate.estimation.algebra import get_algebra
from gridstate.pd2ppc import _pd2ppc
from gridstate.pypower.idx_brch import BR_STATUS

__all__ = ["add_virtual_meas_from_state", "add_virtual_pmu_meas_from_state",
           "evaluate_state"]

BUS_FUNCTIONS = {"v": "vm_bus", "p": "p_bus", "q": "q_bus"}


def evaluate_state(net, vm, va, function, position, kind="ac"):
    """
    Evaluates measurement functions at a known voltage state.

    INPUT:
        **net** (gridstateNet) - network

        **vm**, **va** (array) - voltage magnitudes (p.u.) and angles (rad) in the order of
            net.bus

        **function** (iterable) - function names, e.g. "p_from" or "vm_bus"

        **position** (iterable) - bus or branch position of each function in the internal model

    OPTIONAL:
        **kind** (str, "ac") - "ac", "dc" or "pmu" model used for the evaluation

    OUTPUT:
        **hx** (array) - the values of the measurement functions
    """
    algebra = get_algebra(kind, _pd2ppc(net))
    x = algebra.initial_state(vm, va)
    return algebra.create_hx(x, np.array(function, dtype=object),
                             np.array(position, dtype=np.int64))


def _in_service_branches(net):
    return np.flatnonzero(net.branch.in_service.values)


def add_virtual_meas_from_state(net, registry, vm, va, meas_types=("v", "p", "q"),
                                element_types=("bus", "branch"), sides=("from", "to"),
                                kind="ac", variance=None, noise=False, seed=None):
    """
    Adds scalar measurements consistent with a known voltage state, e.g. of a power flow.

    Bus measurements are created for every bus, branch measurements for both ends of every
    in service branch. Measurement types the model of the given kind does not support are
    left out (a DC model only knows active powers).

    INPUT:
        **net** (gridstateNet) - network

        **registry** (MeasurementRegistry) - receives the measurements

        **vm**, **va** (array) - voltage magnitudes (p.u.) and angles (rad) in the order of
            net.bus

    OPTIONAL:
        **meas_types** (tuple, ("v", "p", "q")) - measurement types to create, "i" adds current
            magnitudes at branch ends

        **element_types** (tuple, ("bus", "branch")) - elements to measure

        **sides** (tuple, ("from", "to")) - measured branch ends

        **kind** (str, "ac") - model used to calculate the measured values

        **variance** (dict, None) - variance per measurement type, configured defaults of the
            registry for missing types

        **noise** (bool, False) - add normally distributed errors with the variances

        **seed** (int, None) - seed of the random generator

    OUTPUT:
        **created** (list) - indices of the created records in registry.measurement
    """
    variance = {} if variance is None else variance
    bus_positions = np.arange(len(net.bus))
    branches = _in_service_branches(net)
    algebra_functions = get_algebra(kind, _pd2ppc(net)).functions

    specs = []
    for meas_type in meas_types:
        if "bus" in element_types and meas_type in BUS_FUNCTIONS:
            for pos in bus_positions:
                specs.append((meas_type, "bus", BUS_FUNCTIONS[meas_type], pos, None))
        if "branch" in element_types and meas_type in ("p", "q", "i"):
            for side in sides:
                for pos in branches:
                    specs.append((meas_type, "branch", "%s_%s" % (meas_type, side), pos, side))
    specs = [s for s in specs if s[2] in algebra_functions]
    if not specs:
        return []

    values = evaluate_state(net, vm, va, [s[2] for s in specs], [s[3] for s in specs],
                            kind=kind)
    rng = np.random.default_rng(seed)
    created = []
    for (meas_type, element_type, _, pos, side), value in zip(specs, values):
        var = variance.get(meas_type, registry.config.variance[meas_type])
        if noise:
            value += rng.normal(0., np.sqrt(var))
        element = net.bus.index[pos] if element_type == "bus" else net.branch.index[pos]
        created.append(registry.create_measurement(meas_type, element_type, value,
                                                   variance=var, element=element, side=side))
    return created


def add_virtual_pmu_meas_from_state(net, registry, vm, va, buses=None, branch_ends=None,
                                    variance_magnitude=None, variance_angle=None, polar=None,
                                    correlated=None, noise=False, seed=None):
    """
    Adds PMU measurements consistent with a known voltage state.

    INPUT:
        **net** (gridstateNet) - network

        **registry** (MeasurementRegistry) - receives the PMU records

        **vm**, **va** (array) - voltage magnitudes (p.u.) and angles (rad) in the order of
            net.bus

    OPTIONAL:
        **buses** (iterable, None) - buses (net.bus index) with a voltage phasor measurement,
            all buses if None

        **branch_ends** (iterable, None) - (branch, side) tuples with a current phasor
            measurement, both ends of all in service branches if None

        **variance_magnitude**, **variance_angle** (float, None) - configured defaults if None

        **polar**, **correlated** (bool, None) - representation of the pairs, configured
            defaults if None

        **noise** (bool, False) - add normally distributed errors with the variances

        **seed** (int, None) - seed of the random generator

    OUTPUT:
        **created** (list) - indices of the created records in registry.pmu
    """
    ppci = _pd2ppc(net)
    bus_lookup = net["_pd2ppc_lookups"]["bus"]
    branch_lookup = net["_pd2ppc_lookups"]["branch"]
    if buses is None:
        buses = net.bus.index.values
    if branch_ends is None:
        in_service = net.branch.index.values[ppci["branch"][:, BR_STATUS] > 0]
        branch_ends = [(br, side) for side in ("from", "to") for br in in_service]

    function, position = [], []
    for bus in buses:
        function += ["vm_bus", "va_bus"]
        position += [bus_lookup[bus]] * 2
    for branch, side in branch_ends:
        function += ["i_%s" % side, "ia_%s" % side]
        position += [branch_lookup[branch]] * 2
    if not function:
        return []
    values = evaluate_state(net, vm, va, function, position).reshape(-1, 2)

    variance_magnitude = registry.config.variance["pmu_magnitude"] \
        if variance_magnitude is None else variance_magnitude
    variance_angle = registry.config.variance["pmu_angle"] if variance_angle is None \
        else variance_angle
    rng = np.random.default_rng(seed)
    if noise:
        values[:, 0] += rng.normal(0., np.sqrt(variance_magnitude), len(values))
        values[:, 1] += rng.normal(0., np.sqrt(variance_angle), len(values))

    kwargs = {"variance_magnitude": variance_magnitude, "variance_angle": variance_angle,
              "polar": polar, "correlated": correlated}
    locations = [("bus", bus, None) for bus in buses] + \
        [("branch", branch, side) for branch, side in branch_ends]
    created = []
    for (element_type, element, side), (magnitude, angle) in zip(locations, values):
        created.append(registry.create_pmu(element_type, magnitude, angle, element=element,
                                           side=side, **kwargs))
    return created
