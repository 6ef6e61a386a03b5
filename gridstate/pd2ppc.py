# -*- coding: utf-8 -*-

# Copyright (c) 2016-2026 by University of Kassel and Fraunhofer Institute for Energy Economics
# and Energy System Technology (IEE), Kassel. All rights reserved.

import logging

import numpy as np

from gridstate.auxiliary import MeasurementConfigurationError
from gridstate.pypower.idx_brch import F_BUS, T_BUS, BR_R, BR_X, BR_B, BR_G, TAP, SHIFT, \
    BR_STATUS, BR_IDX, branch_cols
from gridstate.pypower.idx_bus import BUS_I, BUS_TYPE, GS, BS, VM, VA, PQ, REF, bus_cols
from gridstate.pypower.makeBdc import makeBdc
from gridstate.pypower.makeYbus import makeYbus

logger = logging.getLogger(__name__)


def _create_lookup(index):
    """
    Creates an array lookup from element indices to contiguous positions. Unused entries
    are -1, so a lookup of an unknown element can be detected by a negative position.
    """
    lookup = -np.ones(int(index.max()) + 1 if len(index) else 0, dtype=np.int64)
    lookup[index] = np.arange(len(index))
    return lookup


def get_position(lookup, element):
    """
    Returns the contiguous position of one element or -1 if the element is unknown.
    """
    element = int(element)
    if element < 0 or element >= len(lookup):
        return -1
    return int(lookup[element])


def _build_bus_ppc(net):
    bus = np.zeros((len(net.bus), bus_cols), dtype=np.float64)
    bus[:, BUS_I] = np.arange(len(net.bus))
    bus[:, BUS_TYPE] = np.where(net.bus.type.values == "slack", REF, PQ)
    bus[:, GS] = net.bus.gs_pu.values
    bus[:, BS] = net.bus.bs_pu.values
    bus[:, VM] = net.bus.vm_pu.values
    bus[:, VA] = net.bus.va_rad.values
    return bus


def _build_branch_ppc(net, bus_lookup):
    branch = np.zeros((len(net.branch), branch_cols), dtype=np.float64)
    branch[:, F_BUS] = bus_lookup[net.branch.from_bus.values]
    branch[:, T_BUS] = bus_lookup[net.branch.to_bus.values]
    branch[:, BR_R] = net.branch.r_pu.values
    branch[:, BR_X] = net.branch.x_pu.values
    branch[:, BR_G] = net.branch.g_pu.values
    branch[:, BR_B] = net.branch.b_pu.values
    branch[:, TAP] = net.branch.tap.values
    branch[:, SHIFT] = net.branch.shift_rad.values
    branch[:, BR_STATUS] = net.branch.in_service.values.astype(np.float64)
    branch[:, BR_IDX] = net.branch.index.values
    return branch


def _pd2ppc(net, calculate_admittance=True):
    """
    Converts the gridstate network into the internal bus/branch model used by the estimators.

    Buses are renumbered contiguously in the order of net.bus, branches keep the order of
    net.branch. Out of service branches stay in the branch array with BR_STATUS = 0, so that
    positions of branch measurements do not change when a branch is switched.

    INPUT:
        **net** (gridstateNet) - network with bus and branch tables

    OPTIONAL:
        **calculate_admittance** (bool, True) - if False, only the topology is converted
            (used by observability analysis and PMU placement)

    OUTPUT:
        **ppci** (dict) - internal network model with "bus", "branch" and "internal" entries
    """
    if len(net.bus) == 0:
        raise MeasurementConfigurationError("The network has no buses")
    bus_lookup = _create_lookup(net.bus.index.values)
    branch_lookup = _create_lookup(net.branch.index.values)
    net["_pd2ppc_lookups"] = {"bus": bus_lookup, "branch": branch_lookup}

    bus = _build_bus_ppc(net)
    branch = _build_branch_ppc(net, bus_lookup)
    ref = np.flatnonzero(bus[:, BUS_TYPE] == REF)

    ppci = {"bus": bus, "branch": branch,
            "internal": {"ref": ref,
                         "bus_index": net.bus.index.values,
                         "branch_index": net.branch.index.values}}
    if not calculate_admittance:
        return ppci

    if len(ref) == 0:
        raise MeasurementConfigurationError("No slack bus is defined in net.bus")
    if len(ref) > 1:
        raise MeasurementConfigurationError("Only one slack bus is supported, found buses %s"
                                            % net.bus.index.values[ref].tolist())

    Ybus, Yf, Yt = makeYbus(bus, branch)
    Bbus, Bf, Pbusinj, Pfinj = makeBdc(bus, branch)
    ppci["internal"].update({"Ybus": Ybus, "Yf": Yf, "Yt": Yt,
                             "Bbus": Bbus, "Bf": Bf, "Pbusinj": Pbusinj, "Pfinj": Pfinj,
                             "non_slack": np.flatnonzero(bus[:, BUS_TYPE] != REF)})
    logger.debug("Converted network with %d buses and %d branches" % (len(bus), len(branch)))
    return ppci
