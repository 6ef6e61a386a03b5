# -*- coding: utf-8 -*-

# Copyright (c) 2016-2026 by University of Kassel and Fraunhofer Institute for Energy Economics
# and Energy System Technology (IEE), Kassel. All rights reserved.

from __future__ import annotations

import logging
from typing import Literal

import numpy as np
import pandas as pd

from gridstate.auxiliary import gridstateNet, get_free_id

logger = logging.getLogger(__name__)

__all__ = ["create_empty_network", "create_bus", "create_branch"]

BusType = Literal["slack", "pq"]

NETWORK_STRUCTURE = {
    "bus": {"name": object,
            "type": object,
            "vm_pu": np.float64,
            "va_rad": np.float64,
            "gs_pu": np.float64,
            "bs_pu": np.float64},
    "branch": {"name": object,
               "from_bus": np.int64,
               "to_bus": np.int64,
               "r_pu": np.float64,
               "x_pu": np.float64,
               "g_pu": np.float64,
               "b_pu": np.float64,
               "tap": np.float64,
               "shift_rad": np.float64,
               "in_service": bool},
    "res_bus_est": {"vm_pu": np.float64,
                    "va_rad": np.float64,
                    "p_pu": np.float64,
                    "q_pu": np.float64},
}


def _empty_table(columns: dict) -> pd.DataFrame:
    return pd.DataFrame({col: pd.Series(dtype=dtype) for col, dtype in columns.items()})


def _get_index_with_check(net: gridstateNet, table: str, index):
    if index is None:
        return get_free_id(net[table])
    if index in net[table].index:
        raise UserWarning("A %s with the id %s already exists" % (table, index))
    return index


def _set_entries(net: gridstateNet, table: str, index, entries: dict):
    row = pd.DataFrame([entries], index=[index])
    df = row if net[table].empty else pd.concat([net[table], row])
    # preserve dtypes
    net[table] = df.astype(NETWORK_STRUCTURE[table])


def create_empty_network(name: str = "") -> gridstateNet:
    """
    This function initializes the gridstate datastructure.

    OPTIONAL:
        **name** (string, "") - name for the network

    OUTPUT:
        **net** (attrdict) - gridstate attrdict with empty bus, branch and result tables

    EXAMPLE:
        net = create_empty_network()
    """
    net = gridstateNet({table: _empty_table(columns) for table, columns in NETWORK_STRUCTURE.items()})
    net["name"] = name
    net["_options"] = {}
    return net


def create_bus(
    net: gridstateNet,
    type: BusType = "pq",
    vm_pu: float = 1.0,
    va_rad: float = 0.0,
    gs_pu: float = 0.0,
    bs_pu: float = 0.0,
    name: str | None = None,
    index: int | None = None,
) -> int:
    """
    Adds one bus in table net["bus"].

    Parameters:
        net: The gridstate network in which the element is created
        type: "slack" for the angle reference bus, "pq" otherwise. Exactly one slack bus is
            required by the estimators.
        vm_pu: Voltage magnitude used by the "network" initial point
        va_rad: Voltage angle used by the "network" initial point; for the slack bus it is the
            fixed reference angle
        gs_pu: Shunt conductance in p.u.
        bs_pu: Shunt susceptance in p.u.
        name: the name for this bus
        index: Force a specified ID if it is available. If None, the index one higher than the
            highest already existing index is selected.

    Returns:
        The unique ID of the created element

    Example:
        >>> create_bus(net, "slack", name="bus1")
    """
    if type not in ("slack", "pq"):
        raise UserWarning("Invalid bus type %s" % type)
    index = _get_index_with_check(net, "bus", index)

    entries = {"name": name, "type": type, "vm_pu": vm_pu, "va_rad": va_rad, "gs_pu": gs_pu,
               "bs_pu": bs_pu}
    _set_entries(net, "bus", index, entries)
    return index


def create_branch(
    net: gridstateNet,
    from_bus: int,
    to_bus: int,
    r_pu: float,
    x_pu: float,
    g_pu: float = 0.0,
    b_pu: float = 0.0,
    tap: float = 1.0,
    shift_rad: float = 0.0,
    in_service: bool = True,
    name: str | None = None,
    index: int | None = None,
) -> int:
    """
    Creates a branch (line or two-winding transformer) in the pi-model with per-unit parameters.

    Parameters:
        net: The gridstate network in which the element is created
        from_bus: ID of the bus on the tap side of the branch
        to_bus: ID of the bus on the other side
        r_pu: series resistance
        x_pu: series reactance
        g_pu: total shunt conductance, split equally between both ends
        b_pu: total shunt (charging) susceptance, split equally between both ends
        tap: off-nominal turns ratio at the from side, 1.0 for lines
        shift_rad: phase shift angle at the from side
        in_service: False excludes the branch from the admittance matrices
        name: the name for this branch
        index: Force a specified ID if it is available.

    Returns:
        The unique ID of the created element

    Example:
        >>> create_branch(net, 0, 1, r_pu=0.01, x_pu=0.1, b_pu=0.02)
    """
    for bus in (from_bus, to_bus):
        if bus not in net["bus"].index.values:
            raise UserWarning("Branch tries to attach to non-existing bus %s" % bus)
    if from_bus == to_bus:
        raise UserWarning("Branch %s connects bus %s with itself" % (index, from_bus))
    if r_pu == 0 and x_pu == 0:
        raise UserWarning("Branch impedance must not be zero")
    index = _get_index_with_check(net, "branch", index)

    entries = {"name": name, "from_bus": from_bus, "to_bus": to_bus, "r_pu": r_pu,
               "x_pu": x_pu, "g_pu": g_pu, "b_pu": b_pu, "tap": tap, "shift_rad": shift_rad,
               "in_service": bool(in_service)}
    _set_entries(net, "branch", index, entries)
    return index
