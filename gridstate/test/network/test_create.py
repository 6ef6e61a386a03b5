# -*- coding: utf-8 -*-

# Copyright (c) 2016-2026 by University of Kassel and Fraunhofer Institute for Energy Economics
# and Energy System Technology (IEE), Kassel. All rights reserved.

import numpy as np
import pytest

import gridstate as gs
from gridstate.auxiliary import MeasurementConfigurationError
from gridstate.pd2ppc import _pd2ppc, get_position
from gridstate.pypower.idx_brch import F_BUS, T_BUS, BR_STATUS
from gridstate.pypower.idx_bus import BUS_TYPE, REF


def test_create_empty_network():
    net = gs.create_empty_network(name="test")
    assert net.name == "test"
    assert net.bus.empty and net.branch.empty and net.res_bus_est.empty
    assert net.bus.dtypes["vm_pu"] == np.float64
    assert net.branch.dtypes["in_service"] == bool


def test_network_attribute_access():
    net = gs.create_empty_network()
    net._options = {"kind": "dc"}
    assert net["_options"] is net._options
    assert "_options" in dir(net)
    with pytest.raises(AttributeError):
        net.res_missing
    # keys shadowed by dict methods are items only
    net["items"] = 1
    assert callable(net.items)
    with pytest.raises(TypeError):
        net.keys = []


def test_create_bus_and_branch():
    net = gs.create_empty_network()
    b0 = gs.create_bus(net, "slack", va_rad=0.1)
    b1 = gs.create_bus(net, index=7)
    b2 = gs.create_bus(net)
    assert (b0, b1, b2) == (0, 7, 8)

    br = gs.create_branch(net, b0, b1, r_pu=0.01, x_pu=0.1, b_pu=0.02)
    assert br == 0
    assert net.branch.at[br, "tap"] == 1.
    assert net.branch.dtypes["from_bus"] == np.int64

    with pytest.raises(UserWarning):
        gs.create_bus(net, index=7)
    with pytest.raises(UserWarning):
        gs.create_bus(net, type="pv")
    with pytest.raises(UserWarning):
        gs.create_branch(net, b0, 99, r_pu=0.01, x_pu=0.1)
    with pytest.raises(UserWarning):
        gs.create_branch(net, b0, b0, r_pu=0.01, x_pu=0.1)
    with pytest.raises(UserWarning):
        gs.create_branch(net, b0, b2, r_pu=0., x_pu=0.)


def test_pd2ppc_lookup(net_5bus):
    net_5bus.branch.loc[2, "in_service"] = False
    ppci = _pd2ppc(net_5bus)
    bus_lookup = net_5bus._pd2ppc_lookups["bus"]
    assert get_position(bus_lookup, 10) == 0
    assert get_position(bus_lookup, 14) == 4
    assert get_position(bus_lookup, 3) == -1
    assert get_position(bus_lookup, 100) == -1

    assert ppci["bus"][0, BUS_TYPE] == REF
    assert list(ppci["internal"]["non_slack"]) == [1, 2, 3, 4]
    assert ppci["branch"][3, F_BUS] == 1 and ppci["branch"][3, T_BUS] == 3
    # out of service branches keep their position
    assert ppci["branch"].shape[0] == 6
    assert ppci["branch"][2, BR_STATUS] == 0


def test_admittance(net_5bus):
    ppci = _pd2ppc(net_5bus)
    Ybus = ppci["internal"]["Ybus"].toarray()
    Yf, Yt = ppci["internal"]["Yf"], ppci["internal"]["Yt"]

    # without phase shift the bus admittance matrix is symmetric
    net_5bus.branch.loc[3, "shift_rad"] = 0.
    Y_sym = _pd2ppc(net_5bus)["internal"]["Ybus"].toarray()
    assert np.allclose(Y_sym, Y_sym.T)
    assert not np.allclose(Ybus, Ybus.T)

    # branch currents add up to the bus currents
    V = np.exp(1j * np.linspace(0., -0.1, 5))
    Ibus = Ybus @ V
    fb = ppci["branch"][:, F_BUS].astype(np.int64)
    tb = ppci["branch"][:, T_BUS].astype(np.int64)
    Ish = (ppci["bus"][:, 2] + 1j * ppci["bus"][:, 3]) * V
    Isum = Ish.copy()
    np.add.at(Isum, fb, Yf @ V)
    np.add.at(Isum, tb, Yt @ V)
    assert np.allclose(Isum, Ibus)


def test_dc_matrices(net_3bus):
    ppci = _pd2ppc(net_3bus)
    Bbus = ppci["internal"]["Bbus"].toarray()
    assert np.allclose(Bbus.sum(axis=1), 0.)
    assert np.allclose(Bbus[0, 1], -1. / 0.2)
    assert np.allclose(ppci["internal"]["Pbusinj"], 0.)


def test_slack_errors():
    net = gs.create_empty_network()
    with pytest.raises(MeasurementConfigurationError):
        _pd2ppc(net)

    gs.create_bus(net)
    gs.create_bus(net)
    gs.create_branch(net, 0, 1, r_pu=0.01, x_pu=0.1)
    with pytest.raises(MeasurementConfigurationError):
        _pd2ppc(net)
    # the topology alone needs no slack
    _pd2ppc(net, calculate_admittance=False)

    net.bus.loc[:, "type"] = "slack"
    with pytest.raises(MeasurementConfigurationError):
        _pd2ppc(net)


if __name__ == '__main__':
    pytest.main([__file__, "-xs"])
