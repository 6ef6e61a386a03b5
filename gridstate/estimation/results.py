# -*- coding: utf-8 -*-

# Copyright (c) 2016-2026 by University of Kassel and Fraunhofer Institute for Energy Economics
# and Energy System Technology (IEE), Kassel. All rights reserved.

import numpy as np
import pandas as pd


def _bus_injections(model, vm, va):
    algebra = model.algebra
    if model.kind == "dc":
        p = algebra.Bbus * va + algebra.Pbusinj
        return p, np.full(len(p), np.nan)
    V = vm * np.exp(1j * va)
    s = V * np.conj(algebra.Ybus * V)
    return s.real, s.imag


def _phasor_estimates(algebra, vm, va, element_type, position, side):
    V = vm * np.exp(1j * va)
    if element_type == "bus":
        return V[position]
    Y = algebra.Yf if side == "from" else algebra.Yt
    return (Y * V)[position]


def _write_bus_results(net, model, x):
    vm, va = model.algebra.voltage(x)
    p, q = _bus_injections(model, vm, va)
    net["res_bus_est"] = pd.DataFrame({"vm_pu": vm, "va_rad": va, "p_pu": p, "q_pu": q},
                                      index=net.bus.index)
    return vm, va


def _write_measurement_results(registry, model, hx_all):
    meas = registry.measurement
    estimate = np.full(len(meas), np.nan)
    for i, index in enumerate(meas.index):
        rows = model.rows_of("measurement", index)
        if rows:
            estimate[i] = hx_all[rows[0]]
    registry.res_measurement = pd.DataFrame({"value": meas.value.values,
                                             "variance": meas.variance.values,
                                             "estimate": estimate,
                                             "residual": meas.value.values - estimate,
                                             "in_service": meas.in_service.values},
                                            index=meas.index)


def _write_pmu_results(registry, model, vm, va):
    pmu = registry.pmu
    lookups = registry.net["_pd2ppc_lookups"]
    magnitude = np.full(len(pmu), np.nan)
    angle = np.full(len(pmu), np.nan)
    for i, (index, record) in enumerate(pmu.iterrows()):
        if not model.rows_of("pmu", index):
            continue
        lookup = lookups["bus"] if record.element_type == "bus" else lookups["branch"]
        phasor = _phasor_estimates(model.algebra, vm, va, record.element_type,
                                   lookup[record.element], record.side)
        magnitude[i], angle[i] = np.abs(phasor), np.angle(phasor)
    # angle residuals are wrapped to (-pi, pi]
    angle_residual = np.angle(np.exp(1j * (pmu.angle.values - angle)))
    registry.res_pmu = pd.DataFrame({"magnitude": pmu.magnitude.values,
                                     "angle": pmu.angle.values,
                                     "variance_magnitude": pmu.variance_magnitude.values,
                                     "variance_angle": pmu.variance_angle.values,
                                     "magnitude_estimate": magnitude,
                                     "angle_estimate": angle,
                                     "magnitude_residual": pmu.magnitude.values - magnitude,
                                     "angle_residual": angle_residual,
                                     "in_service": pmu.magnitude_in_service.values &
                                     pmu.angle_in_service.values},
                                    index=pmu.index)


def _write_results(net, registry, model, x):
    """
    Writes the estimated state into net.res_bus_est and the measured and estimated values
    into registry.res_measurement and registry.res_pmu. Estimates of records the model of
    this estimation kind does not represent stay NaN.
    """
    vm, va = _write_bus_results(net, model, x)
    hx_all = model.algebra.create_hx(x, model.function, model.position)
    _write_measurement_results(registry, model, hx_all)
    _write_pmu_results(registry, model, vm, va)
