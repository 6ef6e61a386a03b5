# -*- coding: utf-8 -*-

# Copyright (c) 2016-2026 by University of Kassel and Fraunhofer Institute for Energy Economics
# and Energy System Technology (IEE), Kassel. All rights reserved.

import logging

import numpy as np

from gridstate.auxiliary import MeasurementConfigurationError
from gridstate.estimation.algebra import get_algebra
from gridstate.estimation.precision import PrecisionCache, pmu_rectangular_covariance
from gridstate.pd2ppc import get_position
from gridstate.pypower.idx_bus import VA

logger = logging.getLogger(__name__)

__all__ = ["EstimationModel"]


class EstimationModel:
    """
    Coefficient cache of one estimator: one row per measurement component of the registry,
    whether the component is in service or not, with its measurement function, mean value,
    precision and in service flag.

    The model is built once from the registry. Changes of values, variances, statuses and PMU
    correlation flags are written into the cache through the update methods, which the
    registry calls for every attached model. Listeners (e.g. an LP model of the LAV
    estimator) are notified about changed means and statuses.
    """

    def __init__(self, ppci, registry, kind="ac"):
        self.ppci = ppci
        self.registry = registry
        self.kind = kind
        self.algebra = get_algebra(kind, ppci)
        self.version = registry.structure_version
        self._listeners = []

        lookups = registry.net["_pd2ppc_lookups"]
        self._bus_lookup = lookups["bus"]
        self._branch_lookup = lookups["branch"]

        self._records = {}
        function, position, table, source, component = [], [], [], [], []
        for t, layout in (("measurement", self._measurement_layout),
                          ("pmu", self._pmu_layout)):
            for index, record in registry[t].iterrows():
                rows = []
                for f, comp in layout(record):
                    if not self.algebra.supports(f):
                        continue
                    rows.append(len(function))
                    function.append(f)
                    position.append(self._position(record))
                    table.append(t)
                    source.append(index)
                    component.append(comp)
                if rows:
                    self._records[(t, index)] = rows

        self.function = np.array(function, dtype=object)
        self.position = np.array(position, dtype=np.int64)
        self.table = np.array(table, dtype=object)
        self.source = np.array(source, dtype=np.int64)
        self.component = np.array(component, dtype=object)
        self.n = len(self.function)

        self.z = np.zeros(self.n)
        self.active = np.zeros(self.n, dtype=bool)
        self.precision = PrecisionCache(self.n)
        for t, index in self._records:
            self._write(t, index, value=True, variance=True, status=True)
        logger.debug("Built %s model with %d rows, %d in service" % (kind, self.n,
                                                                     self.active.sum()))

    # --- layout

    def _position(self, record):
        lookup = self._bus_lookup if record.element_type == "bus" else self._branch_lookup
        return get_position(lookup, record.element)

    def _measurement_layout(self, record):
        meas_type = record.measurement_type
        if record.element_type == "bus":
            return [({"v": "vm", "p": "p", "q": "q"}[meas_type] + "_bus", "value")]
        return [("%s_%s" % (meas_type, record.side), "value")]

    def _is_rectangular(self, record):
        return self.kind == "pmu" or (self.kind == "ac" and not record.polar)

    def _pmu_layout(self, record):
        bus = record.element_type == "bus"
        if self.kind == "dc":
            return [("va_bus", "angle")] if bus else []
        if self._is_rectangular(record):
            if bus:
                return [("vre_bus", "real"), ("vim_bus", "imaginary")]
            return [("ire_%s" % record.side, "real"), ("iim_%s" % record.side, "imaginary")]
        if bus:
            return [("vm_bus", "magnitude"), ("va_bus", "angle")]
        return [("i_%s" % record.side, "magnitude"), ("ia_%s" % record.side, "angle")]

    def _is_pair(self, rows):
        return len(rows) == 2 and self.component[rows[0]] == "real"

    # --- cache writers

    def _write(self, table, index, value=False, variance=False, status=False):
        rows = self._records[(table, index)]
        record = self.registry[table].loc[index]
        if table == "measurement":
            row = rows[0]
            if value:
                self.z[row] = record.value
            if variance:
                self.precision.set_variance(row, record.variance)
            if status:
                self.active[row] = record.in_service
            return

        if self._is_pair(rows):
            row = rows[0]
            if value:
                self.z[row] = record.magnitude * np.cos(record.angle)
                self.z[row + 1] = record.magnitude * np.sin(record.angle)
            if value or variance:
                # the rectangular block depends on both the means and the variances
                covariance = pmu_rectangular_covariance(record.magnitude, record.angle,
                                                        record.variance_magnitude,
                                                        record.variance_angle)
                self.precision.set_pair(row, covariance, record.correlated)
            if status:
                both = record.magnitude_in_service and record.angle_in_service
                self.active[row] = self.active[row + 1] = both
            return

        for row in rows:
            half = self.component[row]
            if value:
                self.z[row] = record[half]
            if variance:
                self.precision.set_variance(row, record["variance_%s" % half])
            if status:
                self.active[row] = record["%s_in_service" % half]

    # --- narrow update methods called by the registry

    def update_value(self, table, index):
        if (table, index) not in self._records:
            return
        self._write(table, index, value=True)
        for listener in self._listeners:
            listener.value_changed(self._records[(table, index)])

    def update_variance(self, table, index):
        if (table, index) not in self._records:
            return
        self._write(table, index, variance=True)

    def update_status(self, table, index):
        if (table, index) not in self._records:
            return
        self._write(table, index, status=True)
        for listener in self._listeners:
            listener.status_changed(self._records[(table, index)])

    def update_correlation(self, index):
        rows = self._records.get(("pmu", index))
        if rows is None or not self._is_pair(rows):
            return
        self.precision.toggle_correlation(rows[0], self.registry.pmu.at[index, "correlated"])

    def add_listener(self, listener):
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    # --- queries

    @property
    def active_rows(self):
        return np.flatnonzero(self.active)

    @property
    def n_state(self):
        return self.algebra.n_state

    def rows_of(self, table, index):
        return list(self._records.get((table, index), []))

    def labels(self, rows):
        return [self.registry[t].at[i, "name"] for t, i in zip(self.table[rows], self.source[rows])]

    def incomplete_pairs(self):
        """PMU records in rectangular form with exactly one half in service."""
        incomplete = []
        for (table, index), rows in self._records.items():
            if table != "pmu" or not self._is_pair(rows):
                continue
            magnitude, angle = self.registry.pmu.loc[index, ["magnitude_in_service",
                                                            "angle_in_service"]]
            if magnitude != angle:
                incomplete.append(index)
        return incomplete

    def check(self):
        """
        Raises MeasurementConfigurationError if the measurement set cannot be estimated.
        """
        incomplete = self.incomplete_pairs()
        if incomplete:
            raise MeasurementConfigurationError("PMU measurements %s have only one half in "
                                                "service, a rectangular pair needs both"
                                                % incomplete)
        n_active = int(self.active.sum())
        if n_active == 0:
            raise MeasurementConfigurationError("No measurements in service for %s estimation"
                                                % self.kind)
        if n_active < self.n_state:
            logger.error("System is not observable (cancelling)")
            raise MeasurementConfigurationError("Measurements available: %d. Measurements "
                                                "required: %d" % (n_active, self.n_state))

    def initial_state(self, net, init="flat"):
        """
        Returns the initial state vector.

        "flat": 1 p.u. and 0 rad at all buses, the slack keeps its angle
        "network": vm_pu and va_rad from net.bus
        "results": the last estimate in net.res_bus_est
        """
        n_bus = self.algebra.n_bus
        if init == "results" and ("res_bus_est" not in net or len(net.res_bus_est) != n_bus
                                  or net.res_bus_est.vm_pu.isnull().any()):
            logger.warning("No previous estimation results available, using flat start")
            init = "flat"
        if init == "flat":
            vm = np.ones(n_bus)
            va = np.zeros(n_bus)
            va[self.algebra.slack] = self.ppci["bus"][self.algebra.slack, VA]
        elif init == "network":
            vm = net.bus.vm_pu.values
            va = net.bus.va_rad.values
        elif init == "results":
            vm = net.res_bus_est.loc[net.bus.index, "vm_pu"].values
            va = net.res_bus_est.loc[net.bus.index, "va_rad"].values
        else:
            raise UserWarning("Unknown initialization %s, use 'flat', 'network' or 'results'"
                              % init)
        return self.algebra.initial_state(vm, va)
