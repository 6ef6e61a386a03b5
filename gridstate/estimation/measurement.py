# -*- coding: utf-8 -*-

# Copyright (c) 2016-2026 by University of Kassel and Fraunhofer Institute for Energy Economics
# and Energy System Technology (IEE), Kassel. All rights reserved.

from __future__ import annotations

import logging
from typing import Literal

import numpy as np
import pandas as pd

from gridstate.auxiliary import get_free_id, MeasurementConfigurationError

logger = logging.getLogger(__name__)

__all__ = ["MeasurementConfig", "MeasurementRegistry"]

MeasType = Literal["v", "i", "p", "q"]
ElementType = Literal["bus", "branch"]
Side = Literal["from", "to"]

MEASUREMENT_TYPES = ("v", "i", "p", "q")
ALLOWED_ELEMENTS = {"v": ("bus",), "i": ("branch",), "p": ("bus", "branch"),
                    "q": ("bus", "branch")}

REGISTRY_STRUCTURE = {
    "measurement": {"name": object,
                    "measurement_type": object,
                    "element_type": object,
                    "element": np.int64,
                    "side": object,
                    "value": np.float64,
                    "variance": np.float64,
                    "in_service": bool},
    "pmu": {"name": object,
            "element_type": object,
            "element": np.int64,
            "side": object,
            "magnitude": np.float64,
            "angle": np.float64,
            "variance_magnitude": np.float64,
            "variance_angle": np.float64,
            "magnitude_in_service": bool,
            "angle_in_service": bool,
            "polar": bool,
            "correlated": bool},
}


class MeasurementConfig:
    """
    Default values applied by a MeasurementRegistry when a record is created without them.

    OPTIONAL:
        **variance_v**, **variance_i**, **variance_p**, **variance_q** (float, 1e-4) - default
            variances of voltage magnitude, current magnitude, active and reactive power
            measurements

        **variance_pmu_magnitude**, **variance_pmu_angle** (float, 1e-5) - default variances of
            PMU magnitude and angle measurements

        **polar** (bool, False) - default representation of PMU measurements in AC estimation

        **correlated** (bool, False) - default correlation flag of PMU measurements in
            rectangular form

        **labels** (dict, None) - label prefix per measurement kind ("v", "i", "p", "q", "pmu")
    """

    def __init__(self, variance_v=1e-4, variance_i=1e-4, variance_p=1e-4, variance_q=1e-4,
                 variance_pmu_magnitude=1e-5, variance_pmu_angle=1e-5, polar=False,
                 correlated=False, labels=None):
        self.variance = {"v": variance_v, "i": variance_i, "p": variance_p, "q": variance_q,
                         "pmu_magnitude": variance_pmu_magnitude,
                         "pmu_angle": variance_pmu_angle}
        for kind, variance in self.variance.items():
            _check_variance(variance, "default %s" % kind)
        self.polar = bool(polar)
        self.correlated = bool(correlated)
        self.labels = {"v": "V", "i": "I", "p": "P", "q": "Q", "pmu": "PMU"}
        if labels is not None:
            self.labels.update(labels)

    def label(self, kind, number):
        return "%s %d" % (self.labels[kind], number)


def _check_variance(variance, what):
    if variance is None or not np.isfinite(variance) or variance <= 0:
        raise MeasurementConfigurationError("The variance of %s must be a positive number, "
                                            "got %s" % (what, variance))


def _empty_table(columns):
    return pd.DataFrame({col: pd.Series(dtype=dtype) for col, dtype in columns.items()})


class MeasurementRegistry:
    """
    Holds the measurement records of one network.

    Scalar measurements live in the table "measurement", PMU measurements in the table "pmu"
    where one record is the magnitude/angle pair of a phasor. Records are never deleted, they
    are switched with their in service flags. Estimation models attached to the registry are
    updated immediately whenever a record changes.
    """

    def __init__(self, net, config=None):
        self.net = net
        self.config = config if config is not None else MeasurementConfig()
        self.measurement = _empty_table(REGISTRY_STRUCTURE["measurement"])
        self.pmu = _empty_table(REGISTRY_STRUCTURE["pmu"])
        self.res_measurement = None
        self.res_pmu = None
        # changes with every new record, attached models compare it to decide on a rebuild
        self.structure_version = 0
        self._models = []

    def __repr__(self):  # pragma: no cover
        return "MeasurementRegistry with %d measurements and %d PMUs" % (len(self.measurement),
                                                                        len(self.pmu))

    def __getitem__(self, table):
        if table not in REGISTRY_STRUCTURE:
            raise KeyError("Unknown measurement table %s" % table)
        return getattr(self, table)

    # --- model attachment

    def attach(self, model):
        if model not in self._models:
            self._models.append(model)

    def detach(self, model):
        if model in self._models:
            self._models.remove(model)

    @property
    def models(self):
        return list(self._models)

    # --- validation

    def _check_element(self, element_type, element, side):
        if element_type == "bus":
            if element not in self.net.bus.index.values:
                raise MeasurementConfigurationError("Bus %s does not exist" % element)
            if side is not None:
                raise MeasurementConfigurationError("Bus measurements have no side, got %s"
                                                    % side)
        elif element_type == "branch":
            if element not in self.net.branch.index.values:
                raise MeasurementConfigurationError("Branch %s does not exist" % element)
            if side not in ("from", "to"):
                raise MeasurementConfigurationError("Branch measurements need side 'from' or "
                                                    "'to', got %s" % side)
        else:
            raise MeasurementConfigurationError("Invalid element type %s, use 'bus' or "
                                                "'branch'" % element_type)

    def _check_index(self, table, index):
        if index not in self[table].index:
            raise MeasurementConfigurationError("No %s record with index %s" % (table, index))

    def _append(self, table, entries):
        index = get_free_id(self[table])
        row = pd.DataFrame([entries], index=[index])
        df = row if self[table].empty else pd.concat([self[table], row])
        setattr(self, table, df.astype(REGISTRY_STRUCTURE[table]))
        self.structure_version += 1
        return index

    # --- creation

    def create_measurement(
        self,
        meas_type: MeasType,
        element_type: ElementType,
        value: float,
        variance: float | None = None,
        element: int | None = None,
        side: Side | None = None,
        name: str | None = None,
        in_service: bool = True,
    ) -> int:
        """
        Creates a scalar measurement.

        Parameters:
            meas_type: "v" voltage magnitude, "i" current magnitude, "p" active power,
                "q" reactive power
            element_type: "bus" or "branch"; voltage measurements are bus measurements,
                current measurements are branch measurements
            value: measured value in p.u.
            variance: variance of the measurement; the configured default of the kind if None
            element: index of the bus or branch in the network
            side: "from" or "to" for branch measurements
            name: label of the measurement; a configured prefix and running number if None
            in_service: False keeps the record but excludes it from estimation

        Returns:
            The index of the created record in registry.measurement

        Example:
            >>> registry.create_measurement("p", "branch", 0.5, element=3, side="from")
        """
        if meas_type not in MEASUREMENT_TYPES:
            raise MeasurementConfigurationError("Invalid measurement type %s, use one of %s"
                                                % (meas_type, MEASUREMENT_TYPES))
        if element_type not in ALLOWED_ELEMENTS[meas_type]:
            raise MeasurementConfigurationError("A %s measurement cannot be placed at a %s"
                                                % (meas_type, element_type))
        self._check_element(element_type, element, side)
        variance = self.config.variance[meas_type] if variance is None else variance
        _check_variance(variance, "measurement %s" % name)
        if name is None:
            name = self.config.label(meas_type, len(self.measurement) + 1)

        entries = {"name": name, "measurement_type": meas_type, "element_type": element_type,
                   "element": element, "side": side, "value": float(value),
                   "variance": float(variance), "in_service": bool(in_service)}
        return self._append("measurement", entries)

    def create_pmu(
        self,
        element_type: ElementType,
        magnitude: float,
        angle: float,
        element: int | None = None,
        side: Side | None = None,
        variance_magnitude: float | None = None,
        variance_angle: float | None = None,
        polar: bool | None = None,
        correlated: bool | None = None,
        name: str | None = None,
        in_service: bool = True,
    ) -> int:
        """
        Creates a PMU measurement: the magnitude/angle pair of a bus voltage phasor or of a
        branch current phasor at one branch end.

        Parameters:
            element_type: "bus" or "branch"
            magnitude: measured magnitude in p.u.
            angle: measured angle in radians
            element: index of the bus or branch in the network
            side: "from" or "to" for branch phasors
            variance_magnitude: variance of the magnitude; the configured default if None
            variance_angle: variance of the angle; the configured default if None
            polar: keep the pair in polar form in AC estimation; the configured default if None
            correlated: in rectangular form, keep the covariance between real and imaginary
                part; the configured default if None
            name: label of the PMU
            in_service: sets both halves of the pair

        Returns:
            The index of the created record in registry.pmu
        """
        self._check_element(element_type, element, side)
        variance_magnitude = self.config.variance["pmu_magnitude"] \
            if variance_magnitude is None else variance_magnitude
        variance_angle = self.config.variance["pmu_angle"] if variance_angle is None \
            else variance_angle
        _check_variance(variance_magnitude, "PMU magnitude %s" % name)
        _check_variance(variance_angle, "PMU angle %s" % name)
        if name is None:
            name = self.config.label("pmu", len(self.pmu) + 1)

        entries = {"name": name, "element_type": element_type, "element": element, "side": side,
                   "magnitude": float(magnitude), "angle": float(angle),
                   "variance_magnitude": float(variance_magnitude),
                   "variance_angle": float(variance_angle),
                   "magnitude_in_service": bool(in_service), "angle_in_service": bool(in_service),
                   "polar": self.config.polar if polar is None else bool(polar),
                   "correlated": self.config.correlated if correlated is None
                   else bool(correlated)}
        return self._append("pmu", entries)

    # --- updates

    def _apply(self, table, index, changes, **changed):
        """
        Writes changes to a record and mirrors them into every attached model. If a model
        rejects the record, the previous values are written back and mirrored again.
        """
        previous = {column: self[table].at[index, column] for column in changes}
        for column, value in changes.items():
            self[table].at[index, column] = value
        try:
            self._mirror(table, index, **changed)
        except MeasurementConfigurationError:
            for column, value in previous.items():
                self[table].at[index, column] = value
            self._mirror(table, index, **changed)
            raise

    def _mirror(self, table, index, value=False, variance=False, status=False,
                correlation=False):
        for model in self._models:
            if value:
                model.update_value(table, index)
            if variance:
                model.update_variance(table, index)
            if status:
                model.update_status(table, index)
            if correlation:
                model.update_correlation(index)

    def update_measurement(self, index, value=None, variance=None, in_service=None):
        """
        Changes a scalar measurement and mirrors the change into every attached model.
        """
        self._check_index("measurement", index)
        if variance is not None:
            _check_variance(variance, "measurement %s" % index)

        changes = {}
        if value is not None:
            changes["value"] = float(value)
        if variance is not None:
            changes["variance"] = float(variance)
        if in_service is not None:
            changes["in_service"] = bool(in_service)
        self._apply("measurement", index, changes, value=value is not None,
                    variance=variance is not None, status=in_service is not None)

    def update_pmu(self, index, magnitude=None, angle=None, variance_magnitude=None,
                   variance_angle=None, in_service=None, magnitude_in_service=None,
                   angle_in_service=None, correlated=None):
        """
        Changes a PMU record and mirrors the change into every attached model. A change that
        leaves a correlated pair with a singular covariance raises MeasurementConfigurationError
        and keeps the previous record.

        in_service sets both halves; magnitude_in_service and angle_in_service switch the
        halves individually and take precedence.
        """
        self._check_index("pmu", index)
        for variance, what in ((variance_magnitude, "magnitude"), (variance_angle, "angle")):
            if variance is not None:
                _check_variance(variance, "PMU %s %s" % (what, index))

        changes = {}
        if magnitude is not None:
            changes["magnitude"] = float(magnitude)
        if angle is not None:
            changes["angle"] = float(angle)
        if variance_magnitude is not None:
            changes["variance_magnitude"] = float(variance_magnitude)
        if variance_angle is not None:
            changes["variance_angle"] = float(variance_angle)
        if in_service is not None:
            changes["magnitude_in_service"] = changes["angle_in_service"] = bool(in_service)
        if magnitude_in_service is not None:
            changes["magnitude_in_service"] = bool(magnitude_in_service)
        if angle_in_service is not None:
            changes["angle_in_service"] = bool(angle_in_service)
        if correlated is not None:
            changes["correlated"] = bool(correlated)

        status_changed = in_service is not None or magnitude_in_service is not None or \
            angle_in_service is not None
        self._apply("pmu", index, changes, value=magnitude is not None or angle is not None,
                    variance=variance_magnitude is not None or variance_angle is not None,
                    status=status_changed, correlation=correlated is not None)

    def disable(self, table, index, component=None):
        """
        Switches a record out of service, e.g. the measurement flagged by a residual test.

        For PMU records, component "magnitude" or "angle" disables one half of the pair, any
        other component disables the whole pair.
        """
        if table == "measurement":
            self.update_measurement(index, in_service=False)
        elif table == "pmu":
            if component == "magnitude":
                self.update_pmu(index, magnitude_in_service=False)
            elif component == "angle":
                self.update_pmu(index, angle_in_service=False)
            else:
                self.update_pmu(index, in_service=False)
        else:
            raise KeyError("Unknown measurement table %s" % table)
        logger.info("Disabled %s %s (%s)" % (table, index, self[table].at[index, "name"]))

    # --- queries used by the topological algorithms

    def in_service_measurements(self, meas_type=None, element_type=None):
        meas = self.measurement[self.measurement.in_service.values]
        if meas_type is not None:
            meas = meas[meas.measurement_type.values == meas_type]
        if element_type is not None:
            meas = meas[meas.element_type.values == element_type]
        return meas

    def in_service_pmus(self, element_type=None):
        pmu = self.pmu[self.pmu.magnitude_in_service.values & self.pmu.angle_in_service.values]
        if element_type is not None:
            pmu = pmu[pmu.element_type.values == element_type]
        return pmu
