# -*- coding: utf-8 -*-

# Copyright (c) 2016-2026 by University of Kassel and Fraunhofer Institute for Energy Economics
# and Energy System Technology (IEE), Kassel. All rights reserved.

import logging

from gridstate.auxiliary import AlgorithmUnknown, _init_runse_options
from gridstate.estimation.algorithm.base import WLSAlgorithm
from gridstate.estimation.algorithm.lav import LAVAlgorithm
from gridstate.estimation.bad_data import residual_test, chi2_test
from gridstate.estimation.model import EstimationModel
from gridstate.estimation.results import _write_results
from gridstate.pd2ppc import _pd2ppc

std_logger = logging.getLogger(__name__)

__all__ = ["StateEstimation", "estimate", "remove_bad_data", "chi2_analysis",
           "ALGORITHM_MAPPING"]

ALGORITHM_MAPPING = {'wls': WLSAlgorithm,
                     'lav': LAVAlgorithm}


def estimate(net, registry, kind="ac", algorithm="wls", init="flat", tolerance=1e-6,
             maximum_iterations=10, factorization="lu", solver="ortools"):
    """
    Wrapper function for state estimation.

    INPUT:
        **net** (gridstateNet) - network with a slack bus

        **registry** (MeasurementRegistry) - measurements of the network

    OPTIONAL:
        **kind** (str, "ac") - "ac" for the nonlinear model, "dc" for the linear active power
            model, "pmu" for the linear model of PMU measurements in rectangular coordinates

        **algorithm** (str, "wls") - "wls" or "lav"

        **init** (str, "flat") - initial voltage for the estimation. "flat" sets 1.0 p.u. / 0 rad
            for all buses (the slack keeps its angle), "network" uses vm_pu and va_rad of
            net.bus and "results" the values from res_bus_est if available

        **tolerance** (float, 1e-6) - When the maximum state change between iterations is less
            than tolerance, the process stops

        **maximum_iterations** (int, 10) - Maximum number of iterations

        **factorization** (str, "lu") - factorization of the WLS algorithm, "lu", "ldlt", "qr"
            or "orthogonal"

        **solver** (str, "ortools") - LP solver of the LAV algorithm, "ortools" or "scipy"

    OUTPUT:
        **successful** (boolean) - Was the state estimation successful?
    """
    se = StateEstimation(net, registry, kind=kind, algorithm=algorithm, tolerance=tolerance,
                         maximum_iterations=maximum_iterations, factorization=factorization,
                         solver=solver)
    try:
        return se.estimate(init=init)
    finally:
        se.close()


def remove_bad_data(net, registry, kind="ac", init="flat", tolerance=1e-6,
                    maximum_iterations=10, factorization="lu", rn_max_threshold=3.0,
                    maximum_removals=10):
    """
    Wrapper function for bad data removal with the largest normalized residual test.

    The measurement with the largest normalized residual is switched out of service in the
    registry as long as its normalized residual exceeds rn_max_threshold, at most
    maximum_removals times. Afterwards the network holds the estimate of the cleaned
    measurement set.

    INPUT:
        **net** (gridstateNet) - network with a slack bus

        **registry** (MeasurementRegistry) - measurements of the network

    OPTIONAL:
        **kind**, **init**, **tolerance**, **maximum_iterations**, **factorization** - as in
            estimate

        **rn_max_threshold** (float, 3.0) - Identification threshold to determine if the
            largest normalized residual reflects a bad measurement

        **maximum_removals** (int, 10) - upper bound of disabled measurements

    OUTPUT:
        **removed** (list) - BadData of every disabled measurement, in the order of removal
    """
    se = StateEstimation(net, registry, kind=kind, algorithm="wls", tolerance=tolerance,
                         maximum_iterations=maximum_iterations, factorization=factorization)
    try:
        return se.remove_bad_data(init=init, rn_max_threshold=rn_max_threshold,
                                  maximum_removals=maximum_removals)
    finally:
        se.close()


def chi2_analysis(net, registry, kind="ac", init="flat", tolerance=1e-6,
                  maximum_iterations=10, chi2_prob_false=0.05):
    """
    Wrapper function for the chi-squared test.

    INPUT:
        **net** (gridstateNet) - network with a slack bus

        **registry** (MeasurementRegistry) - measurements of the network

    OPTIONAL:
        **chi2_prob_false** (float, 0.05) - probability of error / false alarms

    OUTPUT:
        **bad_data_detected** (boolean) - Returns true if bad data has been detected
    """
    se = StateEstimation(net, registry, kind=kind, algorithm="wls", tolerance=tolerance,
                         maximum_iterations=maximum_iterations)
    try:
        se.estimate(init=init)
        return se.chi2_test(chi2_prob_false)
    finally:
        se.close()


class StateEstimation:
    """
    Any user of the estimation module only needs to use the class StateEstimation. It builds
    the estimation model of one kind from the registry, keeps it attached to the registry so
    that measurement updates reach it immediately, and runs the estimation and the bad data
    tests on it.

    Several instances may be built from the same registry (e.g. WLS and LAV side by side),
    each owns its model. New measurement records make the model outdated, it is rebuilt
    before the next estimation.

    INPUT:
        **net** (gridstateNet) - network with a slack bus

        **registry** (MeasurementRegistry) - measurements of the network

    OPTIONAL:
        **kind** (str, "ac") - "ac", "dc" or "pmu"

        **algorithm** (str, "wls") - "wls" or "lav"

        **tolerance** (float, 1e-6) - convergence tolerance of the state increment

        **maximum_iterations** (int, 10) - iteration limit of the AC estimation

        **factorization** (str, "lu") - factorization of the WLS algorithm

        **solver** (str, "ortools") - LP solver of the LAV algorithm

        **logger** (logging.Logger, None) - logger of the algorithm
    """

    def __init__(self, net, registry, kind="ac", algorithm="wls", tolerance=1e-6,
                 maximum_iterations=10, factorization="lu", solver="ortools", logger=None):
        self.logger = logger
        if self.logger is None:
            self.logger = std_logger
        if algorithm not in ALGORITHM_MAPPING:
            raise AlgorithmUnknown("Algorithm %s is not supported, use one of %s"
                                   % (algorithm, list(ALGORITHM_MAPPING.keys())))
        if registry.net is not net:
            raise UserWarning("The measurement registry belongs to a different network")
        self.net = net
        self.registry = registry
        self.kind = kind
        self.algorithm_name = algorithm
        if algorithm == "wls":
            self.algorithm = WLSAlgorithm(tolerance, maximum_iterations,
                                          factorization=factorization, logger=self.logger)
        else:
            self.algorithm = LAVAlgorithm(tolerance, maximum_iterations, solver=solver,
                                          logger=self.logger)
        _init_runse_options(net, kind, algorithm, tolerance, maximum_iterations,
                            factorization=factorization, solver=solver)
        self.model = None
        self.rebuild()

    @property
    def successful(self):
        return self.algorithm.successful

    def rebuild(self):
        """
        Builds the estimation model from the current network and registry, e.g. after the
        topology of the network changed.
        """
        if self.model is not None:
            self.registry.detach(self.model)
        ppci = _pd2ppc(self.net)
        self.model = EstimationModel(ppci, self.registry, kind=self.kind)
        self.registry.attach(self.model)
        return self.model

    def close(self):
        """Detaches the model from the registry, later updates are not mirrored anymore."""
        if self.model is not None:
            self.registry.detach(self.model)

    def estimate(self, init="flat"):
        """
        Estimates the state of the network. The result is written into net.res_bus_est,
        registry.res_measurement and registry.res_pmu if the estimation was successful.

        OPTIONAL:
            **init** (str, "flat") - "flat", "network" or "results"

        OUTPUT:
            **successful** (boolean) - True if the estimation converged
        """
        if self.model.version != self.registry.structure_version:
            self.logger.debug("Measurement records were added, rebuilding the %s model"
                              % self.kind)
            self.rebuild()
        self.net._options["init"] = init
        x0 = self.model.initial_state(self.net, init)
        self.algorithm.estimate(self.model, x0)

        if self.algorithm.successful:
            _write_results(self.net, self.registry, self.model, self.algorithm.x)
        else:
            self.logger.warning("Estimation failed! Result tables were not updated!")
        return self.algorithm.successful

    def residual_test(self, threshold=3.0):
        """
        Largest normalized residual test on the last estimate, see bad_data.residual_test.
        Nothing is disabled.
        """
        return residual_test(self.algorithm, threshold=threshold)

    def chi2_test(self, probability=0.05):
        """
        Chi-squared test on the last estimate. Returns True if bad data has been detected.
        """
        bad_data_present = chi2_test(self.algorithm, probability=probability)[0]
        return bad_data_present

    def remove_bad_data(self, init="flat", rn_max_threshold=3.0, maximum_removals=10):
        """
        Repeats estimate, largest normalized residual test and disabling of the flagged
        measurement until no normalized residual exceeds rn_max_threshold.

        OUTPUT:
            **removed** (list) - BadData of every disabled measurement
        """
        removed = []
        num_iterations = 0
        while num_iterations <= maximum_removals:
            if not self.estimate(init=init):
                self.logger.error("State estimation failed during bad data removal")
                break
            bad_data = self.residual_test(rn_max_threshold)
            if not bad_data.detect:
                self.logger.debug("Largest normalized residual test passed. "
                                  "No bad data detected.")
                break
            if num_iterations == maximum_removals:
                self.logger.warning("Bad data remains after %d removals" % maximum_removals)
                break
            self.logger.debug("Largest normalized residual test failed (%.2f > %.2f). "
                              "Bad data identified in measurement %s."
                              % (bad_data.max_normalized_residual, rn_max_threshold,
                                 bad_data.label))
            self.registry.disable(bad_data.table, bad_data.index, bad_data.component)
            removed.append(bad_data)
            num_iterations += 1
        return removed
