# -*- coding: utf-8 -*-

# Copyright (c) 2016-2026 by University of Kassel and Fraunhofer Institute for Energy Economics
# and Energy System Technology (IEE), Kassel. All rights reserved.

import logging

import numpy as np

from gridstate.estimation.algebra import CURRENT_FUNCTIONS
from gridstate.estimation.algorithm.factorization import get_factorization

std_logger = logging.getLogger(__name__)

__all__ = ["BaseAlgorithm", "WLSAlgorithm"]

# state increments above this value (rad, p.u.) are treated as divergence
DIVERGENCE_LIMIT = 1e6


class BaseAlgorithm:
    def __init__(self, tolerance, maximum_iterations, logger=std_logger):
        self.tolerance = tolerance
        self.max_iterations = maximum_iterations
        self.logger = logger
        self.successful = False
        self.iterations = None
        self.increment = None
        self.status = None
        self.objective = None

        # Parameters for estimate
        self.model = None
        self.x = None

    def initialize(self, model, x0):
        model.check()
        self.model = model
        self.x = np.array(x0, dtype=np.float64)
        self.successful = False
        self.iterations = 0
        self.increment = np.inf
        self.status = None
        self.objective = None

    def check_result(self):
        # print output for results
        if self.status == "diverged":
            self.successful = False
            self.logger.warning("State Estimation diverged after {:d} iterations "
                                "(increment {:.3e})".format(self.iterations, self.increment))
        elif self.increment <= self.tolerance or self.model.algebra.linear:
            self.successful = True
            self.status = "converged"
            self.logger.debug("State Estimation successful ({:d} iterations)".format(
                self.iterations))
        else:
            self.successful = False
            self.status = "max_iterations"
            self.logger.warning("State Estimation not successful ({:d}/{:d} iterations)".format(
                self.iterations, self.max_iterations))

    def _iteration_rows(self):
        """
        Rows used in the current iteration. Current magnitude and angle rows without
        derivative (flat start without charging) are left out of the first AC iteration.
        """
        rows = self.model.active_rows
        if self.iterations > 0 or self.model.algebra.linear:
            return rows
        current = np.isin(self.model.function[rows], CURRENT_FUNCTIONS)
        if not np.any(current):
            return rows
        algebra = self.model.algebra
        H = algebra.create_hx_jacobian(self.x, self.model.function[rows],
                                       self.model.position[rows])
        zero = np.asarray(abs(H).sum(axis=1)).ravel() == 0
        skipped = current & zero
        if np.any(skipped):
            self.logger.debug("Skipping %d current measurements in the first iteration"
                              % skipped.sum())
        return rows[~skipped]

    def estimate(self, model, x0, **kwargs):
        # Must be implemented individually!!
        pass


class WLSAlgorithm(BaseAlgorithm):
    """
    Weighted least squares estimation: Gauss-Newton iterations for AC, one solve for the
    linear DC and PMU models.

    The estimation can be run as a whole with estimate() or step by step: initialize() and
    repeated calls of step(), each returning the largest absolute state increment.
    """

    def __init__(self, tolerance, maximum_iterations, factorization="lu", logger=std_logger):
        super(WLSAlgorithm, self).__init__(tolerance, maximum_iterations, logger)
        self.factorization_name = factorization
        self.factorization = get_factorization(factorization)

        # Parameters for Bad data detection
        self.rows = None
        self.H = None
        self.r = None
        self.hx = None
        self.gain = None

    def step(self):
        model, algebra = self.model, self.model.algebra
        rows = self._iteration_rows()
        function, position = model.function[rows], model.position[rows]

        # residual r and jacobian matrix H
        hx = algebra.create_hx(self.x, function, position)
        r = model.z[rows] - hx
        H = algebra.create_hx_jacobian(self.x, function, position)

        # state vector difference d_x
        if self.factorization.normal_equation:
            W = model.precision.matrix(rows)
            self.factorization.factorize(H.T @ W @ H)
            d_x = self.factorization.solve(H.T @ (W @ r))
        else:
            S = model.precision.square_root(rows)
            self.factorization.factorize(S @ H)
            d_x = self.factorization.solve(S @ r)

        self.iterations += 1
        self.increment = float(np.max(np.abs(d_x))) if len(d_x) else 0.
        if not np.isfinite(self.increment) or self.increment > DIVERGENCE_LIMIT:
            self.status = "diverged"
            return self.increment

        self.x += d_x
        self.logger.debug("Iteration {:d}, current error: {:.7f}".format(self.iterations,
                                                                        self.increment))
        return self.increment

    def estimate(self, model, x0, **kwargs):
        self.initialize(model, x0)
        while self.iterations < self.max_iterations:
            self.step()
            if self.status == "diverged" or self.increment <= self.tolerance or \
                    model.algebra.linear:
                break

        # check if the estimation is successfull
        self.check_result()
        self.finalize()
        return self.successful

    def finalize(self):
        """
        Stores residuals, Jacobian and gain matrix of the final state for bad data analysis.
        """
        model, algebra = self.model, self.model.algebra
        rows = model.active_rows
        function, position = model.function[rows], model.position[rows]
        self.rows = rows
        self.hx = algebra.create_hx(self.x, function, position)
        self.r = model.z[rows] - self.hx
        self.H = algebra.create_hx_jacobian(self.x, function, position)
        W = model.precision.matrix(rows)
        self.gain = (self.H.T @ W @ self.H).tocsc()
        self.objective = float(self.r @ (W @ self.r))
