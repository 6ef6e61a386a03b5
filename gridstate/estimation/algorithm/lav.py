# -*- coding: utf-8 -*-

# Copyright (c) 2016-2026 by University of Kassel and Fraunhofer Institute for Energy Economics
# and Energy System Technology (IEE), Kassel. All rights reserved.

import warnings

import numpy as np
from ortools.linear_solver import pywraplp
from scipy.optimize import linprog
from scipy.sparse import csr_matrix, eye, hstack

from gridstate.auxiliary import SolverError, AlgorithmUnknown
from gridstate.estimation.algorithm.base import BaseAlgorithm, std_logger

__all__ = ["LAVAlgorithm", "LP_SOLVERS"]

LP_SOLVERS = ("ortools", "scipy")


class _PersistentLP:
    """
    OR-Tools model of a linear LAV estimation, built once for all rows of the model:

        min sum(p + n)   s.t.   H (x+ - x-) + p - n = z - c,   x+, x-, p, n >= 0

    Rows out of service keep their constraint with free bounds. Changed means and statuses
    only rewrite the bounds of the affected constraints, the variables and their bounds are
    never touched again.
    """

    def __init__(self, model, H, offset):
        self.model = model
        self.offset = offset
        #'GLOP' fails with ortools version > 9.4.1874
        self.solver = pywraplp.Solver.CreateSolver('SCIP')
        if self.solver is None:
            raise SolverError("OR-Tools was built without the SCIP solver")
        infinity = self.solver.infinity()
        n_state, n_rows = H.shape[1], H.shape[0]

        self.x_pos = [self.solver.NumVar(0, infinity, 'xp_%d' % j) for j in range(n_state)]
        self.x_neg = [self.solver.NumVar(0, infinity, 'xn_%d' % j) for j in range(n_state)]
        self.p = [self.solver.NumVar(0, infinity, 'p_%d' % i) for i in range(n_rows)]
        self.n = [self.solver.NumVar(0, infinity, 'n_%d' % i) for i in range(n_rows)]

        H = csr_matrix(H)
        self.constraints = []
        for i in range(n_rows):
            constraint = self.solver.Constraint(-infinity, infinity, 'row_%d' % i)
            for k in range(H.indptr[i], H.indptr[i + 1]):
                j, coef = H.indices[k], H.data[k]
                constraint.SetCoefficient(self.x_pos[j], coef)
                constraint.SetCoefficient(self.x_neg[j], -coef)
            constraint.SetCoefficient(self.p[i], 1)
            constraint.SetCoefficient(self.n[i], -1)
            self.constraints.append(constraint)

        objective = self.solver.Objective()
        for i in range(n_rows):
            objective.SetCoefficient(self.p[i], 1)
            objective.SetCoefficient(self.n[i], 1)
        objective.SetMinimization()

        self.status_changed(range(n_rows))

    def value_changed(self, rows):
        for row in rows:
            if self.model.active[row]:
                rhs = self.model.z[row] - self.offset[row]
                self.constraints[row].SetBounds(rhs, rhs)

    def status_changed(self, rows):
        infinity = self.solver.infinity()
        for row in rows:
            if self.model.active[row]:
                rhs = self.model.z[row] - self.offset[row]
                self.constraints[row].SetBounds(rhs, rhs)
            else:
                self.constraints[row].SetBounds(-infinity, infinity)

    def solve(self):
        status = self.solver.Solve()
        if status not in (pywraplp.Solver.OPTIMAL, pywraplp.Solver.FEASIBLE):
            raise SolverError("The LAV linear program could not be solved (status %d)" % status)
        x_pos = np.array([v.solution_value() for v in self.x_pos])
        x_neg = np.array([v.solution_value() for v in self.x_neg])
        return x_pos - x_neg


class LAVAlgorithm(BaseAlgorithm):
    """
    Least absolute value estimation as a linear program.

    The linear DC and PMU models are solved with one LP. With solver="ortools" the LP is kept
    between calls and updated in place when measurements change. The AC model is solved by
    successive linear programming on the linearized residual equations.
    """

    def __init__(self, tolerance, maximum_iterations, solver="ortools", logger=std_logger):
        super(LAVAlgorithm, self).__init__(tolerance, maximum_iterations, logger)
        if solver not in LP_SOLVERS:
            raise AlgorithmUnknown("LP solver %s is not supported, use one of %s"
                                   % (solver, LP_SOLVERS))
        self.solver = solver
        self.lp = None
        self.rows = None
        self.r = None
        self.hx = None

    def estimate(self, model, x0, **kwargs):
        self.initialize(model, x0)
        algebra = model.algebra
        if algebra.linear:
            self.x = self._solve_linear(model)
            self.iterations = 1
            self.increment = 0.
        else:
            while self.iterations < self.max_iterations:
                rows = self._iteration_rows()
                function, position = model.function[rows], model.position[rows]
                r = model.z[rows] - algebra.create_hx(self.x, function, position)
                H = algebra.create_hx_jacobian(self.x, function, position)
                d_x = self._solve_lp(H, r)

                self.x += d_x
                self.iterations += 1
                self.increment = float(np.max(np.abs(d_x))) if len(d_x) else 0.
                self.logger.debug("Iteration {:d}, current error: {:.7f}".format(
                    self.iterations, self.increment))
                if self.increment <= self.tolerance:
                    break

        # check if the estimation is successfull
        self.check_result()
        self.finalize()
        return self.successful

    def finalize(self):
        model, algebra = self.model, self.model.algebra
        self.rows = model.active_rows
        function, position = model.function[self.rows], model.position[self.rows]
        self.hx = algebra.create_hx(self.x, function, position)
        self.r = model.z[self.rows] - self.hx
        self.objective = float(np.sum(np.abs(self.r)))

    def _solve_linear(self, model):
        algebra = model.algebra
        if self.solver == "ortools":
            if self.lp is None or self.lp.model is not model:
                self._build_persistent(model)
            return self.lp.solve()
        rows = model.active_rows
        function, position = model.function[rows], model.position[rows]
        zero = np.zeros(algebra.n_state)
        H = algebra.create_hx_jacobian(zero, function, position)
        offset = algebra.create_hx(zero, function, position)
        return self._solve_scipy(H, model.z[rows] - offset)

    def _build_persistent(self, model):
        if self.lp is not None:
            self.lp.model.remove_listener(self.lp)
        algebra = model.algebra
        zero = np.zeros(algebra.n_state)
        H = algebra.create_hx_jacobian(zero, model.function, model.position)
        offset = algebra.create_hx(zero, model.function, model.position)
        self.lp = _PersistentLP(model, H, offset)
        model.add_listener(self.lp)
        self.logger.debug("Built LAV linear program with %d rows" % model.n)

    def _solve_lp(self, H, r):
        if self.solver == "ortools":
            return self._solve_or_tools(H, r)
        return self._solve_scipy(H, r)

    @staticmethod
    def _solve_scipy(H, r):

        """The use of linprog function from the scipy library."""

        m, n = H.shape
        c = np.r_[np.zeros(2 * n), np.ones(2 * m)]
        A = hstack((H, -H, eye(m), -eye(m)), format="csr")
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            res = linprog(c, A_eq=A, b_eq=r, bounds=(0, None), method="highs")
        if res.success:
            return np.array(res.x[:n]).ravel() - np.array(res.x[n:2 * n]).ravel()
        raise SolverError("The LAV linear program could not be solved: %s" % res.message)

    @staticmethod
    def _solve_or_tools(H, r):
        #'GLOP' fails with ortools version > 9.4.1874
        solver = pywraplp.Solver.CreateSolver('SCIP')
        if solver is None:
            raise SolverError("OR-Tools was built without the SCIP solver")
        infinity = solver.infinity()
        m, n = H.shape
        H = csr_matrix(H)

        # Create the states...
        x_pos = [solver.NumVar(0, infinity, 'xp_%d' % j) for j in range(n)]
        x_neg = [solver.NumVar(0, infinity, 'xn_%d' % j) for j in range(n)]
        p = [solver.NumVar(0, infinity, 'p_%d' % i) for i in range(m)]
        q = [solver.NumVar(0, infinity, 'n_%d' % i) for i in range(m)]

        # Give the equality constraints...
        for i in range(m):
            constraint = solver.Constraint(r[i], r[i])
            for k in range(H.indptr[i], H.indptr[i + 1]):
                constraint.SetCoefficient(x_pos[H.indices[k]], H.data[k])
                constraint.SetCoefficient(x_neg[H.indices[k]], -H.data[k])
            constraint.SetCoefficient(p[i], 1)
            constraint.SetCoefficient(q[i], -1)

        # What to optimize?
        objective = solver.Objective()
        for i in range(m):
            objective.SetCoefficient(p[i], 1)
            objective.SetCoefficient(q[i], 1)
        objective.SetMinimization()

        # Solve the optimization problem
        status = solver.Solve()
        if status not in (pywraplp.Solver.OPTIMAL, pywraplp.Solver.FEASIBLE):
            # No solution found...
            raise SolverError("The LAV linear program could not be solved (status %d)" % status)
        return np.array([v.solution_value() for v in x_pos]) - \
            np.array([v.solution_value() for v in x_neg])
