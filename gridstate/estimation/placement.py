# -*- coding: utf-8 -*-

# Copyright (c) 2016-2026 by University of Kassel and Fraunhofer Institute for Energy Economics
# and Energy System Technology (IEE), Kassel. All rights reserved.

import logging

import numpy as np
from ortools.linear_solver import pywraplp
from scipy.optimize import milp, LinearConstraint, Bounds
from scipy.sparse import csr_matrix

from gridstate.auxiliary import SolverError, AlgorithmUnknown
from gridstate.estimation.util import add_virtual_pmu_meas_from_state
from gridstate.pd2ppc import _pd2ppc
from gridstate.pypower.idx_brch import F_BUS, T_BUS, BR_STATUS

logger = logging.getLogger(__name__)

__all__ = ["PlacementResult", "pmu_placement", "pmu_placement_measurements", "MILP_SOLVERS"]

MILP_SOLVERS = ("ortools", "scipy")


class PlacementResult:
    """
    Selected PMU locations. bus maps the net.bus index of every placed PMU to its bus position,
    from_ and to map the net.branch index of every branch end that starts at a placed PMU to
    its branch position. The length is the number of placed PMUs.
    """

    def __init__(self, bus, from_, to):
        self.bus = bus
        self.from_ = from_
        self.to = to

    def __len__(self):
        return len(self.bus)

    def __repr__(self):  # pragma: no cover
        return "PlacementResult(bus=%s, from=%s, to=%s)" % (list(self.bus), list(self.from_),
                                                            list(self.to))


def _coverage_matrix(ppci):
    """
    Square bus by bus matrix with ones on the diagonal and at the terminals of in service
    branches: a PMU at a bus covers the bus and all its neighbours.
    """
    n_bus = ppci["bus"].shape[0]
    branch = ppci["branch"]
    in_service = np.flatnonzero(branch[:, BR_STATUS] > 0)
    fb = branch[in_service, F_BUS].real.astype(np.int64)
    tb = branch[in_service, T_BUS].real.astype(np.int64)

    row = np.r_[np.arange(n_bus), fb, tb]
    col = np.r_[np.arange(n_bus), tb, fb]
    A = csr_matrix((np.ones(len(row)), (row, col)), shape=(n_bus, n_bus))
    # parallel branches
    A.data[:] = 1.
    return A, in_service, fb, tb


def _solve_or_tools(A):
    solver = pywraplp.Solver.CreateSolver('SCIP')
    if solver is None:
        raise SolverError("OR-Tools was built without the SCIP solver")
    n_bus, n_var = A.shape
    x = [solver.BoolVar('x_%d' % j) for j in range(n_var)]
    for i in range(n_bus):
        constraint = solver.Constraint(1, solver.infinity(), 'bus_%d' % i)
        for k in range(A.indptr[i], A.indptr[i + 1]):
            constraint.SetCoefficient(x[A.indices[k]], 1)
    objective = solver.Objective()
    for var in x:
        objective.SetCoefficient(var, 1)
    objective.SetMinimization()

    status = solver.Solve()
    if status != pywraplp.Solver.OPTIMAL:
        raise SolverError("The PMU placement problem could not be solved (status %d)" % status)
    return np.array([var.solution_value() for var in x]) > 0.5


def _solve_scipy(A):
    n_var = A.shape[1]
    res = milp(c=np.ones(n_var), constraints=LinearConstraint(A, lb=1, ub=np.inf),
               integrality=np.ones(n_var), bounds=Bounds(0, 1))
    if not res.success:
        raise SolverError("The PMU placement problem could not be solved: %s" % res.message)
    return res.x > 0.5


def pmu_placement(net, solver="ortools"):
    """
    Minimal PMU placement for full observability as a set covering integer program.

    There is one binary variable per bus. A PMU placed at a bus measures the bus voltage and
    the currents of all in service branches at that bus and thereby observes the bus and all
    its neighbours. Every bus must be observed at least once, the number of PMUs is minimised.
    The result depends on the topology only.

    INPUT:
        **net** (gridstateNet) - network

    OPTIONAL:
        **solver** (str, "ortools") - "ortools" (SCIP) or "scipy" (HiGHS)

    OUTPUT:
        **placement** (PlacementResult) - placed PMUs and the branch ends they measure
    """
    if solver not in MILP_SOLVERS:
        raise AlgorithmUnknown("MILP solver %s is not supported, use one of %s"
                               % (solver, MILP_SOLVERS))
    ppci = _pd2ppc(net, calculate_admittance=False)
    A, in_service, fb, tb = _coverage_matrix(ppci)
    selected = _solve_or_tools(A) if solver == "ortools" else _solve_scipy(A)

    bus_index = ppci["internal"]["bus_index"]
    branch_index = ppci["internal"]["branch_index"]
    bus = {bus_index[i]: int(i) for i in np.flatnonzero(selected)}
    from_ = {branch_index[k]: int(k) for k in in_service[selected[fb]]}
    to = {branch_index[k]: int(k) for k in in_service[selected[tb]]}
    logger.info("PMU placement: %d PMUs measuring %d from end and %d to end currents"
                % (len(bus), len(from_), len(to)))
    return PlacementResult(bus, from_, to)


def pmu_placement_measurements(net, registry, placement, vm, va, variance_magnitude=None,
                               variance_angle=None, polar=None, correlated=None, noise=False,
                               seed=None):
    """
    Creates the PMU records of a placement from a known voltage state: one bus PMU of the
    voltage per placed PMU and one branch PMU of the current per measured branch end.

    INPUT:
        **net** (gridstateNet) - network

        **registry** (MeasurementRegistry) - receives the PMU records

        **placement** (PlacementResult) - result of pmu_placement

        **vm**, **va** (array) - voltage magnitudes (p.u.) and angles (rad) in the order of
            net.bus

    OPTIONAL:
        **noise** (bool, False) - add normally distributed errors with the given variances

        **seed** (int, None) - seed of the random generator used for the errors

    OUTPUT:
        **created** (list) - indices of the created records in registry.pmu
    """
    branch_ends = [(element, "from") for element in placement.from_] + \
        [(element, "to") for element in placement.to]
    return add_virtual_pmu_meas_from_state(net, registry, vm, va, buses=list(placement.bus),
                                           branch_ends=branch_ends,
                                           variance_magnitude=variance_magnitude,
                                           variance_angle=variance_angle, polar=polar,
                                           correlated=correlated, noise=noise, seed=seed)
