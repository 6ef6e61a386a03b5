# -*- coding: utf-8 -*-

# Copyright (c) 2016-2026 by University of Kassel and Fraunhofer Institute for Energy Economics
# and Energy System Technology (IEE), Kassel. All rights reserved.

import numpy as np
from scipy.linalg import ldl, qr, solve_triangular
from scipy.sparse import csc_matrix, issparse
from scipy.sparse.linalg import splu

from gridstate.auxiliary import FactorizationError, AlgorithmUnknown

__all__ = ["LUFactorization", "LDLtFactorization", "QRFactorization",
           "OrthogonalFactorization", "FACTORIZATION_MAPPING", "get_factorization"]


def _dense(matrix):
    # scipy has no sparse LDL^T or QR, these factorizations work on dense copies
    return matrix.toarray() if issparse(matrix) else np.asarray(matrix)


def _check_pivots(pivots, what):
    pivots = np.abs(pivots)
    if len(pivots) == 0:
        return
    limit = np.finfo(np.float64).eps * len(pivots) * pivots.max()
    if not np.all(np.isfinite(pivots)) or pivots.min() <= limit:
        raise FactorizationError("The %s is singular, the system is not observable with the "
                                 "measurements in service" % what)


class BaseFactorization:
    """
    Linear solve interface used by the WLS estimator: factorize(matrix) keeps the factors,
    solve(rhs) returns the solution for a right hand side.

    Factorizations with normal_equation = True expect the gain matrix G = H^T W H and the
    right hand side H^T W r. The others expect the weighted Jacobian S H and the weighted
    residual S r with S^T S = W, and return the least squares solution.
    """
    normal_equation = True

    def factorize(self, matrix):
        raise NotImplementedError

    def solve(self, rhs):
        raise NotImplementedError


class LUFactorization(BaseFactorization):
    """Sparse LU factorization (SuperLU) of the gain matrix."""

    def __init__(self):
        self.lu = None

    def factorize(self, matrix):
        try:
            self.lu = splu(csc_matrix(matrix))
        except RuntimeError as e:
            raise FactorizationError("LU factorization of the gain matrix failed: %s" % e) from e
        _check_pivots(self.lu.U.diagonal(), "gain matrix")

    def solve(self, rhs):
        return self.lu.solve(np.asarray(rhs, dtype=np.float64))


class LDLtFactorization(BaseFactorization):
    """Symmetric indefinite LDL^T factorization of a dense copy of the gain matrix."""

    def __init__(self):
        self.lu = None
        self.d = None
        self.perm = None

    def factorize(self, matrix):
        self.lu, self.d, self.perm = ldl(_dense(matrix), lower=True)
        # D is block diagonal with 1x1 and 2x2 blocks
        _check_pivots(np.linalg.eigvalsh(self.d), "gain matrix")

    def solve(self, rhs):
        rhs = np.asarray(rhs, dtype=np.float64)
        L = self.lu[self.perm]
        w = solve_triangular(L, rhs[self.perm], lower=True, unit_diagonal=True)
        v = np.linalg.solve(self.d, w)
        y = solve_triangular(L.T, v, lower=False, unit_diagonal=True)
        x = np.empty_like(y)
        x[self.perm] = y
        return x


class QRFactorization(BaseFactorization):
    """
    QR factorization of a dense copy of the weighted Jacobian, the gain matrix is never
    formed.
    """
    normal_equation = False

    def __init__(self):
        self.Q = None
        self.R = None

    def factorize(self, matrix):
        A = _dense(matrix)
        if A.shape[0] < A.shape[1]:
            raise FactorizationError("The weighted Jacobian has fewer rows than columns")
        self.Q, self.R = qr(A, mode="economic")
        _check_pivots(np.diag(self.R), "weighted Jacobian")

    def solve(self, rhs):
        return solve_triangular(self.R, self.Q.T @ np.asarray(rhs, dtype=np.float64))


class OrthogonalFactorization(QRFactorization):
    """
    QR factorization with column pivoting of the weighted Jacobian after equilibration of
    its columns and sorting of its rows by decreasing norm. Keeps the solution accurate if
    the weights span many orders of magnitude (e.g. near exact pseudo measurements).
    """

    def __init__(self):
        super().__init__()
        self.column_scale = None
        self.row_order = None
        self.pivot = None

    def factorize(self, matrix):
        A = _dense(matrix)
        if A.shape[0] < A.shape[1]:
            raise FactorizationError("The weighted Jacobian has fewer rows than columns")
        column_norm = np.linalg.norm(A, axis=0)
        if np.any(column_norm == 0):
            raise FactorizationError("The weighted Jacobian has zero columns, the states %s are "
                                     "not measured" % np.flatnonzero(column_norm == 0).tolist())
        self.column_scale = 1. / column_norm
        A = A * self.column_scale
        self.row_order = np.argsort(-np.linalg.norm(A, axis=1), kind="stable")
        self.Q, self.R, self.pivot = qr(A[self.row_order], mode="economic", pivoting=True)
        _check_pivots(np.diag(self.R), "weighted Jacobian")

    def solve(self, rhs):
        rhs = np.asarray(rhs, dtype=np.float64)[self.row_order]
        y = solve_triangular(self.R, self.Q.T @ rhs)
        x = np.empty_like(y)
        x[self.pivot] = y
        return x * self.column_scale


FACTORIZATION_MAPPING = {"lu": LUFactorization,
                         "ldlt": LDLtFactorization,
                         "qr": QRFactorization,
                         "orthogonal": OrthogonalFactorization}


def get_factorization(name):
    if name not in FACTORIZATION_MAPPING:
        raise AlgorithmUnknown("Factorization %s is not supported, use one of %s"
                               % (name, list(FACTORIZATION_MAPPING.keys())))
    return FACTORIZATION_MAPPING[name]()
