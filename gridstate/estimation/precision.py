# -*- coding: utf-8 -*-

# Copyright (c) 2016-2026 by University of Kassel and Fraunhofer Institute for Energy Economics
# and Energy System Technology (IEE), Kassel. All rights reserved.

import numpy as np
from scipy.sparse import csr_matrix

from gridstate.auxiliary import MeasurementConfigurationError

__all__ = ["PrecisionCache", "pmu_rectangular_covariance"]


# pairs with det(Cov) below this share of cov_00 * cov_11 count as singular
SINGULAR_TOLERANCE = 1e3 * np.finfo(np.float64).eps


def pmu_rectangular_covariance(magnitude, angle, variance_magnitude, variance_angle):
    """
    Propagates the variances of a polar phasor measurement to the covariance matrix of its
    real and imaginary part: Cov = J diag(var_m, var_a) J^T with J the Jacobian of
    (m cos a, m sin a) with respect to (m, a).
    """
    cos_a, sin_a = np.cos(angle), np.sin(angle)
    J = np.array([[cos_a, -magnitude * sin_a],
                  [sin_a, magnitude * cos_a]])
    return J @ np.diag([variance_magnitude, variance_angle]) @ J.T


class PrecisionCache:
    """
    Precision (weighting) matrix of one estimation model.

    Rows are measurement components. Scalar rows hold 1 / variance on the diagonal. A PMU pair
    in rectangular form occupies two consecutive rows whose 2x2 block is rebuilt as a whole
    from the stored covariance whenever a value or variance of the pair changes: the inverse of
    the covariance if the pair is correlated, the reciprocal of its diagonal otherwise.
    Switching the correlation off later only zeroes the off-diagonal pair. In service flags
    are not handled here, the caller passes the rows to include.
    """

    def __init__(self, n):
        self.n = n
        self.diagonal = np.zeros(n)
        self.off_diagonal = np.zeros(n)
        self.partner = -np.ones(n, dtype=np.int64)
        self.correlated = np.zeros(n, dtype=bool)
        self.covariance = np.zeros((n, 2, 2))

    def set_variance(self, row, variance):
        if not np.isfinite(variance) or variance <= 0:
            raise MeasurementConfigurationError("Variance of row %d must be positive, got %s"
                                                % (row, variance))
        if self.partner[row] >= 0:
            raise ValueError("Row %d belongs to a pair, use set_pair" % row)
        self.diagonal[row] = 1. / variance

    def set_pair(self, row, covariance, correlated):
        """
        Stores the covariance of the pair occupying rows row and row + 1 and rewrites its block.
        Nothing is stored if the covariance is rejected.
        """
        covariance = np.asarray(covariance, dtype=np.float64)
        if covariance[0, 0] <= 0 or covariance[1, 1] <= 0:
            raise MeasurementConfigurationError("Covariance of the pair at row %d has a "
                                                "non-positive variance" % row)
        if correlated:
            block = self._inverse(row, covariance)
        else:
            block = np.diag(1. / np.diag(covariance))
        self.partner[row], self.partner[row + 1] = row + 1, row
        self.covariance[row] = covariance
        self.correlated[row] = self.correlated[row + 1] = bool(correlated)
        self._write_block(row, block)

    def toggle_correlation(self, row, correlated):
        """
        Switching the correlation on writes the inverse of the stored covariance, switching it
        off zeroes the off-diagonal pair and keeps both diagonal entries.
        """
        if self.partner[row] < 0:
            raise ValueError("Row %d is not part of a pair" % row)
        first = min(row, self.partner[row])
        if correlated:
            self._write_block(first, self._inverse(first, self.covariance[first]))
        else:
            self.off_diagonal[first] = self.off_diagonal[first + 1] = 0.
        self.correlated[first] = self.correlated[first + 1] = bool(correlated)

    @staticmethod
    def _inverse(row, covariance):
        # rounding leaves a tiny determinant of either sign on singular covariances
        if np.linalg.det(covariance) <= SINGULAR_TOLERANCE * covariance[0, 0] * covariance[1, 1]:
            raise MeasurementConfigurationError("Covariance of the correlated pair at row %d "
                                                "is singular" % row)
        return np.linalg.inv(covariance)

    def _write_block(self, row, block):
        self.diagonal[row], self.diagonal[row + 1] = block[0, 0], block[1, 1]
        self.off_diagonal[row] = self.off_diagonal[row + 1] = 0.5 * (block[0, 1] + block[1, 0])

    def _pairs(self, rows):
        # first rows of pairs with both rows selected
        selected = np.zeros(self.n, dtype=bool)
        selected[rows] = True
        first = rows[(self.partner[rows] > rows) & selected[np.maximum(self.partner[rows], 0)]]
        return first

    def _positions(self, rows):
        position = -np.ones(self.n, dtype=np.int64)
        position[rows] = np.arange(len(rows))
        return position

    def matrix(self, rows=None):
        """
        Returns the precision matrix restricted to rows (all rows if None) as csr_matrix.
        """
        rows = np.arange(self.n) if rows is None else np.asarray(rows, dtype=np.int64)
        m = len(rows)
        position = self._positions(rows)
        first = self._pairs(rows)
        i = np.r_[np.arange(m), position[first], position[first + 1]]
        j = np.r_[np.arange(m), position[first + 1], position[first]]
        data = np.r_[self.diagonal[rows], self.off_diagonal[first], self.off_diagonal[first]]
        W = csr_matrix((data, (i, j)), shape=(m, m))
        W.eliminate_zeros()
        return W

    def square_root(self, rows=None):
        """
        Returns the upper triangular factor S with S^T S = W, computed block by block.
        """
        rows = np.arange(self.n) if rows is None else np.asarray(rows, dtype=np.int64)
        m = len(rows)
        position = self._positions(rows)
        first = self._pairs(rows)
        s = np.sqrt(self.diagonal[rows])

        s11 = np.sqrt(self.diagonal[first])
        s12 = self.off_diagonal[first] / s11
        s22 = np.sqrt(self.diagonal[first + 1] - s12 ** 2)
        s[position[first]] = s11
        s[position[first + 1]] = s22

        i = np.r_[np.arange(m), position[first]]
        j = np.r_[np.arange(m), position[first + 1]]
        data = np.r_[s, s12]
        S = csr_matrix((data, (i, j)), shape=(m, m))
        S.eliminate_zeros()
        return S

    def covariance_diagonal(self, rows=None):
        """
        Returns the diagonal of W^-1 restricted to rows, inverting 2x2 blocks where present.
        """
        rows = np.arange(self.n) if rows is None else np.asarray(rows, dtype=np.int64)
        position = self._positions(rows)
        first = self._pairs(rows)
        cov = 1. / self.diagonal[rows]

        a, c = self.diagonal[first], self.diagonal[first + 1]
        b = self.off_diagonal[first]
        det = a * c - b ** 2
        cov[position[first]] = c / det
        cov[position[first + 1]] = a / det
        return cov
