# -*- coding: utf-8 -*-

# Copyright (c) 2016-2026 by University of Kassel and Fraunhofer Institute for Energy Economics
# and Energy System Technology (IEE), Kassel. All rights reserved.

import logging

import numpy as np
from scipy.sparse import csc_matrix
from scipy.sparse.linalg import splu
from scipy.stats import chi2

from gridstate.auxiliary import AlgorithmUnknown
from gridstate.estimation.algorithm.base import WLSAlgorithm

logger = logging.getLogger(__name__)

__all__ = ["BadData", "residual_test", "chi2_test"]


class BadData:
    """
    Outcome of one largest normalized residual test.

    detect is True if the largest normalized residual exceeds the threshold. table, index and
    component identify the measurement record with the largest normalized residual (also if
    it is below the threshold), row is its row in the estimation model. normalized_residual
    holds the value per row in service, rows without redundancy are NaN.
    """

    def __init__(self, detect=False, max_normalized_residual=0., table=None, index=None,
                 component=None, label=None, row=None, normalized_residual=None):
        self.detect = detect
        self.max_normalized_residual = max_normalized_residual
        self.table = table
        self.index = index
        self.component = component
        self.label = label
        self.row = row
        self.normalized_residual = normalized_residual

    def __repr__(self):  # pragma: no cover
        if self.table is None:
            return "BadData(no measurement with redundancy)"
        return "BadData(detect=%s, max_normalized_residual=%.4f, %s %s %s '%s')" % (
            self.detect, self.max_normalized_residual, self.table, self.index, self.component,
            self.label)


def _residual_covariance_diagonal(algorithm, R):
    # \Omega = R - H G^-1 H^T, only the diagonal is needed
    H = algorithm.H
    lu = splu(csc_matrix(algorithm.gain))
    X = lu.solve(H.T.toarray())
    sensitivity = np.asarray(H.multiply(X.T).sum(axis=1)).ravel()
    return R - sensitivity


def residual_test(algorithm, threshold=3.0, tolerance=1e-6):
    """
    Largest normalized residual test on the last WLS estimate.

    The normalized residual of row i is |r_i| / sqrt(Omega_ii) with the residual covariance
    Omega = R - H G^-1 H^T, R = W^-1. Rows with Omega_ii <= tolerance * R_ii (critical
    measurements without redundancy) are left out. Nothing is changed: the caller disables the
    flagged measurement in the registry and estimates again.

    INPUT:
        **algorithm** (WLSAlgorithm) - algorithm after estimate()

    OPTIONAL:
        **threshold** (float, 3.0) - identification threshold of the largest normalized residual

        **tolerance** (float, 1e-6) - residual variances below this share of the measurement
            variance are treated as zero

    OUTPUT:
        **bad_data** (BadData) - the measurement with the largest normalized residual
    """
    if not isinstance(algorithm, WLSAlgorithm):
        raise AlgorithmUnknown("The residual test requires a WLS estimate")
    if algorithm.H is None:
        logger.warning("No estimate available, run the estimation before the residual test")
        return BadData()
    if not algorithm.successful:
        logger.warning("The last estimate did not converge, normalized residuals may be "
                       "meaningless")

    R = algorithm.model.precision.covariance_diagonal(algorithm.rows)
    omega = _residual_covariance_diagonal(algorithm, R)
    redundant = omega > tolerance * R
    normalized = np.full(len(omega), np.nan)
    normalized[redundant] = np.abs(algorithm.r[redundant]) / np.sqrt(omega[redundant])
    if not np.any(redundant):
        logger.warning("No measurement has redundancy, bad data cannot be identified")
        return BadData(normalized_residual=normalized)

    position = int(np.nanargmax(normalized))
    row = int(algorithm.rows[position])
    model = algorithm.model
    bad_data = BadData(detect=bool(normalized[position] > threshold),
                       max_normalized_residual=float(normalized[position]),
                       table=model.table[row], index=int(model.source[row]),
                       component=model.component[row], label=model.labels([row])[0], row=row,
                       normalized_residual=normalized)
    logger.debug("Largest normalized residual %.4f at %s %s (%s)" % (
        bad_data.max_normalized_residual, bad_data.table, bad_data.index, bad_data.label))
    return bad_data


def chi2_test(algorithm, probability=0.05):
    """
    Chi-squared test of the weighted residual sum of the last WLS estimate with m - n degrees
    of freedom.

    OPTIONAL:
        **probability** (float, 0.05) - probability of a false alarm

    OUTPUT:
        **bad_data_present** (bool) - True if the objective exceeds the threshold

        **objective** (float) - weighted sum of squared residuals J(x)

        **threshold** (float) - chi2 threshold
    """
    if not isinstance(algorithm, WLSAlgorithm):
        raise AlgorithmUnknown("The chi2 test requires a WLS estimate")
    if algorithm.H is None:
        logger.warning("No estimate available, run the estimation before the chi2 test")
        return False, None, None

    # Number of measurements and state variables
    m, n = algorithm.H.shape
    if m <= n:
        logger.warning("No redundancy (%d measurements, %d states), chi2 test not possible"
                       % (m, n))
        return False, algorithm.objective, None

    test_thresh = chi2.ppf(1 - probability, m - n)

    # Print results
    logger.debug("Result of Chi^2 test:")
    logger.debug("Number of measurements: %d" % m)
    logger.debug("Number of state variables: %d" % n)
    logger.debug("Performance index: %.2f" % algorithm.objective)
    logger.debug("Chi^2 test threshold: %.2f" % test_thresh)

    bad_data_present = bool(algorithm.objective > test_thresh)
    if bad_data_present:
        logger.debug("Chi^2 test failed. Bad data or topology error detected.")
    else:
        logger.debug("Chi^2 test passed. No bad data or topology error detected.")
    return bad_data_present, algorithm.objective, test_thresh
