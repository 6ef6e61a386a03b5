# -*- coding: utf-8 -*-

# Copyright (c) 2016-2026 by University of Kassel and Fraunhofer Institute for Energy Economics
# and Energy System Technology (IEE), Kassel. All rights reserved.


# Additional copyright for modified code by Brendan Curran-Johnson (ADict class):
# Copyright (c) 2013 Brendan Curran-Johnson
#
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in
# all copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN
# THE SOFTWARE.
# (https://github.com/bcj/AttrDict/blob/master/LICENSE.txt)

import logging

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

__all__ = ["ADict", "gridstateNet", "get_free_id", "gsException", "MeasurementConfigurationError",
           "FactorizationError", "SolverError", "AlgorithmUnknown"]


class ADict(dict):
    """
    Dictionary whose keys can be read and written as attributes. Keys that collide with a
    class attribute (e.g. 'keys' or 'items') are only reachable as items.
    """

    def __dir__(self):
        return list(self.keys())

    def __setattr__(self, key, value):
        if not self._valid_name(key):
            raise TypeError("'%s' does not allow the attribute %s"
                            % (self.__class__.__name__, key))
        self[key] = value

    def __getattr__(self, key):
        if key not in self or not self._valid_name(key):
            raise AttributeError("'%s' instance has no attribute '%s'"
                                 % (self.__class__.__name__, key))
        return self[key]

    @classmethod
    def _valid_name(cls, key):
        return isinstance(key, str) and not hasattr(cls, key)


class gridstateNet(ADict):
    def __repr__(self):  # pragma: no cover
        tables = [(tb, len(df)) for tb, df in self.items()
                  if not tb.startswith("_") and isinstance(df, pd.DataFrame) and len(df)]
        r = "This gridstate network includes the following parameter tables:"
        r += "".join("\n   - %s (%d)" % t for t in tables if not t[0].startswith("res_"))
        results = [t for t in tables if t[0].startswith("res_")]
        if results:
            r += "\n and the following results tables:"
            r += "".join("\n   - %s (%d)" % t for t in results)
        return r


def get_free_id(df):
    """
    Returns next free ID in a dataframe
    """
    return np.int64(0) if len(df) == 0 else df.index.values.max() + 1


class gsException(Exception):
    """
    General gridstate custom parent exception.
    """
    pass


class MeasurementConfigurationError(gsException):
    """
    The network or measurement set cannot be estimated as configured (missing slack bus,
    incomplete PMU pair, no measurements in service, invalid variances).
    """
    pass


class FactorizationError(gsException):
    """
    A gain matrix or weighted Jacobian could not be factorized.
    """
    pass


class SolverError(gsException):
    """
    An LP or MILP solve did not return an optimal solution.
    """
    pass


class AlgorithmUnknown(gsException):
    """
    Exception being raised in case an unknown algorithm, estimation kind or factorization
    is selected.
    """
    pass


def _init_runse_options(net, kind, algorithm, tolerance, maximum_iterations, **kwargs):
    net._options = {"mode": "se",
                    "kind": kind,
                    "algorithm": algorithm,
                    "tolerance": tolerance,
                    "maximum_iterations": maximum_iterations,
                    "factorization": kwargs.get("factorization", "lu"),
                    "solver": kwargs.get("solver", "ortools"),
                    "init": kwargs.get("init", "flat")}
