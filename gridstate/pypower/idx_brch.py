# -*- coding: utf-8 -*-

# Copyright 1996-2015 PSERC. All rights reserved.
# Use of this source code is governed by a BSD-style
# license that can be found in the LICENSE file.

# Copyright (c) 2016-2026 by University of Kassel and Fraunhofer Institute for Energy Economics
# and Energy System Technology (IEE), Kassel. All rights reserved.


"""Defines constants for named column indices to branch matrix.

Some examples of usage, after defining the constants using the line above,
are::

    branch[3, BR_STATUS] = 0              # take branch 4 out of service
    x = branch[:, BR_X]                   # get the series reactance vector

The index, name and meaning of each column of the branch matrix is given
below:

columns 0-9 must be included in input matrix
    0.  C{F_BUS}       from bus number
    1.  C{T_BUS}       to bus number
    2.  C{BR_R}        resistance (p.u.)
    3.  C{BR_X}        reactance (p.u.)
    4.  C{BR_B}        total line charging susceptance (p.u.)
    5.  C{BR_G}        total line charging conductance (p.u.)
    6.  C{TAP}         transformer off nominal turns ratio
    7.  C{SHIFT}       transformer phase shift angle (radians)
    8.  C{BR_STATUS}   initial branch status, 1 - in service, 0 - out of service
    9.  C{BR_IDX}      index of the branch in net["branch"]
"""

# define the indices
F_BUS = 0       # f, from bus number
T_BUS = 1       # t, to bus number
BR_R = 2        # r, resistance (p.u.)
BR_X = 3        # x, reactance (p.u.)
BR_B = 4        # b, total line charging susceptance (p.u.)
BR_G = 5        # g, total line charging conductance (p.u.)
TAP = 6         # ratio, transformer off nominal turns ratio
SHIFT = 7       # angle, transformer phase shift angle (radians)
BR_STATUS = 8   # initial branch status, 1 - in service, 0 - out of service
BR_IDX = 9      # index in net["branch"]

branch_cols = 10
