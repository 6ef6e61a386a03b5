# -*- coding: utf-8 -*-

# Copyright 1996-2015 PSERC. All rights reserved.
# Use of this source code is governed by a BSD-style
# license that can be found in the LICENSE file.

# Copyright (c) 2016-2026 by University of Kassel and Fraunhofer Institute for Energy Economics
# and Energy System Technology (IEE), Kassel. All rights reserved.


"""Defines constants for named column indices to bus matrix.

Some examples of usage, after defining the constants using the line above,
are::

    Vm = bus[3, VM]         # get the voltage magnitude at bus 4
    bus[:, VA] = 0          # reset all angles to the slack reference

The index, name and meaning of each column of the bus matrix is given
below:

columns 0-5 must be included in input matrix
    0.  C{BUS_I}       bus number (0 to nb - 1, contiguous)
    1.  C{BUS_TYPE}    bus type (1 = PQ, 3 = ref)
    2.  C{GS}          Gs, shunt conductance (p.u. demanded at V = 1.0 p.u.)
    3.  C{BS}          Bs, shunt susceptance (p.u. injected at V = 1.0 p.u.)
    4.  C{VM}          Vm, voltage magnitude (p.u.), initial point
    5.  C{VA}          Va, voltage angle (radians), initial point
"""

# define bus types
PQ = 1
REF = 3
NONE = 4

# define the indices
BUS_I = 0       # bus number (0 to nb - 1)
BUS_TYPE = 1    # bus type
GS = 2          # Gs, shunt conductance
BS = 3          # Bs, shunt susceptance
VM = 4          # Vm, voltage magnitude (p.u.)
VA = 5          # Va, voltage angle (radians)

bus_cols = 6
