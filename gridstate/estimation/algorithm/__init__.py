# -*- coding: utf-8 -*-

# Copyright (c) 2016-2026 by University of Kassel and Fraunhofer Institute for Energy Economics
# and Energy System Technology (IEE), Kassel. All rights reserved.

from gridstate.estimation.algorithm.base import WLSAlgorithm
from gridstate.estimation.algorithm.lav import LAVAlgorithm
