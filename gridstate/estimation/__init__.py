# -*- coding: utf-8 -*-

# Copyright (c) 2016-2026 by University of Kassel and Fraunhofer Institute for Energy Economics
# and Energy System Technology (IEE), Kassel. All rights reserved.

from gridstate.estimation.measurement import MeasurementConfig, MeasurementRegistry
from gridstate.estimation.state_estimation import StateEstimation, estimate, remove_bad_data, \
    chi2_analysis
from gridstate.estimation.bad_data import BadData, residual_test, chi2_test
from gridstate.estimation.observability import island_topological_flow, island_topological, \
    restoration_gram
from gridstate.estimation.placement import pmu_placement, pmu_placement_measurements
from gridstate.estimation.util import add_virtual_meas_from_state, add_virtual_pmu_meas_from_state
