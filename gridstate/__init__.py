import os
gs_dir = os.path.dirname(os.path.realpath(__file__))

from gridstate._version import __version__
from gridstate.auxiliary import *
from gridstate.create import *

import pandas as pd
pd.options.mode.chained_assignment = None  # default='warn'

# import gridstate packages
import gridstate.estimation
