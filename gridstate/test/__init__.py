import os
from gridstate import gs_dir

test_path = os.path.join(gs_dir, 'test')
