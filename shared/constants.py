"""Centralized constants"""

# Editor geometry
DEFAULT_GRID_SNAP = 8
DEFAULT_NODE_WIDTH = 140
DEFAULT_NODE_HEIGHT = 32
DEFAULT_GROUP_PADDING = {"top": 40, "right": 24, "bottom": 32, "left": 24}
MIN_GROUP_CHILDREN = 2

# Viewport
DEFAULT_ZOOM = 0.85
MIN_ZOOM = 0.1
MAX_ZOOM = 5.0

# History
MAX_HISTORY_ENTRIES = 50

# Autosave / commit policy
AUTOSAVE_INTERVAL_SECONDS = 30
DEFAULT_COMMIT_MIN_INTERVAL_SECONDS = 120
DEFAULT_COMMIT_THRESHOLD = 5
AUTOSAVE_LABEL = "Auto-save"
MANUAL_SAVE_LABEL = "Manual save"

# Labels hidden from the default version listing
AUTO_VERSION_MARKERS = ("autosave", "auto-save")
REVERT_VERSION_PREFIX = "revert"

# Change score weights
SCORE_NODE_ADDED = 5
SCORE_NODE_REMOVED = 5
SCORE_EDGE_ADDED = 2
SCORE_EDGE_REMOVED = 2
SCORE_CONDITION_CHANGED = 8
SCORE_CONFIG_STRUCTURE_CHANGED = 4
SCORE_MINOR_CHANGE = 1

# Node kinds that branch control flow
CONDITION_KINDS = {"condition", "split"}

# Limits
MAX_NODES_PER_WORKFLOW = 1000
MAX_EDGES_PER_WORKFLOW = 5000
MAX_CONFIG_SIZE_BYTES = 10 * 1024   # 10KB

# Client-side ids replaced by server ids on granular graph edits
TEMP_ID_PREFIX = "tmp_"

# Record store
REDIS_KEY_PREFIX = "wf"
