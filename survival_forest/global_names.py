# Column names
STATUS = 'status'
TIME = 'time'

# Tree construction defaults
MIN_NODE_SIZE = 3
MAX_DEPTH = None
RANDOM_STATE = 1234

# Forest defaults
N_ESTIMATORS = 100
MAX_FEATURES = 'sqrt'

# Split values used for binary-coded (0/1/2 genotype style) variables.
# A split on 2 would always put every row to the left.
BINARY_SPLIT_VALUES = (0.0, 1.0)

# Statistic recorded for a threshold whose log-rank variance is zero
LOGRANK_INVALID = -1.0
