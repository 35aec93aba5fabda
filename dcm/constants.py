"""
Naming conventions and numeric defaults shared by the compiler and solver driver
"""

# Columns whose value the solver decides carry this prefix
CONTROLLABLE_PREFIX = 'controllable__'

# Upper bound for aggregate variables (per-target loads, objective maxima)
DEFAULT_MAX_AGGREGATE_BOUND = 10_000_000

# CP-SAT search defaults
DEFAULT_NUM_WORKERS = 4
DEFAULT_PROBING_LEVEL = 2
MAX_PROBING_LEVEL = 3
DEFAULT_TIME_LIMIT_SECONDS = 60.0

ENCODING_CHOICES = ('auto', 'interval', 'indicator')
