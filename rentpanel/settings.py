# Defaults shared by the estimators, the diagnostic suite and the reports.
# Every function that uses one of these accepts an override argument.

SIGNIFICANCE_LEVEL = 0.05

# Bands for significance stars, loosest first: * < 0.1, ** < 0.05, *** < 0.01
STAR_LEVELS = (0.1, 0.05, 0.01)

# Cross-sectional dependence and serial correlation tests warn below this
MIN_PERIODS = 3

# Iterated random-effects variance components
RE_MAX_ITER = 100
RE_TOL = 1e-8

# Relative tolerance below which a within-transformed column counts as zero
COLLINEARITY_TOL = 1e-10

DEFAULT_TABLEFMT = "simple"
DEFAULT_DIGITS = 3
