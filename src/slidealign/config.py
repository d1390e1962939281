"""Numeric settings shared by the estimator and the transform state."""

# ECC refinement: iteration cap and convergence epsilon. The epsilon only
# ends the refinement early when ECC_STOP_ON_EPSILON is set.
ECC_MAX_COUNT = 100
ECC_EPSILON = 1e-4
ECC_STOP_ON_EPSILON = False
ECC_GAUSS_FILTER_SIZE = 5

# Douglas-Peucker tolerance (pixels) when rebuilding mapped outlines
ROI_SIMPLIFY_TOLERANCE = 0.5
ELLIPSE_VERTICES = 100

# |det| at or below this counts as singular
INVERTIBLE_TOLERANCE = 1e-12

# decimals written by AffineTransform2D.to_text
TEXT_PRECISION = 4
