"""Mathematical primitives for pool math.

This package provides:
- Fp: 9-decimal fixed-point arithmetic with explicit rounding and checked widths
"""

from poolmath.math.fixed_point import Fp

__all__ = ["Fp"]
