"""
Numerical helpers used by the model adapters.

This package contains implementations of:
- A prcomp-style principal component decomposition
- Profile likelihood confidence intervals
"""
