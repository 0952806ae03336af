"""
Tidiers that turn fitted models into tables.

This module contains implementations of:
- PCA tidiers (scores, loadings, variance explained)
- Linear and generalized linear model tidiers
- Mixed-effects model tidiers
- Generic tidy/augment/glance entry points
"""

from modeltidy.tidiers.pca import tidy_pca, augment_pca
from modeltidy.tidiers.lm import tidy_lm, augment_lm, glance_lm
from modeltidy.tidiers.mixed import tidy_mixed, augment_mixed, glance_mixed
from modeltidy.tidiers.generics import tidy, augment, glance

__all__ = [
    'tidy_pca',
    'augment_pca',
    'tidy_lm',
    'augment_lm',
    'glance_lm',
    'tidy_mixed',
    'augment_mixed',
    'glance_mixed',
    'tidy',
    'augment',
    'glance',
]
