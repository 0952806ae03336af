"""
Setup script for modeltidy package.
"""

from setuptools import setup, find_packages

setup(
    name="modeltidy",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        # Core numerical dependencies
        "numpy>=1.20.0",
        "pandas>=1.3.0",
        "scipy>=1.7.0",
        "scikit-learn>=1.0.0",

        # Model families
        "statsmodels>=0.14.0",
        "patsy>=0.5.3",

        # Utilities
        "pyyaml>=6.0.0",
    ],
    extras_require={
        # Testing
        "test": [
            "pytest>=6.0.0",
        ],
    },
    author="modeltidy developers",
    description="Tidy tables from fitted PCA, linear, GLM and mixed-effects models",
    keywords="statistics, tidy data, regression, mixed models, pca",
    python_requires=">=3.8",
)
