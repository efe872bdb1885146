"""Bayesian A/B decisions for ads competing within the same ad group."""

__version__ = "0.1.0"
