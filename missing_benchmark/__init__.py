"""Simulation study of structure learning under missing data."""

__version__ = "0.1.0"
