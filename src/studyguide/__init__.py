"""Fact-grounded study guide synthesis from slide-segmented lecture text."""

__all__ = ["__version__"]

__version__ = "0.1.0"
