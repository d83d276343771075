"""Definy core: content-addressed version store for Definy projects."""

__version__ = "0.1.0"
