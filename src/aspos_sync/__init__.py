"""ASPOS point-of-sale to catalog synchronizer."""

__version__ = "1.0.0"
