"""Preserve custom node taints across node object recreation."""

__version__ = "0.1.0"
