"""Profit Watch: commission, shipping and profit resolution for marketplace sellers."""

__version__ = "1.0.0"
