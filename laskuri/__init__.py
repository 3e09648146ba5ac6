"""Invoice pricing for accounting-firm customers."""

__version__ = "0.1.0"
