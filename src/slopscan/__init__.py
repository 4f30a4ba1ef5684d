"""slopscan: find and plan the removal of low-value code constructs."""

__version__ = "0.3.0"
