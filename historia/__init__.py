"""Historia turn adjudication engine."""

__version__ = "1.0.0"
