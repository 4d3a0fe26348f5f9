"""Cross-service event propagation and job pipeline for the sports platform."""

__version__ = "1.0.0"
