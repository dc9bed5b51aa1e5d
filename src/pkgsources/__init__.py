"""Source reconciliation client for package-build projects."""

__version__ = "1.0.0"
