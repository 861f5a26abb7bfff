"""vaultline - validation and execution engine for backup pipelines."""

__version__ = "0.1.0"
