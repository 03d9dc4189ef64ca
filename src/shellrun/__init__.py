"""shellrun - command execution and background job engine."""

__version__ = "0.1.0"
