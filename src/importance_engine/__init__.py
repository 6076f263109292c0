"""Message importance scoring with continuous, resource-bounded learning."""

__version__ = "0.1.0"
