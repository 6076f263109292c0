"""Importance model: network, scoring and training."""
