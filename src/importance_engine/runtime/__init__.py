"""Runtime resource monitoring."""

from .resource_monitor import AcceleratorProbe, ResourceMonitor, ResourceUsage

__all__ = ["AcceleratorProbe", "ResourceMonitor", "ResourceUsage"]
