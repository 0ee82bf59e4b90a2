"""Collect and group kubelet stats, pod, cAdvisor and node data into raw metric groups."""

__version__ = "0.1.0"