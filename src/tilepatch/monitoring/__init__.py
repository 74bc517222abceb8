"""
Monitoring Module

Prometheus metrics for tile transformation runs.
"""

from .metrics import MetricsCollector

__all__ = [
    "MetricsCollector"
]
