"""
Observability module for throttlekit

Provides Prometheus metrics for monitoring admission decisions.
"""

from .metrics import ThrottleMetrics

__all__ = ["ThrottleMetrics"]
