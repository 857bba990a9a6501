"""
Monitoring Module
=================
Prometheus metrics for training and live inference.
"""

from .metrics import MetricsCollector, metrics, start_metrics_server

__all__ = ['MetricsCollector', 'metrics', 'start_metrics_server']
