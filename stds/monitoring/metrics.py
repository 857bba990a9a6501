"""
Prometheus Metrics
==================
Export engine metrics for monitoring and alerting.

Metrics:
- Training runs and their outcome
- Sequences inserted and nodes created
- Decisions issued, by label
- Live inference latency
- Tree size
"""

import logging
import threading
import time
from http.server import HTTPServer, BaseHTTPRequestHandler
from typing import Optional

from prometheus_client import (
    Counter, Gauge, Histogram,
    generate_latest, CONTENT_TYPE_LATEST, REGISTRY
)

logger = logging.getLogger(__name__)


class MetricsCollector:
    """
    Prometheus metrics collector for the sequence-tree engine.

    Usage:
        from stds.monitoring import metrics

        metrics.record_training("success", sequences=120, nodes_created=45)

        with metrics.inference_timer():
            decision = engine.process_new_data(bar)
    """

    def __init__(self):
        # =================================================================
        # TRAINING METRICS
        # =================================================================

        self.training_runs_total = Counter(
            'stds_training_runs_total',
            'Training runs by outcome',
            ['status']  # success, failed
        )

        self.sequences_inserted_total = Counter(
            'stds_sequences_inserted_total',
            'Labeled sequences inserted into the tree'
        )

        self.nodes_created_total = Counter(
            'stds_nodes_created_total',
            'Tree nodes created'
        )

        self.training_duration = Histogram(
            'stds_training_duration_seconds',
            'Wall time of a training run',
            buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 15.0, 60.0)
        )

        self.tree_nodes = Gauge(
            'stds_tree_nodes',
            'Nodes in the current tree'
        )

        # =================================================================
        # INFERENCE METRICS
        # =================================================================

        self.decisions_total = Counter(
            'stds_decisions_total',
            'Live decisions issued',
            ['decision']
        )

        self.inference_latency = Histogram(
            'stds_inference_latency_seconds',
            'Time to process one live bar',
            buckets=(0.0001, 0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.1)
        )

        self.events_dropped_total = Counter(
            'stds_events_dropped_total',
            'Events dropped by a full notification channel'
        )

        # =================================================================
        # ERROR METRICS
        # =================================================================

        self.errors_total = Counter(
            'stds_errors_total',
            'Errors by operation and kind',
            ['operation', 'error_type']
        )

    def record_training(self, status: str, sequences: int = 0, nodes_created: int = 0,
                        duration: float = 0.0, node_count: Optional[int] = None):
        """Record one training run."""
        self.training_runs_total.labels(status=status).inc()
        if sequences:
            self.sequences_inserted_total.inc(sequences)
        if nodes_created:
            self.nodes_created_total.inc(nodes_created)
        if duration:
            self.training_duration.observe(duration)
        if node_count is not None:
            self.tree_nodes.set(node_count)

    def record_decision(self, decision: str):
        self.decisions_total.labels(decision=decision).inc()

    def inference_timer(self):
        """Context manager timing one live bar."""
        return _Timer(self.inference_latency)

    def record_event_dropped(self):
        self.events_dropped_total.inc()

    def record_error(self, operation: str, error_type: str):
        self.errors_total.labels(operation=operation, error_type=error_type).inc()


class _Timer:
    """Timer context manager for Histogram observation."""

    def __init__(self, histogram):
        self.histogram = histogram
        self.start = None

    def __enter__(self):
        self.start = time.perf_counter()
        return self

    def __exit__(self, *args):
        self.histogram.observe(time.perf_counter() - self.start)


class MetricsHandler(BaseHTTPRequestHandler):
    """HTTP handler for /metrics endpoint."""

    def do_GET(self):
        if self.path == '/metrics':
            self.send_response(200)
            self.send_header('Content-Type', CONTENT_TYPE_LATEST)
            self.end_headers()
            self.wfile.write(generate_latest(REGISTRY))
        elif self.path == '/health':
            self.send_response(200)
            self.send_header('Content-Type', 'application/json')
            self.end_headers()
            self.wfile.write(b'{"status": "healthy"}')
        else:
            self.send_response(404)
            self.end_headers()

    def log_message(self, format, *args):
        # Suppress HTTP logs
        pass


def start_metrics_server(port: int = 9090, host: str = "0.0.0.0") -> HTTPServer:
    """
    Start Prometheus metrics server on a daemon thread.

    Args:
        port: Port to listen on
        host: Host to bind to

    Returns:
        HTTPServer instance
    """
    server = HTTPServer((host, port), MetricsHandler)

    thread = threading.Thread(
        target=server.serve_forever,
        daemon=True,
        name="MetricsServer"
    )
    thread.start()

    logger.info(f"Metrics server started on http://{host}:{port}/metrics")
    return server


# Global metrics instance
metrics = MetricsCollector()
