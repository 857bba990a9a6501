"""
Tests for Prometheus Metrics
============================
"""

import urllib.request

import pytest
from prometheus_client import REGISTRY

from stds.core.exceptions import InsufficientDataError
from stds.events import NODE_CREATED, NotificationChannel
from stds.monitoring import metrics, start_metrics_server


def sample(name, labels=None):
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


class TestMetricsCollector:
    """Engine operations feed the global collector."""

    def test_training_recorded(self, trained_engine):
        assert sample('stds_training_runs_total', {'status': 'success'}) >= 1
        assert sample('stds_tree_nodes') >= 1

    def test_decision_recorded(self, trained_engine):
        before = sample('stds_decisions_total', {'decision': 'NONE'})
        trained_engine.process_new_data({'open': 1, 'high': 1, 'low': 1, 'close': 100, 'volume': 1})
        assert sample('stds_decisions_total', {'decision': 'NONE'}) == before + 1
        assert sample('stds_inference_latency_seconds_count') >= 1

    def test_failed_training_recorded(self, engine, scenario_bars):
        before = sample('stds_training_runs_total', {'status': 'failed'})
        engine.initialize()
        engine.load_data(scenario_bars)
        with pytest.raises(InsufficientDataError):
            engine.train()
        assert sample('stds_training_runs_total', {'status': 'failed'}) == before + 1

    def test_dropped_events_recorded(self):
        before = sample('stds_events_dropped_total')
        channel = NotificationChannel(maxsize=1)
        channel.emit(NODE_CREATED, {})
        channel.emit(NODE_CREATED, {})
        assert sample('stds_events_dropped_total') == before + 1

    def test_record_error(self):
        before = sample('stds_errors_total', {'operation': 'test', 'error_type': 'X'})
        metrics.record_error('test', 'X')
        assert sample('stds_errors_total', {'operation': 'test', 'error_type': 'X'}) == before + 1


class TestMetricsServer:
    """The /metrics exporter."""

    def test_exposes_metrics(self):
        server = start_metrics_server(port=0, host="127.0.0.1")
        try:
            port = server.server_address[1]
            with urllib.request.urlopen(f"http://127.0.0.1:{port}/metrics", timeout=5) as resp:
                text = resp.read().decode()
            assert 'stds_training_runs_total' in text
        finally:
            server.shutdown()
            server.server_close()
