"""NVIDIA GPU telemetry exporter: Prometheus gauges and CloudWatch aggregates."""

__version__ = "0.1.0"
