"""
Infrastructure Layer
=====================

Low-level technical concerns:
- Logging setup
- In-process metrics registry
- Grafana OTLP export
"""
