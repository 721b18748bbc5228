"""
Observability: structured logging and Prometheus metrics.
"""
