from .metrics import MetricsCollector, TransportMetrics

__all__ = ["MetricsCollector", "TransportMetrics"]
