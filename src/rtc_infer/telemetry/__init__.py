from .sinks import JsonlSink, latency_record

__all__ = ["JsonlSink", "latency_record"]
