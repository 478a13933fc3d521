"""
MediaStorm
==========

Open-loop write load generator: issues PUT operations against a storage
endpoint at a fixed rate, prints one METRICS line per operation and a rolling
throughput line every five seconds.
"""

from .client import HttpWriteBackend, S3WriteBackend, WriteError, WriteResult, make_backend
from .config import ConfigError, LoadSpec
from .executor import RequestExecutor
from .generator import Dispatcher, RateScheduler
from .metrics import MetricsAggregator, OperationRecord, Outcome, ThroughputReporter
from .payload import make_payload

__version__ = "0.1.0"

__all__ = [
    "ConfigError",
    "Dispatcher",
    "HttpWriteBackend",
    "LoadSpec",
    "MetricsAggregator",
    "OperationRecord",
    "Outcome",
    "RateScheduler",
    "RequestExecutor",
    "S3WriteBackend",
    "ThroughputReporter",
    "WriteError",
    "WriteResult",
    "make_backend",
    "make_payload",
]
