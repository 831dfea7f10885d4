"""
apicapture: sampled, batched API event capture for request/response pipelines.

Hosts hand one EventRecord per completed exchange to a CaptureManager, which
samples it, buffers it and ships batches to a remote collector.
"""

__version__ = "0.1.0"
