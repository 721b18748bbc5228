"""
Remote counter sinks.

This module provides:
- RemoteSink: Abstract apply-delta interface the scheduler reconciles against
- SimulatedRemoteSink: Rate-limited, randomly slow and failing in-process store
"""

from .base import RemoteSink
from .simulated import FailureProfile, SimulatedRemoteSink, SinkCall

__all__ = [
    "RemoteSink",
    "SimulatedRemoteSink",
    "FailureProfile",
    "SinkCall",
]
