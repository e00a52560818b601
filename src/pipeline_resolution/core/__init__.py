"""Core data model, clock and request stores."""

from pipeline_resolution.core.clock import Clock, FakeClock, SystemClock
from pipeline_resolution.core.request import (
    Condition,
    ConditionStatus,
    ObjectMeta,
    ResolutionRequest,
    ResolutionRequestSpec,
    ResolutionRequestStatus,
    decode_data,
    encode_data,
)
from pipeline_resolution.core.store import FileRequestStore, InMemoryRequestStore, RequestStore

__all__ = [
    "Clock",
    "Condition",
    "ConditionStatus",
    "FakeClock",
    "FileRequestStore",
    "InMemoryRequestStore",
    "ObjectMeta",
    "RequestStore",
    "ResolutionRequest",
    "ResolutionRequestSpec",
    "ResolutionRequestStatus",
    "SystemClock",
    "decode_data",
    "encode_data",
]
