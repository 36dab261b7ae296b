"""
Data Models Layer.

This package contains the Pydantic configuration model and the dataclasses
that describe streams, representations, segments and acquisition results.
"""

from .config import EngineConfig
from .stream import (
    AcquisitionResult,
    AcquisitionStatus,
    KeyInfo,
    ProgressEvent,
    Representation,
    SaveRequest,
    Segment,
    SegmentTemplate,
    StreamDescriptor,
    StreamType,
)

__all__ = [
    "AcquisitionResult",
    "AcquisitionStatus",
    "EngineConfig",
    "KeyInfo",
    "ProgressEvent",
    "Representation",
    "SaveRequest",
    "Segment",
    "SegmentTemplate",
    "StreamDescriptor",
    "StreamType",
]
