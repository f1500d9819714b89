"""Capture backends."""

from .base import (
    AlreadyStopped,
    CaptureBackend,
    CaptureError,
    DeviceUnavailable,
    PermissionDenied,
)

__all__ = [
    "AlreadyStopped",
    "CaptureBackend",
    "CaptureError",
    "DeviceUnavailable",
    "PermissionDenied",
]
