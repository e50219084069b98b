"""
Normalized microphone failure kinds.

Platform audio stacks report failures under many names; the permission
gate folds them into exactly these five.
"""

from __future__ import annotations

from enum import Enum


class PermissionErrorKind(str, Enum):
    DEVICE_NOT_FOUND = "DeviceNotFound"
    PERMISSION_DENIED = "PermissionDenied"
    DEVICE_BUSY = "DeviceBusy"
    UNSUPPORTED = "Unsupported"
    UNKNOWN = "Unknown"
