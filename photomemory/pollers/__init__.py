"""Pollers for asynchronous Google workflows."""

from .picker import MediaItem, PickerSession, PickerSessionController

__all__ = ["MediaItem", "PickerSession", "PickerSessionController"]
