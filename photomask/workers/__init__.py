"""
Workers Module - Async Thread Management
========================================
Contains QThread workers so rendering never blocks the caller's event loop.

Components:
- MaskWorker: applies every preset to one photo with progress tracking
"""

from .mask_worker import MaskWorker, MaskJob, MaskResult, decode_photo, encode_jpeg

__all__ = [
    "MaskWorker",
    "MaskJob",
    "MaskResult",
    "decode_photo",
    "encode_jpeg",
]
