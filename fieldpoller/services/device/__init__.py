"""
Device Layer - Modbus Reads

Responsibilities:
- Decode raw register words (boolean, signed 16-bit, float32 pairs)
- Open one bounded connection per read and always close it
- Turn every transport/device/decode failure into a ReadResult
"""

from .reader import DeviceReader, ReadResult

__all__ = ["DeviceReader", "ReadResult"]
