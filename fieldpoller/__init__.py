"""
fieldpoller

Periodic Modbus TCP poller: reads field devices on a wall-clock schedule,
sanitizes the readings, and upserts one row per time bucket.
"""

__version__ = "1.0.0"
