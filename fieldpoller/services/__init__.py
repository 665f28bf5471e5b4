"""
fieldpoller Services

- device: Modbus reads and register decoding
- polling: orchestration, normalization, cycle guard and the tick pipeline
"""
