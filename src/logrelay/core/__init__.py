"""
Core business logic components.

This package contains the masking and batching pipeline components:
- Data masking engine
- Include/exclude record filter
- Batch buffer and dispatch scheduler
- Batching dispatcher and transports
- Metrics collection
"""
