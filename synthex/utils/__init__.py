"""
Shared Utilities
================

Logging setup and sensitive-data masking, settings persistence, and the
asyncio background worker used for fire-and-forget and debounced tasks.
"""
