"""Core infrastructure shared by the HTTP consensus clock."""

__all__ = [
    "clock",
    "config",
]
