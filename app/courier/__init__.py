"""Courier: priority notification delivery pipeline.

Producers enqueue notifications, delivery workers claim them in priority order
and hand them to per-channel adapters, recording every attempt.
"""

__version__ = "0.1.0"
