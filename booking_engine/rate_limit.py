"""
Rate limiting configuration using slowapi.

Two tiers:
  • booking – 10/min (booking creation and cancellation)
  • default – 60/min (everything else)

The limiter keys on client IP.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, default_limits=["60/minute"])

BOOKING = "10/minute"
DEFAULT = "60/minute"
