"""
Delivery for Ofie Assistant.

Maps internal replies onto the persisted message record and the
real-time event contract.
"""

from .adapter import Broadcaster, DeliveryAdapter
from .events import Event, EventType

__all__ = ["Broadcaster", "DeliveryAdapter", "Event", "EventType"]
