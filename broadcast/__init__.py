"""Topic based publish/subscribe for realtime events.

Managers publish structured payloads to named topics; every subscriber of a
topic receives each payload. Delivery is fire-and-forget: nothing is
persisted for subscribers that join later and send failures never propagate
to the publisher.
"""

from .manager import Broadcaster, ConnectionManager, manager
from .topics import livestream_topic, trades_topic

__all__ = [
    'Broadcaster',
    'ConnectionManager',
    'manager',
    'livestream_topic',
    'trades_topic'
]
