import logging
from typing import Any, Dict, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class Broadcaster:
    """Interface the managers publish through.

    Subscribers are opaque string ids, one per connection.
    """

    async def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        raise NotImplementedError

    def subscribe(self, subscriber: str, topic: str) -> None:
        raise NotImplementedError

    def unsubscribe(self, subscriber: str, topic: str) -> None:
        raise NotImplementedError

    def subscribers(self, topic: str) -> Set[str]:
        raise NotImplementedError


class ConnectionManager(Broadcaster):
    """Fans topic payloads out to connected WebSockets."""

    def __init__(self):
        # Map of subscriber id -> WebSocket connection
        self.active_connections: Dict[str, WebSocket] = {}
        # Map of topic -> subscriber ids, kept in subscription order
        self.topic_subscribers: Dict[str, Dict[str, None]] = {}
        # Map of subscriber id -> subscribed topics
        self.subscriber_topics: Dict[str, Set[str]] = {}

    def connect(self, subscriber: str, websocket: WebSocket) -> None:
        """Register an accepted WebSocket under a subscriber id."""
        self.active_connections[subscriber] = websocket
        self.subscriber_topics.setdefault(subscriber, set())

    def disconnect(self, subscriber: str) -> None:
        """Forget a connection and drop it from every topic."""
        self.active_connections.pop(subscriber, None)

        for topic in self.subscriber_topics.pop(subscriber, set()):
            members = self.topic_subscribers.get(topic)
            if members is not None:
                members.pop(subscriber, None)
                if not members:
                    del self.topic_subscribers[topic]

    def subscribe(self, subscriber: str, topic: str) -> None:
        """Subscribe a connection to a topic."""
        self.topic_subscribers.setdefault(topic, {})[subscriber] = None
        self.subscriber_topics.setdefault(subscriber, set()).add(topic)

    def unsubscribe(self, subscriber: str, topic: str) -> None:
        """Unsubscribe a connection from a topic. Unknown pairs are ignored."""
        members = self.topic_subscribers.get(topic)
        if members is not None:
            members.pop(subscriber, None)
            if not members:
                del self.topic_subscribers[topic]
        if subscriber in self.subscriber_topics:
            self.subscriber_topics[subscriber].discard(topic)

    def subscribers(self, topic: str) -> Set[str]:
        """Get all subscribers of a topic."""
        return set(self.topic_subscribers.get(topic, {}))

    async def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        """Send a payload to every current subscriber of a topic."""
        members = self.topic_subscribers.get(topic)
        if not members:
            return

        disconnected = set()
        for subscriber in list(members):
            websocket = self.active_connections.get(subscriber)
            if websocket is None:
                continue
            try:
                await websocket.send_json(payload)
            except Exception as e:
                logger.warning(f"Dropping subscriber {subscriber} on {topic}: {e}")
                disconnected.add(subscriber)

        # Clean up dead connections
        for subscriber in disconnected:
            self.disconnect(subscriber)

    async def send_to(self, subscriber: str, payload: Dict[str, Any]) -> None:
        """Send a payload to a single connection."""
        websocket = self.active_connections.get(subscriber)
        if websocket is None:
            return
        try:
            await websocket.send_json(payload)
        except Exception as e:
            logger.warning(f"Dropping subscriber {subscriber}: {e}")
            self.disconnect(subscriber)


# Global instance
manager = ConnectionManager()
