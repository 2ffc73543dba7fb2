"""Base adapter interface for message bus backends."""
from abc import ABC, abstractmethod
from typing import Awaitable, Callable

MessageHandler = Callable[[bytes], Awaitable[None]]


class BusAdapter(ABC):
    """Abstract interface for publish/subscribe backend implementations."""

    @abstractmethod
    async def publish(self, channel: str, body: bytes) -> None:
        """
        Publish a raw message body to a channel.

        Args:
            channel: Channel name
            body: Encoded message

        Raises:
            TransportError: If the backend did not accept the message
        """
        pass

    @abstractmethod
    def subscribe(self, channel: str, handler: MessageHandler, fanout: bool = False) -> None:
        """
        Register a handler for every message delivered on a channel.

        Handlers may be invoked concurrently and more than once for the
        same message. With ``fanout`` every process subscribed to the
        channel receives each message; otherwise backends that share work
        between processes deliver it to one of them.
        """
        pass

    async def start(self) -> None:
        """Begin delivering messages to subscribed handlers."""

    async def stop(self) -> None:
        """Stop delivery and release backend resources."""

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the backend is healthy and accessible.

        Returns:
            True if backend is healthy, False otherwise
        """
        pass
