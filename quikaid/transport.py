"""Outbound delivery boundary between the coordinator and live connections."""
from typing import NamedTuple, Optional


class Outbound(NamedTuple):
    """One notification. ``target`` None means every connected client."""

    event: str
    payload: dict
    target: Optional[str] = None


class Transport:
    """Delivers notifications. Nothing is acknowledged or retried.

    Subclasses must override ``send`` and ``broadcast``.
    """

    def send(self, connection_id: str, event: str, payload: dict) -> None:
        raise NotImplementedError

    def broadcast(self, event: str, payload: dict) -> None:
        raise NotImplementedError

    def deliver(self, message: Outbound) -> bool:
        try:
            if message.target is None:
                self.broadcast(message.event, message.payload)
            else:
                self.send(message.target, message.event, message.payload)
            return True
        except Exception as delivery_error:
            print(
                f"[SOCKET] Failed to deliver {message.event} "
                f"to {message.target or 'all'}: {delivery_error}"
            )
            return False


class SocketIOTransport(Transport):
    """Transport over a Flask-SocketIO server."""

    def __init__(self, socketio):
        self.socketio = socketio

    def send(self, connection_id, event, payload):
        self.socketio.emit(event, payload, to=connection_id)

    def broadcast(self, event, payload):
        self.socketio.emit(event, payload)
