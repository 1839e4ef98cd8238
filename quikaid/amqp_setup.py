"""Optional AMQP feed of SOS lifecycle events for downstream services."""
import json
import sys
import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import pika

from .config import Settings


class AMQPSetup:
    RK_SOS_SUBMITTED = "event.sos.submitted"
    RK_SOS_ACCEPTED = "event.sos.accepted"
    RK_SOS_REOPENED = "event.sos.reopened"
    RK_SOS_COMPLETED = "event.sos.completed"
    RK_SOS_EXPIRED = "event.sos.expired"

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or Settings()
        self.hostname = settings.rabbit_host
        self.port = settings.rabbit_port
        self.username = settings.rabbit_user
        self.password = settings.rabbit_password
        self.vhost = settings.rabbit_vhost
        self.exchange_name = settings.exchange_name
        self.exchange_type = settings.exchange_type

        self.connection: Optional[pika.BlockingConnection] = None
        self.channel = None
        # pika's BlockingConnection is not thread-safe; socket handlers and
        # the reaper all publish through this one channel
        self._lock = threading.Lock()

    def connect(self, max_retry_time: int = 60):
        print(f"[AMQP] Attempting to connect to RabbitMQ at {self.hostname}:{self.port}")
        params = pika.ConnectionParameters(
            host=self.hostname,
            port=self.port,
            virtual_host=self.vhost,
            credentials=pika.PlainCredentials(self.username, self.password),
        )
        start = time.time()
        while True:
            try:
                self.connection = pika.BlockingConnection(params)
                self.channel = self.connection.channel()
                print("[AMQP] Successfully connected to RabbitMQ!")
                self.setup_topology()
                break
            except pika.exceptions.AMQPConnectionError as e:
                if time.time() - start > max_retry_time:
                    print(f"[AMQP] Max retry time exceeded: {e}", file=sys.stderr)
                    raise
                print("[AMQP] Connection failed. Retrying in 2s...")
                time.sleep(2)

    def setup_topology(self):
        self.channel.exchange_declare(
            exchange=self.exchange_name, exchange_type=self.exchange_type, durable=True
        )

    def is_connected(self) -> bool:
        return bool(self.connection and self.connection.is_open)

    def publish(self, routing_key: str, body: Dict[str, Any]) -> None:
        with self._lock:
            ch = self._ch()
            ch.basic_publish(
                exchange=self.exchange_name,
                routing_key=routing_key,
                body=json.dumps(body),
                properties=pika.BasicProperties(
                    content_type="application/json",
                    delivery_mode=2,  # persistent
                    correlation_id=str(body.get("sos_id", "")),
                    app_id="quikaid-dispatch",
                ),
                mandatory=False,
            )

    def publish_sos_event(self, routing_key: str, record: Dict[str, Any]) -> bool:
        """Publish a lifecycle change; failures are printed, never raised."""
        try:
            message = {
                "sos_id": record.get("sosId"),
                "status": record.get("status"),
                "sos": record,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
            self.publish(routing_key, message)
            print(f"[AMQP] Published event to {routing_key}: {message['sos_id']}")
            return True
        except Exception as publish_error:
            print(f"[AMQP] Failed to publish event to {routing_key}: {publish_error}")
            return False

    def _ch(self):
        if not self.channel or not self.channel.is_open:
            # Single attempt: a publish must not stall a socket handler
            self.connect(max_retry_time=0)
        return self.channel

    def close(self):
        if self.connection and self.connection.is_open:
            self.connection.close()
            print("[AMQP] RabbitMQ connection closed.")
