"""Environment-driven settings for the QuikAid dispatch service."""
import os

from dotenv import load_dotenv

load_dotenv()

TRUTHY = ("1", "true", "yes", "on")


def _int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        print(f"Invalid value for {name}: {raw!r}; using {default}")
        return default


def _flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in TRUTHY


class Settings:
    """Snapshot of the environment taken at construction time."""

    def __init__(self):
        self.host = os.environ.get("HOST") or "0.0.0.0"
        self.port = _int("PORT", 3000)
        self.public_dir = os.path.abspath(os.environ.get("PUBLIC_DIR") or "public")

        # Reaper: sweep every 5 minutes, drop anything older than an hour
        self.retention_seconds = _int("SOS_RETENTION_SECONDS", 60 * 60)
        self.sweep_interval_seconds = _int("SOS_SWEEP_INTERVAL_SECONDS", 5 * 60)
        self.start_reaper = _flag("START_REAPER", True)

        # AMQP feed is optional; no host means no feed
        self.rabbit_host = os.environ.get("RABBITMQ_HOST")
        self.rabbit_port = _int("RABBITMQ_PORT", 5672)
        self.rabbit_user = os.environ.get("RABBITMQ_USER") or "guest"
        self.rabbit_password = os.environ.get("RABBITMQ_PASSWORD") or "guest"
        self.rabbit_vhost = os.environ.get("RABBITMQ_VHOST") or "/"
        self.exchange_name = os.environ.get("AMQP_EXCHANGE_NAME") or "amqp.topic"
        self.exchange_type = os.environ.get("AMQP_EXCHANGE_TYPE") or "topic"

    @property
    def amqp_enabled(self) -> bool:
        return bool(self.rabbit_host)
