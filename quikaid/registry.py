"""In-memory registries of connected drivers and hospitals."""
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .geo import hospital_coordinates

DRIVER = "driver"
HOSPITAL = "hospital"

DRIVER_AVAILABLE = "available"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ActorRecord:
    """A registered driver or hospital, keyed by its connection id."""

    connection_id: str
    role: str
    profile: Dict = field(default_factory=dict)
    lat: Optional[float] = None
    lng: Optional[float] = None
    status: Optional[str] = None
    connected_at: datetime = field(default_factory=_utcnow)

    @property
    def name(self) -> Optional[str]:
        return self.profile.get("name")

    @property
    def address(self) -> Optional[str]:
        return self.profile.get("address")

    @property
    def license(self) -> str:
        return self.profile.get("ambulanceLicense") or "N/A"

    @property
    def point(self):
        if self.lat is None or self.lng is None:
            return None
        return (self.lat, self.lng)

    def to_dict(self) -> dict:
        body = {**self.profile, "socketId": self.connection_id,
                "connectedAt": self.connected_at.isoformat()}
        if self.role == HOSPITAL:
            body["lat"] = self.lat
            body["lng"] = self.lng
        if self.status is not None:
            body["status"] = self.status
        return body


class ActorRegistry:
    """Maps connection id -> ActorRecord for a single role.

    Iteration order is registration order. Records handed out are copies;
    the table itself is only touched under the registry lock.
    """

    def __init__(self, role: str):
        if role not in (DRIVER, HOSPITAL):
            raise ValueError(f"Unknown actor role: {role}")
        self.role = role
        self._actors: Dict[str, ActorRecord] = {}
        self._lock = threading.Lock()

    def register(self, identity: str, profile: dict) -> ActorRecord:
        profile = dict(profile)
        record = ActorRecord(connection_id=identity, role=self.role, profile=profile)
        if self.role == HOSPITAL:
            record.lat, record.lng = hospital_coordinates(profile)
        else:
            record.status = DRIVER_AVAILABLE
        with self._lock:
            # Overwriting keeps the original slot in registration order
            self._actors[identity] = record
        return replace(record, profile=dict(profile))

    def remove(self, identity: str) -> Optional[ActorRecord]:
        with self._lock:
            return self._actors.pop(identity, None)

    def get(self, identity: str) -> Optional[ActorRecord]:
        with self._lock:
            record = self._actors.get(identity)
            return replace(record, profile=dict(record.profile)) if record else None

    def __contains__(self, identity) -> bool:
        with self._lock:
            return identity in self._actors

    def all(self) -> List[ActorRecord]:
        """Snapshot of every record in registration order."""
        with self._lock:
            return [replace(r, profile=dict(r.profile)) for r in self._actors.values()]

    def identities(self) -> List[str]:
        with self._lock:
            return list(self._actors)

    def count(self) -> int:
        with self._lock:
            return len(self._actors)
