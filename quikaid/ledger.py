"""Authoritative in-memory ledger of SOS requests."""
import copy
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Union

from .errors import DuplicateRequest, InvalidTransition, NotFound

PENDING = "pending"
ACCEPTED = "accepted"
COMPLETED = "completed"

STATUSES = (PENDING, ACCEPTED, COMPLETED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class NearestHospital:
    name: Optional[str]
    address: Optional[str]
    distance: float
    connection_id: str

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "address": self.address,
            "distance": self.distance,
            "hospitalSocketId": self.connection_id,
        }


@dataclass
class RequestRecord:
    """Lifecycle record of one emergency request."""

    sos_id: str
    payload: Dict
    status: str = PENDING
    created_at: datetime = field(default_factory=_utcnow)
    accepted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    accepted_by: Optional[str] = None
    driver_license: Optional[str] = None
    driver_connection: Optional[str] = None
    nearest_hospital: Optional[NearestHospital] = None

    @property
    def location(self):
        return self.payload.get("location")

    @property
    def user_name(self):
        return self.payload.get("userName")

    def reopen(self):
        """Drop acceptance state and go back to pending."""
        self.status = PENDING
        self.accepted_by = None
        self.driver_license = None
        self.driver_connection = None
        self.accepted_at = None
        self.nearest_hospital = None

    def to_dict(self) -> dict:
        body = {
            **self.payload,
            "sosId": self.sos_id,
            "status": self.status,
            "timestamp": self.created_at.isoformat(),
        }
        if self.accepted_by is not None:
            body["acceptedBy"] = self.accepted_by
            body["driverLicense"] = self.driver_license
            body["driverSocketId"] = self.driver_connection
        if self.accepted_at is not None:
            body["acceptedAt"] = self.accepted_at.isoformat()
        if self.nearest_hospital is not None:
            body["nearestHospital"] = self.nearest_hospital.to_dict()
        if self.completed_at is not None:
            body["completedAt"] = self.completed_at.isoformat()
        return body


class RequestLedger:
    """sosId -> RequestRecord, guarded by a single lock.

    Callers only ever receive deep copies; mutation goes through
    ``transition`` so the status check and the change happen together.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._clock = clock
        self._records: Dict[str, RequestRecord] = {}
        self._lock = threading.Lock()

    def now(self) -> datetime:
        return self._clock()

    def submit(self, sos_id: str, payload: dict) -> RequestRecord:
        with self._lock:
            if sos_id in self._records:
                raise DuplicateRequest(f"SOS {sos_id} already exists", sos_id=sos_id)
            record = RequestRecord(
                sos_id=sos_id, payload=copy.deepcopy(payload), created_at=self._clock()
            )
            self._records[sos_id] = record
            return copy.deepcopy(record)

    def get(self, sos_id: str) -> RequestRecord:
        with self._lock:
            record = self._records.get(sos_id)
            if record is None:
                raise NotFound(f"SOS {sos_id} not found", sos_id=sos_id)
            return copy.deepcopy(record)

    def transition(
            self,
            sos_id: str,
            expected_status: Union[str, Iterable[str]],
            mutator: Callable[[RequestRecord], None]) -> RequestRecord:
        """Apply ``mutator`` if the record is in ``expected_status``.

        ``expected_status`` may be a single status or a collection of
        acceptable ones. Raises NotFound or InvalidTransition.
        """
        allowed = (expected_status,) if isinstance(expected_status, str) else tuple(expected_status)
        with self._lock:
            record = self._records.get(sos_id)
            if record is None:
                raise NotFound(f"SOS {sos_id} not found", sos_id=sos_id)
            if record.status not in allowed:
                raise InvalidTransition(
                    f"SOS {sos_id} is {record.status}, expected {' or '.join(allowed)}",
                    sos_id=sos_id,
                )
            mutator(record)
            return copy.deepcopy(record)

    def reopen_accepted_by(self, connection_id: str) -> List[RequestRecord]:
        """Revert every request accepted over ``connection_id`` to pending."""
        reopened = []
        with self._lock:
            for record in self._records.values():
                if record.status == ACCEPTED and record.driver_connection == connection_id:
                    record.reopen()
                    reopened.append(copy.deepcopy(record))
        return reopened

    def active(self) -> List[RequestRecord]:
        """Pending and accepted requests, oldest first."""
        with self._lock:
            return [
                copy.deepcopy(r) for r in self._records.values() if r.status != COMPLETED
            ]

    def sweep(self, max_age: Union[timedelta, float], now: Optional[datetime] = None) -> List[str]:
        """Evict every record created before ``now - max_age``, whatever its status."""
        if not isinstance(max_age, timedelta):
            max_age = timedelta(seconds=max_age)
        cutoff = (now or self._clock()) - max_age
        with self._lock:
            expired = [sid for sid, r in self._records.items() if r.created_at < cutoff]
            for sos_id in expired:
                del self._records[sos_id]
        return expired

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, sos_id) -> bool:
        with self._lock:
            return sos_id in self._records
