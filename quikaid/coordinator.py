"""Dispatch coordinator: the SOS lifecycle state machine.

Every inbound event runs under one coordinator lock, so registrations,
acceptances, disconnects and reaper sweeps never interleave. Outbound
notifications are collected while the lock is held (from registry
snapshots) and delivered after it is released.
"""
import threading
from typing import Callable, Dict, List, Optional, Tuple

from .amqp_setup import AMQPSetup
from .errors import DispatchError, NotFound, RoleConflict
from .geo import nearest, parse_location
from .ledger import ACCEPTED, COMPLETED, PENDING, NearestHospital, RequestLedger
from .registry import DRIVER, HOSPITAL, ActorRegistry
from .schemas import (
    ArrivalReport,
    DriverRegistration,
    HospitalRegistration,
    SOSAcceptance,
    SOSRequest,
    parse,
)
from .transport import Outbound, Transport

FeedEvent = Tuple[str, dict]
Result = Tuple[List[Outbound], List[FeedEvent]]


def find_nearest_hospital(location, hospitals) -> Optional[NearestHospital]:
    """Closest hospital with known coordinates to a "lat,lng" location.

    ``hospitals`` is scanned in order and the first of equally distant
    hospitals wins.
    """
    origin = parse_location(location)
    if origin is None:
        return None
    hospital, distance = nearest(origin, ((h, h.point) for h in hospitals))
    if hospital is None:
        return None
    return NearestHospital(
        name=hospital.name,
        address=hospital.address,
        distance=round(distance, 2),
        connection_id=hospital.connection_id,
    )


class DispatchCoordinator:
    """Routes inbound events to registries and the ledger."""

    # inbound event -> (handler, failure reply)
    EVENTS = {
        "registerDriver": ("_register_driver", "registrationFailed"),
        "registerHospital": ("_register_hospital", "registrationFailed"),
        "sendSOS": ("_send_sos", "sosFailed"),
        "acceptSOS": ("_accept_sos", "sosAcceptFailed"),
        "patientArrived": ("_patient_arrived", "arrivalFailed"),
    }

    def __init__(
            self,
            transport: Transport,
            drivers: Optional[ActorRegistry] = None,
            hospitals: Optional[ActorRegistry] = None,
            ledger: Optional[RequestLedger] = None,
            events: Optional[AMQPSetup] = None):
        self.transport = transport
        self.drivers = drivers or ActorRegistry(DRIVER)
        self.hospitals = hospitals or ActorRegistry(HOSPITAL)
        self.ledger = ledger or RequestLedger()
        self.events = events
        self._lock = threading.RLock()

    # -- public entry points -------------------------------------------------

    def handle(self, event: str, connection_id: str, payload=None) -> List[Outbound]:
        """Process one inbound event and deliver its notifications."""
        if event not in self.EVENTS:
            print(f"[DISPATCH] IGNORED: unknown event '{event}' from {connection_id}")
            return []
        handler_name, failure_event = self.EVENTS[event]
        return self._run(getattr(self, handler_name), connection_id, payload, failure_event)

    def register_driver(self, connection_id, payload):
        return self.handle("registerDriver", connection_id, payload)

    def register_hospital(self, connection_id, payload):
        return self.handle("registerHospital", connection_id, payload)

    def send_sos(self, connection_id, payload):
        return self.handle("sendSOS", connection_id, payload)

    def accept_sos(self, connection_id, payload):
        return self.handle("acceptSOS", connection_id, payload)

    def patient_arrived(self, connection_id, payload):
        return self.handle("patientArrived", connection_id, payload)

    def disconnect(self, connection_id: str) -> List[Outbound]:
        """Forget a lost connection and reopen anything its driver held."""
        messages: List[Outbound] = []
        feed: List[FeedEvent] = []
        with self._lock:
            driver = self.drivers.remove(connection_id)
            if driver is not None:
                print(f"[DRIVER] Driver {driver.name} disconnected")
                messages.append(
                    Outbound("driverCountUpdate", {"count": self.drivers.count()})
                )

            hospital = self.hospitals.remove(connection_id)
            if hospital is not None:
                print(f"[HOSPITAL] Hospital {hospital.name} disconnected")

            reopened = self.ledger.reopen_accepted_by(connection_id)
            drivers = self.drivers.identities()
            for record in reopened:
                print(
                    f"[SOS] SOS {record.sos_id} returned to pending "
                    "due to driver disconnect"
                )
                body = record.to_dict()
                messages.extend(Outbound("receiveSOS", body, d) for d in drivers)
                feed.append((AMQPSetup.RK_SOS_REOPENED, body))
        self._flush(messages, feed)
        return messages

    def expire(self, max_age) -> List[str]:
        """Evict requests older than ``max_age`` regardless of status."""
        with self._lock:
            expired = self.ledger.sweep(max_age)
        for sos_id in expired:
            print(f"[REAPER] Cleaned up old SOS: {sos_id}")
        self._flush([], [
            (AMQPSetup.RK_SOS_EXPIRED, {"sosId": sos_id, "status": "expired"})
            for sos_id in expired
        ])
        return expired

    def stats(self) -> Dict[str, int]:
        return {
            "drivers": self.drivers.count(),
            "hospitals": self.hospitals.count(),
            "activeSOS": len(self.ledger.active()),
        }

    # -- event handlers (called with the lock held) --------------------------

    def _register_driver(self, connection_id, payload) -> Result:
        parse(DriverRegistration, payload)
        if connection_id in self.hospitals:
            raise RoleConflict("Connection is already registered as a hospital")
        driver = self.drivers.register(connection_id, payload)
        count = self.drivers.count()
        print(f"[DRIVER] Driver registered: {driver.name}")
        return [
            Outbound(
                "driverRegistered",
                {
                    "message": "Successfully registered as ambulance driver",
                    "driverCount": count,
                },
                connection_id,
            ),
            Outbound("driverCountUpdate", {"count": count}),
        ], []

    def _register_hospital(self, connection_id, payload) -> Result:
        parse(HospitalRegistration, payload)
        if connection_id in self.drivers:
            raise RoleConflict("Connection is already registered as a driver")
        hospital = self.hospitals.register(connection_id, payload)
        print(
            f"[HOSPITAL] Hospital registered: {hospital.name} "
            f"at location: {hospital.lat}, {hospital.lng}"
        )
        return [
            Outbound(
                "hospitalRegistered",
                {
                    "message": "Successfully registered as hospital",
                    "activeSOS": [r.to_dict() for r in self.ledger.active()],
                },
                connection_id,
            )
        ], []

    def _send_sos(self, connection_id, payload) -> Result:
        request = parse(SOSRequest, payload)
        record = self.ledger.submit(request.sos_id, payload)
        print(f"[SOS] SOS received: {record.sos_id} ({request.type or 'unspecified'})")
        if parse_location(record.location) is None:
            print(
                f"[SOS] SOS {record.sos_id} has no usable location "
                f"({record.location!r}); no hospital can be matched"
            )

        body = record.to_dict()
        messages = [Outbound("receiveSOS", body, d) for d in self.drivers.identities()]
        messages.extend(Outbound("newSOS", body, h) for h in self.hospitals.identities())
        messages.append(
            Outbound(
                "sosConfirmed",
                {"message": "SOS sent to ambulance drivers", "sosId": record.sos_id},
                connection_id,
            )
        )
        return messages, [(AMQPSetup.RK_SOS_SUBMITTED, body)]

    def _accept_sos(self, connection_id, payload) -> Result:
        acceptance = parse(SOSAcceptance, payload)
        sos_id = acceptance.sos_id
        driver = self.drivers.get(connection_id)
        if driver is None:
            raise NotFound("Only registered drivers can accept an SOS", sos_id=sos_id)
        hospitals = self.hospitals.all()

        def accept(record):
            record.status = ACCEPTED
            record.accepted_by = driver.name
            record.driver_license = driver.license
            record.driver_connection = connection_id
            record.accepted_at = self.ledger.now()
            record.nearest_hospital = find_nearest_hospital(record.location, hospitals)

        record = self.ledger.transition(sos_id, PENDING, accept)
        chosen = record.nearest_hospital
        chosen_body = chosen.to_dict() if chosen else None

        messages = [
            Outbound(
                "sosAccepted",
                {
                    "sosId": sos_id,
                    "message": "You accepted the SOS",
                    "nearestHospital": chosen_body,
                },
                connection_id,
            )
        ]
        if chosen is not None:
            messages.append(
                Outbound(
                    "incomingPatient",
                    {
                        "sosId": sos_id,
                        "patientName": record.payload.get("userName"),
                        "patientMobile": record.payload.get("userMobile"),
                        "driverName": driver.name,
                        "driverLicense": driver.license,
                        "eta": "On the way",
                        "distance": f"{chosen.distance:.2f} km",
                        "emergencyType": record.payload.get("type"),
                        "patientLocation": record.location,
                        "isNearestHospital": True,
                    },
                    chosen.connection_id,
                )
            )
            print(
                f"[HOSPITAL] Notifying {chosen.name}: Driver {driver.name} "
                f"bringing patient {record.user_name}"
            )

        # Every hospital, the chosen one included, learns the SOS is taken
        taken = {
            "sosId": sos_id,
            "driverName": driver.name,
            "patientName": record.user_name,
            "nearestHospital": chosen_body,
        }
        messages.extend(Outbound("sosAccepted", taken, h.connection_id) for h in hospitals)
        print(
            f"[SOS] SOS {sos_id} accepted by {driver.name}. "
            f"Going to {chosen.name if chosen else 'no known hospital'}"
        )
        return messages, [(AMQPSetup.RK_SOS_ACCEPTED, record.to_dict())]

    def _patient_arrived(self, connection_id, payload) -> Result:
        report = parse(ArrivalReport, payload)

        def complete(record):
            record.status = COMPLETED
            record.completed_at = self.ledger.now()

        # Arrival is best-effort from the driver, so pending is accepted too
        record = self.ledger.transition(report.sos_id, (PENDING, ACCEPTED), complete)
        chosen = record.nearest_hospital
        hospital_name = chosen.name if chosen and chosen.name else report.hospital
        body = {
            "sosId": record.sos_id,
            "hospital": hospital_name,
            "driverName": report.driver_name,
            "arrivalTime": record.completed_at.isoformat(),
        }
        print(f"[SOS] Patient for SOS {record.sos_id} arrived at {hospital_name}")
        messages = [
            Outbound("patientArrived", body, h) for h in self.hospitals.identities()
        ]
        return messages, [(AMQPSetup.RK_SOS_COMPLETED, record.to_dict())]

    # -- plumbing ------------------------------------------------------------

    def _run(self, handler: Callable[..., Result], connection_id, payload, failure_event):
        try:
            with self._lock:
                messages, feed = handler(connection_id, payload)
        except DispatchError as error:
            print(f"[DISPATCH] {failure_event} for {connection_id}: {error.message}")
            messages, feed = [Outbound(failure_event, error.to_dict(), connection_id)], []
        self._flush(messages, feed)
        return messages

    def _flush(self, messages: List[Outbound], feed: List[FeedEvent]):
        for message in messages:
            self.transport.deliver(message)
        if self.events is not None:
            for routing_key, body in feed:
                self.events.publish_sos_event(routing_key, body)
