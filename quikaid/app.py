"""QuikAid dispatch server: Socket.IO events, dashboard pages and health."""
import signal
import sys
from typing import Optional

from flask import Flask, current_app, jsonify, request, send_from_directory
from flask_socketio import SocketIO

from .amqp_setup import AMQPSetup
from .config import Settings
from .coordinator import DispatchCoordinator
from .reaper import ExpiryReaper
from .transport import SocketIOTransport

socketio = SocketIO()

PAGES = {
    "/": "index.html",
    "/login": "login.html",
    "/register": "registration.html",
    "/dashboard": "user-dashboard.html",
    "/driver": "ambulance-driver.html",
    "/hospital": "hospital-dashboard.html",
}


def _page_view(filename: str):
    def view():
        return send_from_directory(current_app.static_folder, filename)
    view.__name__ = "page_" + filename.split(".")[0].replace("-", "_")
    return view


def create_app(
        settings: Optional[Settings] = None,
        coordinator: Optional[DispatchCoordinator] = None,
        events: Optional[AMQPSetup] = None) -> Flask:
    """Create and configure the Flask application."""
    settings = settings or Settings()
    flask_app = Flask(__name__, static_folder=settings.public_dir, static_url_path="")
    flask_app.config["QUIKAID_SETTINGS"] = settings

    socketio.init_app(flask_app, async_mode="threading", cors_allowed_origins="*")
    if coordinator is None:
        coordinator = DispatchCoordinator(SocketIOTransport(socketio), events=events)
    flask_app.extensions["quikaid"] = coordinator

    for path, filename in PAGES.items():
        flask_app.add_url_rule(path, view_func=_page_view(filename))

    @flask_app.get("/health")
    def health():
        """Health check endpoint for Docker healthcheck."""
        return jsonify({
            "status": "ok",
            "service": "quikaid-dispatch",
            **coordinator.stats(),
        })

    @flask_app.get("/status")
    def status():
        """Check AMQP connection status."""
        ready = bool(coordinator.events and coordinator.events.is_connected())
        return jsonify(amqp_connected=ready), (200 if ready else 503)

    return flask_app


def _coordinator() -> DispatchCoordinator:
    return current_app.extensions["quikaid"]


@socketio.on("connect")
def on_connect(auth=None):
    # pylint: disable=unused-argument
    print(f"[SOCKET] New client connected: {request.sid}")


@socketio.on("disconnect")
def on_disconnect(reason=None):
    # pylint: disable=unused-argument
    print(f"[SOCKET] Client disconnected: {request.sid}")
    try:
        _coordinator().disconnect(request.sid)
    except Exception as disconnect_error:
        print(f"[SOCKET] Error during disconnect of {request.sid}: {disconnect_error}")


def _bind(event: str):
    def handler(payload=None):
        try:
            _coordinator().handle(event, request.sid, payload)
        except Exception as handler_error:
            print(f"[SOCKET] FAIL: Error processing {event} from {request.sid}: {handler_error}")
    handler.__name__ = f"on_{event}"
    socketio.on_event(event, handler)


for _event in DispatchCoordinator.EVENTS:
    _bind(_event)


def main():
    settings = Settings()

    events = None
    if settings.amqp_enabled:
        events = AMQPSetup(settings)
        try:
            events.connect()
        except Exception as amqp_error:
            print(f"[AMQP] Event feed unavailable, continuing without it: {amqp_error}")
    else:
        print("[AMQP] RABBITMQ_HOST not set; lifecycle event feed disabled")

    main_app = create_app(settings, events=events)
    reaper = ExpiryReaper(
        main_app.extensions["quikaid"],
        retention_seconds=settings.retention_seconds,
        interval_seconds=settings.sweep_interval_seconds,
    )
    if settings.start_reaper:
        reaper.start()

    def _graceful_shutdown(*_):
        print("Shutting down QuikAid dispatch server...")
        reaper.stop(timeout=2)
        if events is not None:
            try:
                events.close()
            except Exception as close_error:
                print(f"[AMQP] Error closing connection: {close_error}")
        sys.exit(0)

    signal.signal(signal.SIGTERM, _graceful_shutdown)
    signal.signal(signal.SIGINT, _graceful_shutdown)

    base = f"http://localhost:{settings.port}"
    print(f"QuikAid Emergency Server running at {base}")
    print(f"Open {base} to start")
    print(f"Login at {base}/login")
    print(f"Driver Dashboard at {base}/driver")
    print(f"Hospital Dashboard at {base}/hospital")

    # nosemgrep: python.flask.security.audit.app-run-param-config.avoid_app_run_with_bad_host
    socketio.run(
        main_app,
        host=settings.host,
        port=settings.port,
        debug=False,
        use_reloader=False,
        allow_unsafe_werkzeug=True,
    )


if __name__ == "__main__":
    main()
