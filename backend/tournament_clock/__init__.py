import json

import click
from flask import Flask, current_app
from flask_cors import CORS
from flask_socketio import SocketIO

from config import Config

NAMESPACE = '/ws'

socketio = SocketIO(async_mode=None)


def _allowed_origins(flask_app):
    raw = flask_app.config.get('CORS_ORIGINS') or ''
    if isinstance(raw, (list, tuple)):
        return list(raw)
    if raw.strip() == '*':
        return '*'
    return [o.strip() for o in raw.split(',') if o.strip()]


def get_clock_service():
    return current_app.extensions['clock_service']


def ensure_scheduler(flask_app):
    """Start tick driver, corrector and pump once per app. No-op in TESTING."""
    if flask_app.config.get('TESTING') and not flask_app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return
    flask_app.extensions['clock_scheduler'].start()


def create_app(config_class=Config, wall_clock=None):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    allowed_origins = _allowed_origins(flask_app)

    CORS(flask_app, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from tournament_clock.services.clock import ClockService, ClockState
    from tournament_clock.services.clock.broadcast import Broadcaster
    from tournament_clock.services.clock.registry import ConnectionRegistry
    from tournament_clock.services.clock.scheduler import ClockScheduler
    from tournament_clock.services.clock.time_source import TimeCorrector, TimeSource

    cfg = flask_app.config
    testing = bool(cfg.get('TESTING'))
    time_source = TimeSource(wall_clock=wall_clock)
    registry = ConnectionRegistry()

    def _send(event, payload, sid):
        socketio.emit(event, payload, to=sid, namespace=NAMESPACE)

    def _disconnect(sid):
        socketio.server.disconnect(sid, namespace=NAMESPACE)

    broadcaster = Broadcaster(
        send=_send,
        disconnect=_disconnect,
        on_drop=registry.remove,
        queue_size=cfg.get('SUBSCRIBER_QUEUE_SIZE', 64),
        logger=flask_app.logger,
    )
    service = ClockService(
        time_source,
        broadcaster,
        registry=registry,
        initial_state=ClockState.from_config(cfg, now=time_source.now()),
        sync_policy=cfg.get('SYNC_SETTINGS_POLICY', 'seed'),
        # Tests read emitted events synchronously
        inline_delivery=testing,
        logger=flask_app.logger,
    )
    service.corrector = TimeCorrector(
        time_source,
        service.apply_time_correction,
        servers=[s for s in str(cfg.get('TIME_SYNC_SERVERS', '')).split(',') if s.strip()],
        timeout=float(cfg.get('TIME_SYNC_TIMEOUT_SEC', 5)),
        interval_sec=float(cfg.get('TIME_SYNC_INTERVAL_SEC', 1800)),
        drift_threshold_ms=int(cfg.get('TIME_SYNC_DRIFT_THRESHOLD_MS', 50)),
        logger=flask_app.logger,
    )
    scheduler = ClockScheduler(flask_app, service, socketio)
    flask_app.extensions['clock_service'] = service
    flask_app.extensions['clock_scheduler'] = scheduler

    # Import and register blueprints here
    from tournament_clock.main import main
    flask_app.register_blueprint(main)

    from tournament_clock.api.clock import clock
    flask_app.register_blueprint(clock, url_prefix='/api')

    # Register Socket.IO event handlers on the freshly initialized server
    from tournament_clock.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    @click.command('clock-status')
    def clock_status_command():
        """Prints the current clock snapshot."""
        click.echo(json.dumps(service.status(), indent=2))

    @click.command('clock-sync')
    @click.option('--server', 'servers', multiple=True, help='Reference time server (repeatable).')
    def clock_sync_command(servers):
        """Runs one time-correction cycle and prints the offset."""
        from tournament_clock.services.clock.time_source import TimeSyncFailed
        try:
            event = service.corrector.sync(servers or None)
        except TimeSyncFailed as exc:
            raise click.ClickException(f'Time sync failed: {exc}')
        click.echo(f'offset={event.offset}ms delay={event.delay}ms server={event.server}')

    flask_app.cli.add_command(clock_status_command)
    flask_app.cli.add_command(clock_sync_command)

    @flask_app.before_request
    def _ensure_scheduler():
        ensure_scheduler(flask_app)

    return flask_app
