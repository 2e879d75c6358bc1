from flask import current_app, request
from flask_socketio import emit

from tournament_clock import NAMESPACE, ensure_scheduler, get_clock_service, socketio
from tournament_clock.services.clock import InvalidCommand


def _get_sid() -> str:
    # request.sid exists in Socket.IO context
    return request.sid  # type: ignore[attr-defined]


def handle_connect():
    """Attach the client as a subscriber; it receives one ``status`` snapshot."""
    ensure_scheduler(current_app._get_current_object())
    get_clock_service().attach(
        _get_sid(),
        origin=request.headers.get('Origin'),
        remote_addr=request.remote_addr,
        user_agent=request.headers.get('User-Agent'),
    )


def handle_disconnect(*args):
    get_clock_service().detach(_get_sid())


def handle_sync_settings(data):
    if not isinstance(data, dict):
        emit('error', {'message': 'sync-settings payload must be an object'})
        return
    try:
        result = get_clock_service().sync_settings(data)
    except InvalidCommand as exc:
        emit('error', {'message': str(exc), 'event': 'sync-settings'})
        return
    current_app.logger.info(f"[sync-settings] sid={_get_sid()} applied={result.applied}")


def handle_identify(data):
    data = data if isinstance(data, dict) else {}
    connection = get_clock_service().registry.identify(_get_sid(), name=data.get('name'), role=data.get('role'))
    if connection is None:
        emit('error', {'message': 'not attached'})
        return
    emit('identified', connection.to_dict())


def handle_ping(data=None):
    service = get_clock_service()
    emit('pong', {'data': data, 'serverTime': service.time_source.now(), 'ntpOffset': service.time_source.offset_ms})


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on namespace '/ws'."""
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=NAMESPACE)
    socketio.on_event('sync-settings', handle_sync_settings, namespace=NAMESPACE)
    socketio.on_event('identify', handle_identify, namespace=NAMESPACE)
    socketio.on_event('ping', handle_ping, namespace=NAMESPACE)
