import time

from flask import Blueprint, current_app, jsonify, request

from tournament_clock import get_clock_service
from tournament_clock.services.clock import IllegalTransition, InvalidCommand
from tournament_clock.services.clock.time_source import TimeSyncFailed


clock = Blueprint('clock', __name__)

_last_controller_action: dict[str, float] = {}


def _debounced(action: str) -> bool:
    try:
        debounce_ms = int(current_app.config.get('CONTROLLER_DEBOUNCE_MS', 0))
    except (TypeError, ValueError):
        debounce_ms = 0
    if debounce_ms <= 0:
        return False
    key = f"{action}:{request.remote_addr}"
    now = time.time() * 1000.0
    last = _last_controller_action.get(key, 0)
    if now - last < debounce_ms:
        return True
    for stale in [k for k, at in _last_controller_action.items() if now - at >= debounce_ms]:
        del _last_controller_action[stale]
    _last_controller_action[key] = now
    return False


def _run_command(name: str, payload=None):
    if _debounced(name):
        return jsonify({'success': False, 'message': 'debounced'}), 202
    try:
        result = get_clock_service().execute(name, payload)
    except InvalidCommand as exc:
        return jsonify({'success': False, 'error': str(exc)}), 400
    except IllegalTransition as exc:
        current_app.logger.info(f"[clock-reject] command={name} reason={exc}")
        return jsonify({'success': False, 'error': str(exc)}), 409
    body = {'success': True}
    if not result.applied:
        body['applied'] = False
    return jsonify(body)


def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidCommand('request body must be a JSON object')
    return data


@clock.route('/start', methods=['POST'])
def start():
    return _run_command('start')


@clock.route('/pause', methods=['POST'])
def pause():
    # Toggles pause/resume
    return _run_command('pause')


@clock.route('/reset', methods=['POST'])
def reset():
    return _run_command('reset')


@clock.route('/reset-time', methods=['POST'])
def reset_time():
    return _run_command('reset-time')


@clock.route('/reset-rounds', methods=['POST'])
def reset_rounds():
    return _run_command('reset-rounds')


@clock.route('/next-round', methods=['POST'])
def next_round():
    return _run_command('next-round')


@clock.route('/previous-round', methods=['POST'])
def previous_round():
    return _run_command('previous-round')


@clock.route('/adjust-time', methods=['POST'])
def adjust_time():
    return _run_command('adjust-time', _json_body())


@clock.route('/set-time', methods=['POST'])
def set_time():
    return _run_command('set-time', _json_body())


@clock.route('/set-rounds', methods=['POST'])
def set_rounds():
    return _run_command('set-rounds', _json_body())


@clock.route('/set-between-rounds', methods=['POST'])
def set_between_rounds():
    return _run_command('set-between-rounds', _json_body())


@clock.errorhandler(InvalidCommand)
def invalid_command(exc):
    return jsonify({'success': False, 'error': str(exc)}), 400


@clock.route('/status', methods=['GET'])
def status():
    fields = request.args.get('fields')
    requested = [f.strip() for f in fields.split(',') if f.strip()] if fields else None
    return jsonify(get_clock_service().status(requested))


@clock.route('/ntp-sync', methods=['GET', 'POST'])
def ntp_sync():
    """Force one time-correction cycle and report the resulting offset."""
    service = get_clock_service()
    server = request.args.get('server')
    try:
        event = service.corrector.sync([server] if server else None)
    except TimeSyncFailed as exc:
        return jsonify({
            'success': False,
            'error': 'NTP sync failed',
            'details': exc.errors,
            'offset': service.time_source.offset_ms,
            'healthy': service.corrector.healthy,
        }), 502
    return jsonify({
        'success': True,
        'offset': service.time_source.offset_ms,
        'measuredOffset': event.offset,
        'delay': event.delay,
        'applied': event.applied,
        'server': event.server,
        'lastSync': event.timestamp,
        'healthy': service.corrector.healthy,
    })


@clock.route('/health', methods=['GET'])
def health():
    service = get_clock_service()
    time_sync = service.corrector.status()
    return jsonify({
        'ok': True,
        'phase': service.state.phase.value,
        'configured': service.configured,
        'schedulerRunning': current_app.extensions['clock_scheduler'].running,
        'subscribers': service.broadcaster.subscriber_count,
        'timeSync': time_sync,
    })


@clock.route('/connections', methods=['GET'])
def connections():
    service = get_clock_service()
    return jsonify({'count': len(service.registry), 'connections': service.registry.to_list()})
