from datetime import datetime, timezone

from flask import Blueprint, jsonify

from tournament_clock import get_clock_service

main = Blueprint('main', __name__)


def _iso(ms):
    return datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


@main.route('/')
def index():
    return jsonify({'message': 'Tournament clock server', 'status': '/api/status', 'socket': '/ws'})


@main.route('/clock_status')
def clock_status():
    """Compact status for display integrations: when the phase ends and when this was read."""
    status = get_clock_service().snapshot()
    now = status['serverTime']
    end = status['phaseEndsAt']
    if end is None:
        end = now + (status['minutes'] * 60 + status['seconds']) * 1000
    return jsonify({
        'phase': status['phase'],
        'currentRound': status['currentRound'],
        'totalRounds': status['totalRounds'],
        'minutes': status['minutes'],
        'seconds': status['seconds'],
        'endTime': _iso(end),
        'timeStamp': _iso(now),
    })
