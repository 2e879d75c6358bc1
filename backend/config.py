import os


def _env_bool(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    # Comma separated; shared by CORS and Socket.IO
    CORS_ORIGINS = os.environ.get(
        'CORS_ORIGINS',
        'http://localhost:5173,http://127.0.0.1:5173,http://localhost:8080,http://127.0.0.1:8080',
    )
    # Initial clock configuration
    DEFAULT_ROUND_MINUTES = int(os.environ.get('DEFAULT_ROUND_MINUTES', '5'))
    DEFAULT_ROUND_SECONDS = int(os.environ.get('DEFAULT_ROUND_SECONDS', '0'))
    DEFAULT_TOTAL_ROUNDS = int(os.environ.get('DEFAULT_TOTAL_ROUNDS', '3'))
    BETWEEN_ROUNDS_ENABLED = _env_bool('BETWEEN_ROUNDS_ENABLED', False)
    BETWEEN_ROUNDS_SEC = int(os.environ.get('BETWEEN_ROUNDS_SEC', '60'))
    # Tick driver cadence (seconds)
    TICK_INTERVAL_SEC = float(os.environ.get('TICK_INTERVAL_SEC', '1.0'))
    # Reference time correction
    TIME_SYNC_ENABLED = _env_bool('TIME_SYNC_ENABLED', True)
    TIME_SYNC_INTERVAL_SEC = int(os.environ.get('TIME_SYNC_INTERVAL_SEC', '1800'))
    TIME_SYNC_SERVERS = os.environ.get('TIME_SYNC_SERVERS', 'time.google.com,pool.ntp.org')
    TIME_SYNC_TIMEOUT_SEC = float(os.environ.get('TIME_SYNC_TIMEOUT_SEC', '5'))
    TIME_SYNC_DRIFT_THRESHOLD_MS = int(os.environ.get('TIME_SYNC_DRIFT_THRESHOLD_MS', '50'))
    # Broadcast fan-out
    SUBSCRIBER_QUEUE_SIZE = int(os.environ.get('SUBSCRIBER_QUEUE_SIZE', '64'))
    BROADCAST_PUMP_INTERVAL_SEC = float(os.environ.get('BROADCAST_PUMP_INTERVAL_SEC', '0.02'))
    # 'seed' applies client sync-settings only while the server is unconfigured; 'overwrite' always applies
    SYNC_SETTINGS_POLICY = os.environ.get('SYNC_SETTINGS_POLICY', 'seed')
    # Optional: debounce controller actions (ms). 0 disables.
    CONTROLLER_DEBOUNCE_MS = int(os.environ.get('CONTROLLER_DEBOUNCE_MS', '0'))
    # Optional: heartbeat interval for tick driver logs (sec). 0 disables.
    TIMER_HEARTBEAT_SEC = int(os.environ.get('TIMER_HEARTBEAT_SEC', '0'))
