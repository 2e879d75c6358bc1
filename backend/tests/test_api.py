def status(client, **params):
    res = client.get('/api/status', query_string=params)
    assert res.status_code == 200
    return res.get_json()


def test_status_has_state_and_derived_fields(client, fake_clock):
    data = status(client)
    assert data['minutes'] == 5 and data['seconds'] == 0
    assert data['currentRound'] == 1
    assert data['totalRounds'] == 3
    assert data['phase'] == 'idle'
    assert data['isRunning'] is False
    assert data['serverTime'] == fake_clock()
    assert data['ntpOffset'] == 0
    assert data['api_version'] == '1.0.0'


def test_status_field_filter(client):
    data = status(client, fields='minutes, seconds,isRunning,bogus')
    assert data == {'minutes': 5, 'seconds': 0, 'isRunning': False}


def test_set_time_then_status_round_trip(client):
    res = client.post('/api/set-time', json={'minutes': 2, 'seconds': 45})
    assert res.get_json() == {'success': True}
    data = status(client)
    assert (data['minutes'], data['seconds']) == (2, 45)
    assert data['initialTime'] == {'minutes': 2, 'seconds': 45}


def test_set_time_rejects_out_of_range(client):
    res = client.post('/api/set-time', json={'minutes': 1, 'seconds': 75})
    assert res.status_code == 400
    assert res.get_json()['success'] is False
    assert status(client)['seconds'] == 0


def test_set_time_silently_ignored_while_running(client):
    client.post('/api/start')
    res = client.post('/api/set-time', json={'minutes': 1, 'seconds': 0})
    assert res.status_code == 200
    assert res.get_json() == {'success': True, 'applied': False}
    assert status(client)['initialTime'] == {'minutes': 5, 'seconds': 0}


def test_start_and_tick_counts_down(client, service, fake_clock):
    assert client.post('/api/start').get_json()['success'] is True
    fake_clock.advance(seconds=3)
    service.tick()
    data = status(client)
    assert data['isRunning'] is True
    assert (data['minutes'], data['seconds']) == (4, 57)
    assert (data['elapsedMinutes'], data['elapsedSeconds']) == (0, 3)


def test_pause_toggles_and_accounts(client, service, fake_clock):
    client.post('/api/start')
    client.post('/api/pause')
    data = status(client)
    assert data['isPaused'] is True
    assert data['phase'] == 'paused'
    fake_clock.advance(seconds=10)
    service.tick()
    assert status(client)['currentPauseDuration'] == 10
    client.post('/api/pause')
    data = status(client)
    assert data['phase'] == 'running'
    assert data['totalPausedTime'] == 10
    assert data['currentPauseDuration'] == 0


def test_pause_when_idle_is_rejected(client):
    res = client.post('/api/pause')
    assert res.status_code == 409
    assert res.get_json()['success'] is False


def test_round_navigation(client):
    assert client.post('/api/next-round').status_code == 200
    assert client.post('/api/next-round').status_code == 200
    assert status(client)['currentRound'] == 3
    assert client.post('/api/next-round').status_code == 409
    assert client.post('/api/previous-round').status_code == 200
    assert status(client)['currentRound'] == 2
    client.post('/api/reset-rounds')
    assert status(client)['currentRound'] == 1
    assert client.post('/api/previous-round').status_code == 409


def test_reset_time_keeps_round(client, service, fake_clock):
    client.post('/api/next-round')
    client.post('/api/start')
    fake_clock.advance(seconds=20)
    service.tick()
    client.post('/api/reset-time')
    data = status(client)
    assert data['currentRound'] == 2
    assert (data['minutes'], data['seconds']) == (5, 0)
    assert data['phase'] == 'idle'


def test_reset_restores_everything(client, service, fake_clock):
    client.post('/api/next-round')
    client.post('/api/start')
    fake_clock.advance(seconds=20)
    service.tick()
    client.post('/api/reset')
    data = status(client)
    assert data['currentRound'] == 1
    assert (data['minutes'], data['seconds']) == (5, 0)
    assert data['isRunning'] is False


def test_adjust_time(client):
    assert client.post('/api/adjust-time', json={'seconds': 30}).status_code == 200
    data = status(client)
    assert (data['minutes'], data['seconds']) == (5, 30)
    assert client.post('/api/adjust-time', json={'seconds': -1000}).status_code == 200
    assert (status(client)['minutes'], status(client)['seconds']) == (0, 0)


def test_adjust_time_while_running_is_rejected(client):
    client.post('/api/start')
    assert client.post('/api/adjust-time', json={'seconds': 30}).status_code == 409


def test_adjust_time_requires_seconds(client):
    res = client.post('/api/adjust-time', json={})
    assert res.status_code == 400


def test_non_object_body_is_rejected(client):
    res = client.post('/api/set-rounds', json=[1, 2])
    assert res.status_code == 400
    assert res.get_json()['success'] is False


def test_set_rounds_and_between_rounds(client):
    assert client.post('/api/set-rounds', json={'rounds': 2}).status_code == 200
    res = client.post('/api/set-between-rounds', json={'enabled': True, 'time': 5})
    assert res.status_code == 200
    data = status(client)
    assert data['totalRounds'] == 2
    assert data['betweenRoundsEnabled'] is True
    assert data['betweenRoundsTime'] == 5


def test_full_tournament_over_http(client, service, fake_clock):
    client.post('/api/set-time', json={'minutes': 0, 'seconds': 10})
    client.post('/api/set-rounds', json={'rounds': 2})
    client.post('/api/set-between-rounds', json={'enabled': True, 'time': 5})
    client.post('/api/start')
    for _ in range(10):
        fake_clock.advance(seconds=1)
        service.tick()
    data = status(client)
    assert data['isBetweenRounds'] is True
    assert (data['minutes'], data['seconds']) == (0, 0)
    for _ in range(5):
        fake_clock.advance(seconds=1)
        service.tick()
    data = status(client)
    assert data['phase'] == 'running'
    assert data['currentRound'] == 2
    assert (data['minutes'], data['seconds']) == (0, 10)
    for _ in range(10):
        fake_clock.advance(seconds=1)
        service.tick()
    data = status(client)
    assert data['phase'] == 'idle'
    assert (data['minutes'], data['seconds']) == (0, 0)


def test_clock_status_reports_iso_times(client, service, fake_clock):
    client.post('/api/start')
    first = client.get('/clock_status').get_json()
    assert first['timeStamp'] == '2026-01-01T00:00:00.000Z'
    assert first['endTime'] == '2026-01-01T00:05:00.000Z'
    client.post('/api/pause')
    fake_clock.advance(seconds=1)
    second = client.get('/clock_status').get_json()
    assert second['timeStamp'] > first['timeStamp']


def test_ntp_sync_applies_offset(client, service, monkeypatch, fake_clock):
    def fake_query(server, timeout=None):
        return fake_clock() + 1234

    monkeypatch.setattr(service.corrector, '_query', fake_query)
    res = client.get('/api/ntp-sync')
    body = res.get_json()
    assert res.status_code == 200
    assert body['success'] is True
    assert body['offset'] == 1234
    assert body['server'] == 'primary.test'
    assert status(client)['ntpOffset'] == 1234


def test_ntp_sync_uses_requested_server(client, service, monkeypatch, fake_clock):
    seen = []

    def fake_query(server, timeout=None):
        seen.append(server)
        return fake_clock()

    monkeypatch.setattr(service.corrector, '_query', fake_query)
    client.post('/api/ntp-sync?server=time.example.org')
    assert seen == ['time.example.org']


def test_ntp_sync_failure_reports_degraded_health(client, service, monkeypatch):
    def broken(server, timeout=None):
        raise OSError('NTP request timed out')

    monkeypatch.setattr(service.corrector, '_query', broken)
    res = client.get('/api/ntp-sync')
    assert res.status_code == 502
    assert res.get_json()['offset'] == 0
    health = client.get('/api/health').get_json()
    assert health['ok'] is True
    assert health['timeSync']['healthy'] is False
    assert health['timeSync']['errorCount'] == 1


def test_debounce_swallows_repeated_commands(flask_app, client):
    flask_app.config['CONTROLLER_DEBOUNCE_MS'] = 10_000
    assert client.post('/api/next-round').status_code == 200
    assert client.post('/api/next-round').status_code == 202
    assert status(client)['currentRound'] == 2


def test_health_reports_configuration_and_scheduler(client):
    health = client.get('/api/health').get_json()
    assert health['configured'] is False
    assert health['schedulerRunning'] is False
    client.post('/api/set-rounds', json={'rounds': 4})
    assert client.get('/api/health').get_json()['configured'] is True


def test_debounce_forgets_stale_entries(flask_app, client):
    from tournament_clock.api import clock as clock_api

    flask_app.config['CONTROLLER_DEBOUNCE_MS'] = 10_000
    clock_api._last_controller_action.clear()
    clock_api._last_controller_action['next-round:10.0.0.9'] = 0
    assert client.post('/api/next-round').status_code == 200
    assert list(clock_api._last_controller_action) == ['next-round:127.0.0.1']
    clock_api._last_controller_action.clear()
