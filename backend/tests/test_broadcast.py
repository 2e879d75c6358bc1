import queue

from tournament_clock.services.clock.broadcast import Broadcaster
from tournament_clock.services.clock.registry import ConnectionRegistry


class Recorder:
    def __init__(self, failing=()):
        self.sent = []
        self.disconnected = []
        self.failing = set(failing)

    def send(self, event, payload, sid):
        if sid in self.failing:
            raise ConnectionError(f"{sid} went away")
        self.sent.append((sid, event, payload))

    def disconnect(self, sid):
        self.disconnected.append(sid)

    def for_sid(self, sid):
        return [(event, payload) for s, event, payload in self.sent if s == sid]


def test_attach_sends_snapshot_only_to_new_subscriber():
    rec = Recorder()
    hub = Broadcaster(rec.send, rec.disconnect)
    hub.attach('a', ('status', {'n': 0}))
    hub.flush()
    hub.attach('b', ('status', {'n': 1}))
    hub.flush()
    assert rec.for_sid('a') == [('status', {'n': 0})]
    assert rec.for_sid('b') == [('status', {'n': 1})]


def test_publish_fans_out_in_order():
    rec = Recorder()
    hub = Broadcaster(rec.send, rec.disconnect)
    for sid in ('a', 'b', 'c'):
        hub.attach(sid, ('status', {'n': 0}))
    for n in range(1, 4):
        hub.publish('status', {'n': n})
    assert hub.flush() == 12
    for sid in ('a', 'b', 'c'):
        assert [p['n'] for _, p in rec.for_sid(sid)] == [0, 1, 2, 3]


def test_overflowing_subscriber_is_dropped_not_the_message():
    rec = Recorder()
    registry = ConnectionRegistry()
    registry.add('slow', 0)
    registry.add('fast', 0)
    hub = Broadcaster(rec.send, rec.disconnect, on_drop=registry.remove, queue_size=3)
    hub.attach('slow', ('status', {'n': 0}))
    hub.attach('fast', ('status', {'n': 0}))
    hub.publish('status', {'n': 1})
    hub.publish('status', {'n': 2})
    # 'fast' is drained; 'slow' keeps its backlog
    while True:
        try:
            hub._subscribers['fast'].outbox.get_nowait()
        except queue.Empty:
            break
    hub.publish('status', {'n': 3})
    hub.publish('status', {'n': 4})
    hub.flush()
    assert not hub.has_subscriber('slow')
    assert hub.has_subscriber('fast')
    assert [p['n'] for _, p in rec.for_sid('fast')] == [3, 4]
    assert rec.disconnected == ['slow']
    assert [c['sid'] for c in registry.to_list()] == ['fast']


def test_failing_send_drops_only_that_subscriber():
    rec = Recorder(failing={'gone'})
    hub = Broadcaster(rec.send, rec.disconnect)
    hub.attach('gone', ('status', {}))
    hub.attach('ok', ('status', {}))
    hub.publish('action', {'action': 'start'})
    hub.flush()
    assert hub.subscriber_count == 1
    assert rec.for_sid('ok') == [('status', {}), ('action', {'action': 'start'})]
    assert rec.disconnected == ['gone']


def test_detach_stops_delivery():
    rec = Recorder()
    hub = Broadcaster(rec.send, rec.disconnect)
    hub.attach('a', ('status', {}))
    hub.flush()
    assert hub.detach('a') is True
    hub.publish('status', {'n': 1})
    hub.flush()
    assert rec.for_sid('a') == [('status', {})]
    assert hub.detach('a') is False


def test_close_disconnects_everyone():
    rec = Recorder()
    hub = Broadcaster(rec.send, rec.disconnect)
    hub.attach('a', ('status', {}))
    hub.attach('b', ('status', {}))
    hub.close()
    assert sorted(rec.disconnected) == ['a', 'b']
    assert hub.subscriber_count == 0


def test_registry_identify_and_listing():
    registry = ConnectionRegistry()
    registry.add('x', 20, origin='http://arena.local')
    registry.add('y', 10)
    assert registry.identify('x', name='Mat 1', role='display').name == 'Mat 1'
    assert registry.identify('missing', name='n/a') is None
    listed = registry.to_list()
    assert [c['sid'] for c in listed] == ['y', 'x']
    assert listed[1]['role'] == 'display'
    registry.remove('x')
    assert len(registry) == 1


def test_failing_disconnect_still_unregisters_every_dropped_subscriber():
    registry = ConnectionRegistry()
    for sid in ('a', 'b', 'c'):
        registry.add(sid, 0)

    def send(event, payload, sid):
        if sid in ('a', 'b'):
            raise ConnectionError(f"{sid} went away")

    def disconnect(sid):
        raise RuntimeError(f"server already forgot {sid}")

    hub = Broadcaster(send, disconnect, on_drop=registry.remove)
    for sid in ('a', 'b', 'c'):
        hub.attach(sid, ('status', {}))
    hub.flush()
    assert [c['sid'] for c in registry.to_list()] == ['c']
    assert hub.subscriber_count == 1

    hub.close()
    assert hub.subscriber_count == 0
