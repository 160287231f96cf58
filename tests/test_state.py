from lanplay_launcher.state import ActivityClock, ShutdownReason, ShutdownState


class TestActivityClock:

    def test_starts_with_activity_now_and_no_heartbeat(self, fake_time):
        clock = ActivityClock(now=fake_time)
        assert clock.last_activity_at == fake_time.value
        assert clock.ever_received_heartbeat is False
        assert clock.since_heartbeat() is None

    def test_touch_advances_activity(self, fake_time):
        clock = ActivityClock(now=fake_time)
        fake_time.advance(12)
        clock.touch()
        assert clock.last_activity_at == fake_time.value
        assert clock.since_activity() == 0

    def test_activity_never_moves_backward(self, fake_time):
        clock = ActivityClock(now=fake_time)
        fake_time.advance(50)
        clock.touch()
        high = clock.last_activity_at
        fake_time.advance(-30)
        clock.touch()
        clock.record_heartbeat()
        assert clock.last_activity_at == high

    def test_heartbeat_sets_both_watermarks(self, fake_time):
        clock = ActivityClock(now=fake_time)
        fake_time.advance(7)
        clock.record_heartbeat()
        assert clock.ever_received_heartbeat is True
        assert clock.last_heartbeat_at == fake_time.value
        assert clock.last_activity_at == fake_time.value
        fake_time.advance(3)
        assert clock.since_heartbeat() == 3


class TestShutdownState:

    def test_begins_exactly_once(self):
        state = ShutdownState()
        assert state.begin(ShutdownReason.NO_HEARTBEAT) is True
        assert state.begin(ShutdownReason.SIGNAL) is False
        assert state.requested is True
        assert state.reason is ShutdownReason.NO_HEARTBEAT

    def test_wire_reasons(self):
        assert ShutdownReason.NO_HEARTBEAT.wire == "timeout"
        assert ShutdownReason.NO_ACTIVITY.wire == "timeout"
        assert ShutdownReason.SIGNAL.wire == "timeout"


class TestContext:

    def test_status_payload(self, context):
        assert context.status_payload() == {
            "running": False,
            "relay": "example.com:11451",
            "platform": "linux",
            "version": "0.2.3",
        }
        context.process.running = True
        assert context.status_payload()["running"] is True

    def test_process_args_derived_from_relay(self, context):
        assert context.process.args == ["--relay-server-addr", "example.com:11451"]
        assert context.process.alive is False
        assert context.connections == set()
