import pytest

from signal_engine.drift import DriftDetector
from signal_engine.errors import ArgumentError
from signal_engine.models import ActivityState, DriftPhase, NudgeConfig

RED = ActivityState.RED
AMBER = ActivityState.AMBER
GREEN = ActivityState.GREEN

TICK_MS = 5000


def make_detector(threshold=300_000, cooldown=600_000, **kwargs):
    config = NudgeConfig(first_nudge_threshold_ms=threshold, nudge_cooldown_ms=cooldown)
    return DriftDetector(config, clock=lambda: 0.0, **kwargs)


def run(detector, state, app, start, end):
    fired = []
    for now in range(start, end + 1, TICK_MS):
        event = detector.evaluate(state, app, now_ms=now)
        if event is not None:
            fired.append((now, event))
    return fired


def test_first_nudge_at_threshold_then_cooldown():
    detector = make_detector()
    fired = run(detector, RED, "Twitter", 0, 1_000_000)
    times = [now for now, _ in fired]
    assert times[0] == 300_000
    assert times[1] == 900_000
    assert len(times) == 2
    first = fired[0][1]
    assert first.current_app == "Twitter"
    assert first.drift_duration_ms == 300_000
    assert detector.nudge_count == 2


def test_phase_moves_through_nudged_and_rearms():
    detector = make_detector()
    assert detector.phase is DriftPhase.ON_TRACK
    detector.evaluate(RED, "Twitter", now_ms=0)
    assert detector.phase is DriftPhase.DRIFTING
    run(detector, RED, "Twitter", TICK_MS, 300_000)
    assert detector.phase is DriftPhase.NUDGED
    detector.evaluate(RED, "Twitter", now_ms=305_000)
    assert detector.phase is DriftPhase.DRIFTING
    detector.evaluate(GREEN, "Code", now_ms=310_000)
    assert detector.phase is DriftPhase.ON_TRACK


def test_green_resets_the_episode():
    detector = make_detector(cooldown=0)
    assert run(detector, RED, "Twitter", 0, 200_000) == []
    detector.evaluate(GREEN, "Code", now_ms=205_000)
    fired = run(detector, RED, "Twitter", 210_000, 600_000)
    assert fired[0][0] == 510_000


def test_back_on_track_clears_count_and_app():
    detector = make_detector(cooldown=60_000)
    fired = run(detector, RED, "Twitter", 0, 480_000)
    assert len(fired) == 4
    assert detector.get_drift_status().current_app == "Twitter"
    detector.evaluate(GREEN, "Code", now_ms=485_000)
    status = detector.get_drift_status()
    assert status.nudge_count == 0
    assert status.current_app == ""
    assert not status.is_drifting


def test_ended_episodes_add_up_to_daily_total():
    detector = make_detector()
    run(detector, RED, "Twitter", 0, 100_000)
    detector.evaluate(GREEN, "Code", now_ms=120_000)
    run(detector, AMBER, "Slack", 125_000, 175_000)
    status = detector.get_drift_status()
    assert status.drift_ms_today == 120_000 + 50_000
    detector.evaluate(GREEN, "Code", now_ms=180_000)
    assert detector.get_drift_status().drift_ms_today == 120_000 + 55_000


def test_new_day_zeroes_total_and_counts_from_midnight():
    detector = make_detector(cooldown=60_000)
    run(detector, RED, "Twitter", 0, 400_000)
    assert detector.nudge_count == 2
    detector.start_new_day()
    status = detector.get_drift_status()
    assert status.nudge_count == 0
    assert status.drift_ms_today == 0
    assert status.drift_duration_ms == 400_000
    detector.evaluate(GREEN, "Code", now_ms=410_000)
    assert detector.get_drift_status().drift_ms_today == 10_000


def test_amber_counts_as_drift():
    detector = make_detector()
    fired = run(detector, AMBER, "Slack", 0, 300_000)
    assert [now for now, _ in fired] == [300_000]


def test_snoozed_app_cannot_nudge_until_expiry():
    detector = make_detector()
    detector.snooze_app("Slack", 10, now_ms=0)
    fired = run(detector, AMBER, "slack", 0, 700_000)
    assert fired[0][0] == 600_000
    assert fired[0][1].drift_duration_ms == 600_000


def test_snooze_marks_phase_and_keeps_accumulating():
    detector = make_detector()
    detector.snooze_app("Slack", 10, now_ms=0)
    run(detector, AMBER, "Slack", 0, 400_000)
    status = detector.get_drift_status()
    assert status.phase is DriftPhase.SNOOZED
    assert status.is_drifting
    assert status.drift_duration_ms == 400_000


def test_snooze_only_affects_that_app():
    detector = make_detector()
    detector.snooze_app("Slack", 10, now_ms=0)
    fired = run(detector, RED, "Discord", 0, 300_000)
    assert [now for now, _ in fired] == [300_000]


def test_snooze_extends_but_never_shortens():
    detector = make_detector()
    detector.snooze_app("Slack", 10, now_ms=0)
    entry = detector.snooze_app("SLACK", 5, now_ms=0)
    assert entry.expires_at_ms == 600_000
    longer = detector.snooze_app("Slack", 20, now_ms=0)
    assert longer.expires_at_ms == 1_200_000
    assert len(detector.active_snoozes(now_ms=0)) == 1
    assert detector.active_snoozes(now_ms=1_200_000) == []


def test_snooze_rejects_bad_arguments():
    detector = make_detector()
    with pytest.raises(ArgumentError):
        detector.snooze_app("Slack", 0)
    with pytest.raises(ArgumentError):
        detector.snooze_app("  ", 5)


def test_forward_gap_resets_episode():
    detector = make_detector(max_tick_gap_ms=60_000)
    run(detector, RED, "Twitter", 0, 250_000)
    resume = 250_000 + 3_600_000
    fired = run(detector, RED, "Twitter", resume, resume + 400_000)
    assert fired[0][0] == resume + 300_000
    assert fired[0][1].drift_duration_ms == 300_000


def test_backward_jump_resets_episode():
    detector = make_detector()
    run(detector, RED, "Twitter", 100_000, 350_000)
    detector.evaluate(RED, "Twitter", now_ms=0)
    status = detector.get_drift_status()
    assert status.is_drifting
    assert status.drift_duration_ms == 0


def test_reset_clears_the_episode():
    detector = make_detector()
    run(detector, RED, "Twitter", 0, 200_000)
    detector.reset()
    status = detector.get_drift_status()
    assert not status.is_drifting
    assert status.phase is DriftPhase.ON_TRACK


def test_config_changes_apply_on_next_tick():
    detector = make_detector()
    run(detector, RED, "Twitter", 0, 100_000)
    detector.set_config(first_nudge_threshold_ms=60_000)
    event = detector.evaluate(RED, "Twitter", now_ms=105_000)
    assert event is not None
    assert detector.get_config().first_nudge_threshold_ms == 60_000


def test_notification_flags_do_not_change_the_state_machine():
    detector = make_detector()
    detector.set_config(show_system_notifications=False, ai_nudges_enabled=False)
    fired = run(detector, RED, "Twitter", 0, 300_000)
    assert len(fired) == 1


def test_set_config_validates():
    detector = make_detector()
    with pytest.raises(ArgumentError):
        detector.set_config(nudge_cooldown_ms=-1)
    with pytest.raises(ArgumentError):
        detector.set_config(poll_interval=5)
    with pytest.raises(ArgumentError):
        detector.set_config(ai_nudges_enabled="yes")
    assert detector.get_config().nudge_cooldown_ms == 600_000
