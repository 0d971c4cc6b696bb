import pytest

from synpack.controller import ProbeOutcome, ProbeState
from synpack.stats import RttAggregator, Statistics, format_summary


def _matched(seconds):
    return ProbeOutcome(ProbeState.MATCHED, sent_at=0.0, elapsed=seconds)


def _lost():
    return ProbeOutcome(ProbeState.TIMED_OUT, sent_at=0.0)


def test_summary_over_mixed_outcomes():
    agg = RttAggregator()
    for outcome in [_matched(0.010), _lost(), _matched(0.020), _lost(),
                    _matched(0.030)]:
        agg.record(outcome)

    stats = agg.summary()
    assert stats.transmitted == 5
    assert stats.received == 3
    assert stats.loss_percent == pytest.approx(40.0)
    assert stats.min == pytest.approx(0.010)
    assert stats.avg == pytest.approx(0.020)
    assert stats.max == pytest.approx(0.030)


def test_summary_with_no_replies():
    agg = RttAggregator()
    for _ in range(4):
        agg.record(_lost())

    stats = agg.summary()
    assert stats == Statistics(4, 0, 100.0, 0.0, 0.0, 0.0)


def test_summary_before_any_probe():
    stats = RttAggregator().summary()
    assert stats.transmitted == 0
    assert stats.loss_percent == 0.0


def test_summary_is_recomputed_from_history():
    agg = RttAggregator()
    agg.record(_matched(0.050))
    assert agg.summary().max == pytest.approx(0.050)

    agg.record(_matched(0.010))
    stats = agg.summary()
    assert stats.min == pytest.approx(0.010)
    assert stats.avg == pytest.approx(0.030)
    assert len(agg.outcomes) == 2


def test_cancelled_probe_is_rejected():
    with pytest.raises(ValueError):
        RttAggregator().record(ProbeOutcome(ProbeState.CANCELLED))


def test_format_summary():
    text = format_summary("example.com",
                          Statistics(5, 3, 40.0, 0.010, 0.020, 0.0305))
    assert text.splitlines() == [
        "--- example.com synpack statistics ---",
        "5 packets transmitted, 3 packets received, 40.00% packet loss",
        "round-trip min/avg/max = 10.00/20.00/30.50 ms",
    ]
