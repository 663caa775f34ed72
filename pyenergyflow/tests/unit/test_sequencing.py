from pyenergyflow.sequencing import RequestSequencer, SingleFlight


def test_late_response_is_discarded():
    seq = RequestSequencer()
    first = seq.next("snapshot")
    second = seq.next("snapshot")
    assert seq.accept("snapshot", second)
    assert not seq.accept("snapshot", first)


def test_in_order_responses_are_applied():
    seq = RequestSequencer()
    assert seq.accept("snapshot", seq.next("snapshot"))
    assert seq.accept("snapshot", seq.next("snapshot"))
    assert seq.latest("snapshot") == 2


def test_channels_are_independent():
    seq = RequestSequencer()
    snapshot = seq.next("snapshot")
    history = seq.next("history")
    assert seq.accept("history", history)
    assert seq.accept("snapshot", snapshot)


def test_reset_invalidates_in_flight():
    seq = RequestSequencer()
    pending = seq.next("history")
    other = seq.next("snapshot")
    seq.reset("history")
    assert not seq.accept("history", pending)
    assert seq.accept("snapshot", other)
    assert seq.accept("history", seq.next("history"))


def test_reset_all_channels():
    seq = RequestSequencer()
    a = seq.next("a")
    b = seq.next("b")
    seq.reset()
    assert not seq.accept("a", a)
    assert not seq.accept("b", b)


def test_single_flight_skips_overlapping_tick():
    guard = SingleFlight()
    with guard.run("fast") as first:
        assert first
        assert guard.busy("fast")
        with guard.run("fast") as second:
            assert not second
        with guard.run("slow") as other:
            assert other
    assert not guard.busy("fast")


def test_single_flight_releases_on_error():
    guard = SingleFlight()
    try:
        with guard.run("fast"):
            raise RuntimeError("boom")
    except RuntimeError:
        pass
    assert not guard.busy("fast")
