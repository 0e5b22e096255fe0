from dtnchat.dispatcher import RawText
from dtnchat.endpoint import parse
from dtnchat.session import SessionState


def _session() -> tuple[SessionState, list]:
    sent: list = []
    return SessionState(local_endpoint=parse("node1"), enqueue=sent.append), sent


def test_join_always_subscribes() -> None:
    s, sent = _session()
    s.join(parse("group1"))
    s.join(parse("group1"))
    assert sent == [RawText("/subscribe dtn://group1/sms")] * 2
    assert s.groups == {"group1"}
    assert s.subscribed_endpoints == {"group1"}


def test_join_own_node_is_allowed() -> None:
    s, sent = _session()
    s.join(parse("node1"))
    assert sent == [RawText("/subscribe dtn://node1/sms")]


def test_leave_local_node_is_a_no_op() -> None:
    s, sent = _session()
    s.join(parse("node1"))
    sent.clear()
    assert s.leave(parse("node1")) is False
    assert s.leave(parse("dtn://node1/other")) is False
    assert sent == []
    assert "node1" in s.groups


def test_leave_other_always_unsubscribes() -> None:
    s, sent = _session()
    assert s.leave(parse("stranger")) is True
    s.join(parse("group1"))
    assert s.leave(parse("group1")) is True
    assert sent == [
        RawText("/unsubscribe dtn://stranger/sms"),
        RawText("/subscribe dtn://group1/sms"),
        RawText("/unsubscribe dtn://group1/sms"),
    ]
    assert s.groups == set()


def test_handshake_flags_and_query() -> None:
    s, _ = _session()
    assert not s.mode_negotiated and not s.subscribed
    s.mark_mode_negotiated()
    s.mark_subscribed()
    assert s.mode_negotiated and s.subscribed
    s.set_query(parse("bob"))
    assert s.active_query == parse("bob")
    s.set_query(None)
    assert s.active_query is None
