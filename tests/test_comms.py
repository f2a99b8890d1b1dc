import comms


def assistant_call(name, arguments, ts=1000):
    return {
        "type": "message",
        "timestamp": ts,
        "message": {
            "role": "assistant",
            "content": [{"type": "toolCall", "name": name, "arguments": arguments}],
        },
    }


def tool_result(tool_name, details, ts=2000):
    return {
        "type": "message",
        "timestamp": ts,
        "message": {"role": "toolResult", "toolName": tool_name, "details": details},
    }


def test_spawn_call_becomes_spawn_request():
    record = {
        "type": "message",
        "timestamp": 1000,
        "message": {
            "role": "assistant",
            "content": [
                {"type": "toolCall", "name": "sessions_spawn", "arguments": {"agentId": "ops", "task": "build report"}}
            ],
        },
    }

    events = comms.extract_events(record, "main")

    assert len(events) == 1
    row = events[0].to_dict()
    assert row["ts"] == 1000
    assert row["fromAgent"] == "main"
    assert row["toAgent"] == "ops"
    assert row["kind"] == "spawn_request"
    assert row["excerpt"] == "build report"
    assert row["event"] == "agent.spawn"
    assert row["action"] == "sessions_spawn"


def test_spawn_target_falls_back_to_label_then_subagent():
    labelled = comms.extract_events(assistant_call("sessions_spawn", {"label": "researcher", "task": "t"}), "main")
    assert labelled[0].to_agent == "researcher"

    anonymous = comms.extract_events(assistant_call("sessions_spawn", {"task": "t"}), "main")
    assert anonymous[0].to_agent == "subagent"


def test_send_call_becomes_send_request():
    events = comms.extract_events(
        assistant_call("sessions_send", {"sessionKey": "agent:ops:main", "message": "status?"}),
        "comms",
    )
    assert events[0].kind == comms.SEND_REQUEST
    assert events[0].to_agent == "agent:ops:main"
    assert events[0].excerpt == "status?"

    no_target = comms.extract_events(assistant_call("sessions_send", {"message": "hi"}), "comms")
    assert no_target[0].to_agent == "?"


def test_long_task_is_truncated_to_200_characters():
    events = comms.extract_events(assistant_call("sessions_spawn", {"agentId": "ops", "task": "x" * 500}), "main")
    assert len(events[0].excerpt) == 200
    assert comms.truncate_excerpt(None) == ""
    assert comms.truncate_excerpt(12345, limit=3) == "123"


def test_each_matching_tool_call_block_yields_an_event():
    record = {
        "type": "message",
        "timestamp": 5,
        "message": {
            "role": "assistant",
            "content": [
                {"type": "text", "text": "delegating"},
                {"type": "toolCall", "name": "sessions_spawn", "arguments": {"agentId": "ops", "task": "a"}},
                {"type": "toolCall", "name": "read_file", "arguments": {"path": "x"}},
                {"type": "toolCall", "name": "sessions_send", "arguments": {"label": "architect", "message": "b"}},
            ],
        },
    }
    kinds = [e.kind for e in comms.extract_events(record, "main")]
    assert kinds == ["spawn_request", "send_request"]


def test_successful_results_carry_identifiers():
    spawn_ok = comms.extract_events(
        tool_result("sessions_spawn", {"status": "accepted", "runId": "r1", "childSessionKey": "agent:ops:sub:1"}),
        "main",
    )[0]
    assert spawn_ok.kind == comms.SPAWN_OK
    assert spawn_ok.details["runId"] == "r1"
    assert spawn_ok.details["childSessionKey"] == "agent:ops:sub:1"
    assert spawn_ok.to_dict()["event"] == "agent.spawn_ok"

    send_ok = comms.extract_events(tool_result("sessions_send", {"runId": "r2"}), "main")[0]
    assert send_ok.kind == comms.SEND_OK
    assert send_ok.details == {"status": "unknown", "runId": "r2"}


def test_error_status_wins_for_either_tool():
    for tool in ("sessions_send", "sessions_spawn"):
        for status in ("error", "forbidden"):
            event = comms.extract_events(tool_result(tool, {"status": status, "error": "denied"}), "ops")[0]
            assert event.kind == comms.ERROR
            assert event.details["error"] == "denied"
            assert event.excerpt == "denied"

    no_text = comms.extract_events(tool_result("sessions_send", {"status": "error"}), "ops")[0]
    assert no_text.details["error"] == "unknown error"


def test_unrelated_records_are_ignored():
    assert comms.extract_events(assistant_call("exec", {"cmd": "ls"}), "main") == []
    assert comms.extract_events(tool_result("exec", {"status": "error"}), "main") == []
    assert comms.extract_events({"type": "message", "message": {"role": "user", "content": "hi"}}, "main") == []
    assert comms.extract_events({"type": "session", "id": "abc"}, "main") == []
    assert comms.extract_events({"type": "message", "message": "bad"}, "main") == []
    assert comms.extract_events({"type": "message", "message": {"role": "assistant", "content": "text"}}, "main") == []
    assert comms.extract_events("not a dict", "main") == []


def test_from_dict_round_trips_serialized_event():
    event = comms.extract_events(assistant_call("sessions_spawn", {"agentId": "ops", "task": "t", "model": "m"}), "main")[0]
    assert comms.CanonicalEvent.from_dict(event.to_dict()) == event


def test_from_dict_accepts_legacy_comms_rows():
    wrapped = {
        "timestamp": 1000,
        "from": "main",
        "to": "ops",
        "message": "do it",
        "status": "sent",
        "event": "agent.spawn",
        "details": {"ts": 1000, "fromAgent": "main", "toAgent": "ops", "action": "sessions_spawn", "event": "agent.spawn", "task": "do it"},
    }
    event = comms.CanonicalEvent.from_dict(wrapped)
    assert event.kind == comms.SPAWN_REQUEST
    assert event.to_agent == "ops"
    assert event.excerpt == "do it"

    failed = comms.CanonicalEvent.from_dict(
        {"ts": 3, "fromAgent": "ops", "event": "agent.error", "status": "forbidden", "error": "nope"}
    )
    assert failed.kind == comms.ERROR
    assert failed.details == {"status": "forbidden", "error": "nope"}
    assert failed.excerpt == "nope"

    manual = comms.CanonicalEvent.from_dict({"timestamp": "2026-01-01T00:00:00Z", "from": "ops", "to": "main", "message": "hello"})
    assert manual.kind == comms.SEND_REQUEST
    assert manual.ts == "2026-01-01T00:00:00Z"

    assert comms.CanonicalEvent.from_dict({"fromAgent": "x", "event": "agent.unknown"}) is None
    assert comms.CanonicalEvent.from_dict({"nothing": True}) is None
    assert comms.CanonicalEvent.from_dict([]) is None


def test_manual_event_defaults_status_and_timestamp():
    event = comms.manual_event("main", "ops", "ping")
    assert event.kind == comms.SEND_REQUEST
    assert event.details["status"] == "sent"
    assert event.ts.endswith("Z")
