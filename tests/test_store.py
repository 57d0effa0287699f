from __future__ import annotations

import pytest
from conftest import persona_payload

from meeting_room.errors import PersonaNotFoundError, RoomNotFoundError
from meeting_room.states import MessageRole, RoomStatus


def test_create_room_seats_personas_pending(store, add_personas):
    ids = add_personas("Ada Obi", "Ben Kim")
    room = store.create_room("Sync", "s", "p", ids + ["ada"], user_role="facilitator", duration_minutes=15)
    assert room.room_status is RoomStatus.PENDING
    assert room.user_role == "facilitator"
    assert room.turn_count == 0
    assert sorted(store.active_persona_ids(room.id)) == ["ada", "ben"]


def test_create_room_validates_personas(store, add_personas):
    with pytest.raises(ValueError):
        store.create_room("Sync", "s", "p", [])
    add_personas("Ada Obi")
    with pytest.raises(PersonaNotFoundError):
        store.create_room("Sync", "s", "p", ["ada", "ghost"])
    with pytest.raises(ValueError):
        store.create_room("Sync", "s", "p", ["ada"], user_role="spectator")


def test_require_room_missing(store):
    with pytest.raises(RoomNotFoundError):
        store.require_room("missing")


def test_message_sequence_and_recent_window(store, make_room):
    room = make_room("Ada Obi")
    for i in range(5):
        store.append_message(room.id, MessageRole.SYSTEM, f"note {i}")
    all_msgs = store.list_messages(room.id)
    assert [m.content for m in all_msgs] == [f"note {i}" for i in range(5)]
    assert [m.id for m in all_msgs] == sorted(m.id for m in all_msgs)
    assert [m.content for m in store.list_messages(room.id, limit=2)] == ["note 3", "note 4"]


def test_append_message_role_rules(store, make_room):
    room = make_room("Ada Obi")
    with pytest.raises(ValueError):
        store.append_message(room.id, MessageRole.SYSTEM, "x", persona_id="ada")
    with pytest.raises(ValueError):
        store.append_message(room.id, MessageRole.MODERATOR, "x", inner_thought="hmm")
    with pytest.raises(ValueError):
        store.append_message(room.id, MessageRole.PERSONA, "x")
    msg = store.append_message(room.id, "persona", "hello", persona_id="ada", inner_thought="hmm")
    assert msg.to_dict()["role"] == "persona"
    assert msg.to_dict()["inner_thought"] == "hmm"


def test_append_turn_compare_and_increment(store, make_room):
    room = make_room("Ada Obi")
    first = store.append_turn(room.id, 0, "ada", "one")
    assert first is not None
    assert store.append_turn(room.id, 0, "ada", "stale") is None
    assert store.require_room(room.id).turn_count == 1
    assert [m.content for m in store.list_messages(room.id)] == ["one"]


def test_transition_room_is_conditional(store, make_room):
    room = make_room("Ada Obi")
    assert store.transition_room(room.id, [RoomStatus.ACTIVE], status=RoomStatus.PAUSED) is False
    assert store.require_room(room.id).room_status is RoomStatus.PENDING
    assert store.transition_room(room.id, [RoomStatus.PENDING], status=RoomStatus.ACTIVE) is True
    assert store.require_room(room.id).room_status is RoomStatus.ACTIVE


def test_removed_participants_keep_names_but_lose_seats(store, make_room):
    room = make_room("Ada Obi", "Ben Kim")
    store.append_turn(room.id, 0, "ben", "hi")
    assert store.remove_participant(room.id, "ben") is True
    assert store.remove_participant(room.id, "ben") is False
    assert store.active_persona_ids(room.id) == ["ada"]
    assert store.persona_names(room.id) == {"ada": "Ada Obi", "ben": "Ben Kim"}
    assert store.last_persona_message(room.id, ["ada"]) is None
    assert store.last_persona_message(room.id, ["ada", "ben"]).content == "hi"


def test_persona_round_trip_keeps_unknown_fields(store):
    payload = persona_payload("Ada", "Obi")
    payload["identity"]["favouriteColour"] = "teal"
    rec = store.add_persona(**payload, source_export={"raw": True})
    loaded = store.get_persona(rec.id)
    assert loaded.identity["favouriteColour"] == "teal"
    assert loaded.source_export == {"raw": True}
    assert set(store.get_personas([rec.id, "nope"])) == {rec.id}


def test_append_turn_refused_once_room_ended(store, make_room):
    room = make_room("Ada Obi")
    store.transition_room(room.id, [RoomStatus.PENDING], status=RoomStatus.PAUSED)
    assert store.append_turn(room.id, 0, "ada", "paused rooms still take in-flight turns") is not None
    store.transition_room(room.id, [RoomStatus.PAUSED], status=RoomStatus.ENDED)
    assert store.append_turn(room.id, 1, "ada", "too late") is None
    assert store.require_room(room.id).turn_count == 1


def test_persona_names_tolerate_odd_identities(store):
    store.add_persona({"firstName": 7, "lastName": ["Obi"], "hobbies": [1, 2]}, persona_id="ada")
    store.add_persona({}, persona_id="ben")
    room = store.create_room("Sync", "s", "p", ["ada", "ben"])
    assert store.persona_names(room.id) == {"ada": '7 ["Obi"]', "ben": "Unknown"}
