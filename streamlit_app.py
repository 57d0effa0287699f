from __future__ import annotations

import asyncio
import json
import time
from pathlib import Path

import streamlit as st
from loguru import logger

from meeting_room.config import get_settings
from meeting_room.llm import LangChainCompletionProvider
from meeting_room.manager import MeetingRoomManager
from meeting_room.states import Action, MessageRole, RoomStatus, UserRole
from meeting_room.store import RoomStore


ROOT = Path(__file__).resolve().parent
GENERATED_DIR = ROOT / "generated_personas"

ROLE_LABELS = {
    MessageRole.SYSTEM.value: "📢 System",
    MessageRole.MODERATOR.value: "🎯 Moderator",
    MessageRole.FACILITATOR.value: "🧭 Facilitator",
}


@st.cache_resource
def get_store() -> RoomStore:
    store = RoomStore(get_settings().database_url)
    store.create_all()
    return store


@st.cache_resource
def get_manager() -> MeetingRoomManager:
    return MeetingRoomManager(get_store(), LangChainCompletionProvider())


def list_personas() -> list[str]:
    if not GENERATED_DIR.exists():
        return []
    return sorted([p.name for p in GENERATED_DIR.glob("*.json")])


def import_persona(name: str) -> str:
    obj = json.loads((GENERATED_DIR / name).read_text(encoding="utf-8"))
    store = get_store()
    if obj.get("id") and store.get_persona(obj["id"]) is not None:
        return obj["id"]
    rec = store.add_persona(
        obj.get("identity") or {},
        obj.get("psychology"),
        obj.get("backstory"),
        source_export=obj,
        persona_id=obj.get("id"),
    )
    return rec.id


def act(action: Action, **payload) -> None:
    result = asyncio.run(get_manager().handle_action(st.session_state["room_id"], action, payload))
    if not result.ok and not result.ended:
        st.session_state["_last_error"] = result.error
    elif result.ended:
        st.session_state["_last_error"] = None
        st.session_state["_auto"] = False
    else:
        st.session_state["_last_error"] = None


st.set_page_config(page_title="Persona Meeting Room", page_icon="🗣️", layout="wide")
st.sidebar.title("Meeting Room – Setup")

files = list_personas()
if not files:
    st.sidebar.warning("No persona JSONs in generated_personas/. Run scripts/generate_personas.py first.")

with st.sidebar.form("create_room"):
    name = st.text_input("Room name", value="Product review")
    scenario = st.text_area("Scenario", height=100)
    purpose = st.text_area("Purpose", height=80)
    chosen = st.multiselect("Personas", files, default=files[:2])
    role = st.selectbox("Your role", [r.value for r in UserRole], index=1)
    duration = st.slider("Duration (simulated minutes)", min_value=5, max_value=120, value=30, step=5)
    create_btn = st.form_submit_button("Create Room", type="primary")

if create_btn:
    if not chosen:
        st.sidebar.error("Pick at least one persona")
        st.stop()
    ids = [import_persona(f) for f in chosen]
    room = get_store().create_room(name, scenario, purpose, ids, user_role=role, duration_minutes=duration)
    st.session_state["room_id"] = room.id
    st.session_state["_auto"] = False
    logger.info(f"ui_room_created | room={room.id}")

room_id = st.session_state.get("room_id")
if not room_id:
    st.info("Create a room from the sidebar to begin")
    st.stop()

store = get_store()
room = store.require_room(room_id)
status = room.room_status
user_role = UserRole(room.user_role)

st.title(room.name)
st.caption(f"Status: {status.value} | Role: {user_role.value} | Duration: {room.duration_minutes} min")

cols = st.columns(5)
if status is RoomStatus.PENDING and cols[0].button("▶️ Start"):
    act(Action.START)
    st.session_state["_auto"] = True
    st.rerun()
if status is RoomStatus.ACTIVE and cols[1].button("⏭️ Next turn"):
    act(Action.NEXT_TURN)
    st.rerun()
if user_role is UserRole.MODERATOR and status is RoomStatus.ACTIVE and cols[2].button("⏸️ Pause"):
    st.session_state["_auto"] = False
    act(Action.PAUSE)
    st.rerun()
if user_role is UserRole.MODERATOR and status is RoomStatus.PAUSED and cols[2].button("▶️ Resume"):
    act(Action.RESUME)
    st.session_state["_auto"] = True
    st.rerun()
if status in (RoomStatus.ACTIVE, RoomStatus.PAUSED) and cols[3].button("🏁 End"):
    st.session_state["_auto"] = False
    act(Action.END)
    st.rerun()
show_thoughts = cols[4].toggle("Inner thoughts", value=False)

if st.session_state.get("_last_error"):
    st.error(st.session_state["_last_error"])

names = store.persona_names(room_id)
if user_role is UserRole.MODERATOR and status is not RoomStatus.ENDED:
    seated = store.participants(room_id)
    with st.expander("Participants"):
        for p in seated:
            c1, c2 = st.columns([4, 1])
            c1.write(names.get(p.persona_id, "Unknown"))
            if c2.button("Remove", key=f"rm_{p.persona_id}"):
                act(Action.REMOVE_PERSONA, persona_id=p.persona_id)
                st.rerun()

for msg in store.list_messages(room_id):
    if msg.role == MessageRole.PERSONA.value:
        with st.chat_message("assistant", avatar="🧑"):
            st.markdown(f"**{names.get(msg.persona_id, 'Unknown')}**\n\n{msg.content}")
            if show_thoughts and msg.inner_thought:
                st.caption(f"💭 {msg.inner_thought}")
    else:
        with st.chat_message("user", avatar="🗒️"):
            st.markdown(f"{ROLE_LABELS.get(msg.role, msg.role)}\n\n{msg.content}")

if status is not RoomStatus.ENDED and user_role is not UserRole.OBSERVER:
    placeholder = "Send a message as facilitator..." if user_role is UserRole.FACILITATOR else "Send a directive..."
    text = st.chat_input(placeholder)
    if text:
        if user_role is UserRole.FACILITATOR:
            act(Action.FACILITATOR_MESSAGE, message=text)
        else:
            act(Action.DIRECTIVE, message=text)
        st.rerun()

# Polling loop: one turn per rerun while auto mode is on
if st.session_state.get("_auto") and status is RoomStatus.ACTIVE and not st.session_state.get("_last_error"):
    time.sleep(get_settings().turn_delay_seconds)
    act(Action.NEXT_TURN)
    st.rerun()
