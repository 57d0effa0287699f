from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, Dict

from loguru import logger

from meeting_room.config import get_settings
from meeting_room.driver import MeetingDriver
from meeting_room.llm import LangChainCompletionProvider
from meeting_room.manager import MeetingRoomManager
from meeting_room.states import Action, ActionResult, RoomStatus
from meeting_room.store import RoomStore
from meeting_room.summarizer import render_transcript


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Run a multi-persona meeting room simulation")
    p.add_argument("personas", nargs="+", help="Persona JSON files (keys: identity, psychology, backstory[, id])")
    p.add_argument("--name", type=str, default="Simulated meeting", help="Room name")
    p.add_argument("--scenario", type=str, required=True, help="Scenario / context for the meeting")
    p.add_argument("--purpose", type=str, required=True, help="Goal of the meeting")
    p.add_argument("--duration", type=int, default=30, help="Meeting duration in simulated minutes")
    p.add_argument("--role", type=str, choices=["observer", "moderator", "facilitator"], default="observer")
    p.add_argument("--max-turns", type=int, default=None, help="Stop after this many turns (then end the meeting)")
    p.add_argument("--delay", type=float, default=None, help="Seconds between turns (default: ROOM_TURN_DELAY_SECONDS)")
    p.add_argument("--database-url", type=str, default=None, help="SQLAlchemy URL (default: DATABASE_URL)")
    p.add_argument("--show-thoughts", action="store_true", help="Print inner thoughts under each turn")
    p.add_argument("--log-level", type=str, default="INFO")
    return p.parse_args()


def load_json_file(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def print_turn(result: ActionResult, show_thoughts: bool) -> None:
    if not result.ok or not result.message:
        return
    print(f"\n[{result.persona_name}]: {result.message['content']}")
    if show_thoughts and result.message.get("inner_thought"):
        print(f"   (thinks: {result.message['inner_thought']})")


async def main() -> None:
    args = parse_args()
    logger.remove()
    logger.add(sys.stderr, level=args.log_level.upper(), format="{time:HH:mm:ss} | {level} | {message}")

    settings = get_settings()
    store = RoomStore(args.database_url or settings.database_url)
    store.create_all()

    persona_ids = []
    for path in args.personas:
        obj = load_json_file(path)
        existing = store.get_persona(obj["id"]) if obj.get("id") else None
        if existing is None:
            existing = store.add_persona(
                obj.get("identity") or {},
                obj.get("psychology"),
                obj.get("backstory"),
                memory=obj.get("memory"),
                portrait_url=obj.get("portrait_url"),
                source_export=obj,
                persona_id=obj.get("id"),
            )
        persona_ids.append(existing.id)
        logger.info(f"Loaded persona {existing.id} from {path}")

    room = store.create_room(
        name=args.name,
        scenario=args.scenario,
        purpose=args.purpose,
        persona_ids=persona_ids,
        user_role=args.role,
        duration_minutes=args.duration,
    )
    manager = MeetingRoomManager(store, LangChainCompletionProvider(), settings=settings)

    started = await manager.handle_action(room.id, Action.START)
    if not started.ok:
        raise SystemExit(f"Could not start meeting: {started.error}")

    delay = settings.turn_delay_seconds if args.delay is None else args.delay
    driver = MeetingDriver(manager, room.id, delay=delay, on_result=lambda r: print_turn(r, args.show_thoughts))
    results = await driver.run(max_turns=args.max_turns)

    last = results[-1] if results else None
    if last is not None and not last.ok and not last.ended:
        logger.error(f"Turn generation halted: {last.error}")

    if store.require_room(room.id).room_status is not RoomStatus.ENDED:
        await manager.handle_action(room.id, Action.END)

    messages = store.list_messages(room.id)
    print("\n" + "=" * 72)
    print(render_transcript(messages, store.persona_names(room.id)))


if __name__ == "__main__":
    asyncio.run(main())
