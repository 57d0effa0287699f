from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from loguru import logger
from pydantic import BaseModel


# Load env from common locations early to pick up OPENAI_API_KEY during import
try:
    here = Path(__file__).resolve().parents[1]
    for env_path in (here / ".env", Path.cwd() / ".env"):
        if env_path.is_file():
            load_dotenv(dotenv_path=str(env_path), override=False)
            break
except Exception:
    load_dotenv()


class Settings(BaseModel):
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    openai_temperature: float = 1.0
    openai_max_tokens: Optional[int] = None
    database_url: str = "sqlite:///meeting_room.db"
    time_multiplier: float = 6.0
    turn_history_limit: int = 50
    summary_history_limit: int = 200
    pause_stops_clock: bool = False
    turn_delay_seconds: float = 3.0
    prompts_dir: Optional[str] = None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"config_invalid | {name}={raw!r} not a number; using {default}")
        return default


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"config_invalid | {name}={raw!r} not an integer; using {default}")
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@lru_cache
def get_settings() -> Settings:
    """Return settings read from the environment (cached).

    Env vars:
      - OPENAI_API_KEY, OPENAI_MODEL, OPENAI_TEMPERATURE, OPENAI_MAX_TOKENS
      - DATABASE_URL (default: sqlite:///meeting_room.db)
      - ROOM_TIME_MULTIPLIER (default: 6)
      - ROOM_TURN_HISTORY_LIMIT (default: 50)
      - ROOM_SUMMARY_HISTORY_LIMIT (default: 200)
      - ROOM_PAUSE_STOPS_CLOCK (default: false)
      - ROOM_TURN_DELAY_SECONDS (default: 3)
      - PROMPTS_DIR (optional)
    """
    return Settings(
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        openai_temperature=_env_float("OPENAI_TEMPERATURE", 1.0),
        openai_max_tokens=_env_int("OPENAI_MAX_TOKENS", None),
        database_url=os.getenv("DATABASE_URL", "sqlite:///meeting_room.db"),
        time_multiplier=_env_float("ROOM_TIME_MULTIPLIER", 6.0),
        turn_history_limit=_env_int("ROOM_TURN_HISTORY_LIMIT", 50) or 50,
        summary_history_limit=_env_int("ROOM_SUMMARY_HISTORY_LIMIT", 200) or 200,
        pause_stops_clock=_env_bool("ROOM_PAUSE_STOPS_CLOCK", False),
        turn_delay_seconds=_env_float("ROOM_TURN_DELAY_SECONDS", 3.0),
        prompts_dir=os.getenv("PROMPTS_DIR") or None,
    )


def load_prompt(filename: str, fallback: str) -> str:
    """Read prompts/<filename> (or PROMPTS_DIR/<filename>), else return fallback."""
    base_dir = get_settings().prompts_dir
    if base_dir:
        path = Path(base_dir) / filename
    else:
        path = Path(__file__).resolve().parents[1] / "prompts" / filename
    try:
        return path.read_text(encoding="utf-8")
    except Exception as e:
        logger.warning(f"Falling back to default prompt for {filename}: {e}")
        return fallback
