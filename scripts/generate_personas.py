from __future__ import annotations

import argparse
import asyncio
import json
import re
import sys
from pathlib import Path

from loguru import logger

# Ensure the project root is on sys.path when run from scripts/
_pkg_root = str(Path(__file__).resolve().parents[1])
if _pkg_root not in sys.path:
    sys.path.insert(0, _pkg_root)

from meeting_room.config import get_settings
from meeting_room.generator import generate_personas
from meeting_room.llm import LangChainCompletionProvider
from meeting_room.store import RoomStore


ROOT = Path(__file__).resolve().parents[1]
OUT_DIR = ROOT / "generated_personas"


def slug(text: str) -> str:
    return re.sub(r"[^A-Za-z0-9]+", "_", text).strip("_") or "persona"


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Generate meeting personas with the LLM")
    p.add_argument("--scenario", required=True)
    p.add_argument("--purpose", required=True)
    p.add_argument("--count", type=int, default=3)
    p.add_argument("--variance", type=int, default=5, help="1 (typical) .. 10 (surprising)")
    p.add_argument("--out", type=str, default=str(OUT_DIR))
    p.add_argument("--save-to-db", action="store_true", help="Also insert personas into DATABASE_URL")
    return p.parse_args()


async def main_async(args: argparse.Namespace) -> None:
    store = None
    if args.save_to_db:
        store = RoomStore(get_settings().database_url)
        store.create_all()

    personas = await generate_personas(
        LangChainCompletionProvider(),
        scenario=args.scenario,
        purpose=args.purpose,
        count=args.count,
        variance_level=args.variance,
        store=store,
    )
    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)
    for i, obj in enumerate(personas, start=1):
        ident = obj["identity"]
        name = f"{ident.get('firstName', '')}_{ident.get('lastName', '')}"
        out_path = out_dir / f"{i:03d}__{slug(name)}.json"
        out_path.write_text(json.dumps(obj, ensure_ascii=False, indent=2), encoding="utf-8")
        logger.info(f"Wrote {out_path}")
    logger.info(f"Generated {len(personas)}/{args.count} personas")


def main() -> None:
    asyncio.run(main_async(parse_args()))


if __name__ == "__main__":
    main()
