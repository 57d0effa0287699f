from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from langchain_core.messages import HumanMessage
from loguru import logger

from .config import load_prompt
from .llm import CompletionProvider
from .personas import PersonaBackstory, PersonaIdentity, PersonaPsychology, dump_section
from .store import PersonaRecord, RoomStore


_DEFAULT_PROMPT = (
    "You are a persona generation engine. Based on the scenario and purpose, generate a complete, "
    "realistic, internally consistent human persona with a unique, culturally appropriate name. "
    "Respond with valid JSON only, an object with keys identity, psychology and backstory. "
    "identity has firstName, lastName, age, gender, occupation, city, country, educationLevel, hobbies. "
    "psychology has Big Five scores 0-100 (openness, conscientiousness, extraversion, agreeableness, "
    "neuroticism), communicationStyle, conflictStyle, trustLevel, proactivityLevel, primaryMotivation, "
    "fears, hiddenAgenda. backstory has lifeNarrative and currentLifeSituation."
)

_SYSTEM_PROMPT = load_prompt("persona_generation_prompt.md", _DEFAULT_PROMPT)


def _strip_fences(s: str) -> str:
    s = s.strip()
    if s.startswith("```"):
        # remove code fences and optional json hint
        lines = [ln for ln in s.splitlines() if not ln.strip().startswith("```")]
        return "\n".join(lines).strip()
    return s


def _parse_json(s: str) -> Dict[str, Any]:
    s = _strip_fences(s)
    try:
        return json.loads(s)
    except Exception:
        # try to extract first {...}
        start = s.find("{")
        end = s.rfind("}")
        if start != -1 and end != -1 and end > start:
            inner = s[start : end + 1]
            try:
                return json.loads(inner)
            except Exception as e:
                raise ValueError(f"Failed to parse JSON after fence stripping: {e}")
        raise ValueError("No JSON object found in persona response")


def normalize_persona(obj: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Validate the three profile sections, keeping unknown keys."""
    if not isinstance(obj, dict):
        raise ValueError("Persona payload must be a JSON object")
    identity = PersonaIdentity.model_validate(obj.get("identity") or {})
    if not identity.first_name:
        raise ValueError("Generated persona has no firstName")
    return {
        "identity": dump_section(identity),
        "psychology": dump_section(PersonaPsychology.model_validate(obj.get("psychology") or {})),
        "backstory": dump_section(PersonaBackstory.model_validate(obj.get("backstory") or {})),
    }


async def generate_persona(
    provider: CompletionProvider,
    scenario: str,
    purpose: str,
    variance_level: int = 5,
    avoid_names: Optional[List[str]] = None,
) -> Dict[str, Dict[str, Any]]:
    variance_level = max(1, min(10, int(variance_level)))
    content = f"SCENARIO:\n{scenario}\n\nPURPOSE:\n{purpose}\n\nVARIANCE LEVEL: {variance_level}/10\n"
    if avoid_names:
        content += f"\nNames already used (do not reuse): {', '.join(avoid_names)}\n"

    logger.debug(f"Generating persona | variance={variance_level}")
    raw = await provider.complete(_SYSTEM_PROMPT, [HumanMessage(content=content)])
    try:
        obj = _parse_json(raw or "")
    except Exception as e:
        logger.error(f"Failed to parse persona JSON: {e}")
        raise
    return normalize_persona(obj)


async def generate_personas(
    provider: CompletionProvider,
    scenario: str,
    purpose: str,
    count: int = 3,
    variance_level: int = 5,
    store: Optional[RoomStore] = None,
) -> List[Dict[str, Any]]:
    """Generate `count` personas one after another so names can be kept distinct.

    With a store, each persona is saved and its id is added to the returned dict.
    """
    results: List[Dict[str, Any]] = []
    used: List[str] = []
    for i in range(count):
        try:
            obj = await generate_persona(provider, scenario, purpose, variance_level, avoid_names=used)
        except Exception as e:
            logger.error(f"persona_generation_failed | index={i} | {e}")
            continue
        name = PersonaIdentity.model_validate(obj["identity"]).display_name
        used.append(name)
        if store is not None:
            record: PersonaRecord = store.add_persona(
                obj["identity"], obj["psychology"], obj["backstory"], source_export={"generated": True}
            )
            obj = {"id": record.id, **obj}
        logger.info(f"persona_generated | index={i} name={name}")
        results.append(obj)
    return results
