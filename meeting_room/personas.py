"""Persona profile schemas.

Profiles arrive as open JSON from the generator or from imported files. The
known fields are declared so prompt rendering can rely on them; anything else is
kept in the model's extra bag and round-trips untouched.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _as_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def _as_text_list(value: Any) -> List[str]:
    return [_as_text(v) for v in _as_list(value) if v is not None]


def _as_section(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class _OpenSection(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class PersonaIdentity(_OpenSection):
    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    nickname: Optional[str] = None
    age: Optional[Union[int, float, str]] = None
    gender: Optional[str] = None
    pronouns: Optional[str] = None
    nationality: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    occupation: Optional[str] = None
    employer: Optional[str] = None
    education_level: Optional[str] = Field(default=None, alias="educationLevel")
    hobbies: List[str] = Field(default_factory=list)

    @field_validator("hobbies", mode="before")
    @classmethod
    def _lists(cls, value: Any) -> List[str]:
        return _as_text_list(value)

    @field_validator(
        "first_name",
        "last_name",
        "nickname",
        "gender",
        "pronouns",
        "nationality",
        "city",
        "country",
        "occupation",
        "employer",
        "education_level",
        mode="before",
    )
    @classmethod
    def _texts(cls, value: Any) -> Optional[str]:
        return _as_text(value)

    @field_validator("age", mode="before")
    @classmethod
    def _age(cls, value: Any) -> Any:
        if isinstance(value, bool):
            return str(value)
        if isinstance(value, (int, float)):
            return value
        return _as_text(value)

    @property
    def display_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip() or "Unknown"


class PersonaPsychology(_OpenSection):
    openness: Optional[float] = None
    conscientiousness: Optional[float] = None
    extraversion: Optional[float] = None
    agreeableness: Optional[float] = None
    neuroticism: Optional[float] = None
    communication_style: Optional[str] = Field(default=None, alias="communicationStyle")
    decision_making_style: Optional[str] = Field(default=None, alias="decisionMakingStyle")
    conflict_style: Optional[str] = Field(default=None, alias="conflictStyle")
    trust_level: Optional[float] = Field(default=None, alias="trustLevel")
    proactivity_level: Optional[float] = Field(default=None, alias="proactivityLevel")
    primary_motivation: Optional[str] = Field(default=None, alias="primaryMotivation")
    fears: List[str] = Field(default_factory=list)
    hidden_agenda: Optional[str] = Field(default=None, alias="hiddenAgenda")
    topics_they_volunteer: List[str] = Field(default_factory=list, alias="topicsTheyVolunteer")

    @field_validator("fears", "topics_they_volunteer", mode="before")
    @classmethod
    def _lists(cls, value: Any) -> List[str]:
        return _as_text_list(value)

    @field_validator(
        "communication_style",
        "decision_making_style",
        "conflict_style",
        "primary_motivation",
        "hidden_agenda",
        mode="before",
    )
    @classmethod
    def _texts(cls, value: Any) -> Optional[str]:
        return _as_text(value)

    @field_validator(
        "openness",
        "conscientiousness",
        "extraversion",
        "agreeableness",
        "neuroticism",
        "trust_level",
        "proactivity_level",
        mode="before",
    )
    @classmethod
    def _numbers(cls, value: Any) -> Optional[float]:
        return _as_number(value)


class PersonaBackstory(_OpenSection):
    life_narrative: Optional[str] = Field(default=None, alias="lifeNarrative")
    current_life_situation: Optional[str] = Field(default=None, alias="currentLifeSituation")
    recent_experiences: List[str] = Field(default_factory=list, alias="recentExperiences")
    key_life_events: List[Any] = Field(default_factory=list, alias="keyLifeEvents")

    @field_validator("recent_experiences", mode="before")
    @classmethod
    def _texts_list(cls, value: Any) -> List[str]:
        return _as_text_list(value)

    @field_validator("key_life_events", mode="before")
    @classmethod
    def _lists(cls, value: Any) -> List[Any]:
        return _as_list(value)

    @field_validator("life_narrative", "current_life_situation", mode="before")
    @classmethod
    def _texts(cls, value: Any) -> Optional[str]:
        return _as_text(value)


class RoomPersona(BaseModel):
    id: str
    identity: PersonaIdentity = Field(default_factory=PersonaIdentity)
    psychology: PersonaPsychology = Field(default_factory=PersonaPsychology)
    backstory: PersonaBackstory = Field(default_factory=PersonaBackstory)
    memory: Optional[Any] = None
    portrait_url: Optional[str] = None
    source_export: Optional[Any] = None

    @property
    def display_name(self) -> str:
        return self.identity.display_name

    @property
    def first_name(self) -> Optional[str]:
        return self.identity.first_name

    @classmethod
    def from_record(cls, record: Any) -> "RoomPersona":
        return cls(
            id=record.id,
            identity=PersonaIdentity.model_validate(_as_section(record.identity)),
            psychology=PersonaPsychology.model_validate(_as_section(record.psychology)),
            backstory=PersonaBackstory.model_validate(_as_section(record.backstory)),
            memory=record.memory,
            portrait_url=_as_text(record.portrait_url),
            source_export=record.source_export,
        )


def identity_of(raw: Any) -> PersonaIdentity:
    """Identity section of a stored profile; non-object payloads read as empty."""
    return PersonaIdentity.model_validate(_as_section(raw))


def dump_section(section: BaseModel) -> Dict[str, Any]:
    """Serialize a profile section with its original camelCase keys and extras."""
    return section.model_dump(by_alias=True, exclude_none=True)
