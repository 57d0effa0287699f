from __future__ import annotations

from conftest import persona_payload

from meeting_room.personas import PersonaBackstory, PersonaIdentity, PersonaPsychology, RoomPersona, dump_section


def test_identity_aliases_and_display_name():
    ident = PersonaIdentity.model_validate({"firstName": "Ada", "lastName": "Obi", "educationLevel": "MSc"})
    assert ident.display_name == "Ada Obi"
    assert ident.education_level == "MSc"
    assert PersonaIdentity().display_name == "Unknown"
    assert PersonaIdentity(first_name="Cher").display_name == "Cher"


def test_psychology_is_lenient():
    psy = PersonaPsychology.model_validate({"openness": "high", "trustLevel": "40", "fears": "heights"})
    assert psy.openness is None
    assert psy.trust_level == 40.0
    assert psy.fears == ["heights"]


def test_dump_section_keeps_extras_and_aliases():
    ident = PersonaIdentity.model_validate({"firstName": "Ada", "favouriteColour": "teal"})
    assert dump_section(ident) == {"firstName": "Ada", "hobbies": [], "favouriteColour": "teal"}


def test_room_persona_from_record(store):
    rec = store.add_persona(**persona_payload("Ada", "Obi"), portrait_url="https://example.org/ada.png")
    persona = RoomPersona.from_record(store.get_persona(rec.id))
    assert persona.display_name == "Ada Obi"
    assert persona.first_name == "Ada"
    assert persona.psychology.hidden_agenda == "get promoted"
    assert persona.backstory.life_narrative == "Ada grew up by the sea."
    assert persona.portrait_url == "https://example.org/ada.png"


def test_sections_coerce_loose_json_types():
    ident = PersonaIdentity.model_validate({"firstName": "Ada", "hobbies": [1, None, "chess"], "age": 34.5, "city": 12})
    assert ident.hobbies == ["1", "chess"]
    assert ident.age == 34.5
    assert ident.city == "12"

    psy = PersonaPsychology.model_validate({"fears": [{"what": "debt"}], "hiddenAgenda": ["promotion"]})
    assert psy.fears == ['{"what": "debt"}']
    assert psy.hidden_agenda == '["promotion"]'

    back = PersonaBackstory.model_validate({"keyLifeEvents": "moved abroad", "recentExperiences": [3]})
    assert back.key_life_events == ["moved abroad"]
    assert back.recent_experiences == ["3"]


def test_from_record_ignores_non_object_sections(store):
    rec = store.add_persona({"firstName": "Ada"}, persona_id="ada")
    rec.psychology = ["not", "an", "object"]
    rec.backstory = "free text"
    persona = RoomPersona.from_record(rec)
    assert persona.display_name == "Ada"
    assert persona.psychology.fears == []
    assert persona.backstory.life_narrative is None
