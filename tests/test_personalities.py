import pytest
from pydantic import ValidationError

from callstream.services.personalities import (
    DEFAULT_PERSONALITY,
    Personality,
    PersonalityStore,
)


def test_builtin_personalities():
    store = PersonalityStore()
    assert store.list_ids() == ["professional", "friendly", "witty", "zen"]
    assert store.get("friendly").name == "Friendly Helper"
    assert store.get("zen").temperature == 0.7


def test_unknown_id_falls_back_to_default():
    store = PersonalityStore()
    assert store.has("pirate") is False
    assert store.get("pirate") is DEFAULT_PERSONALITY


def test_register_custom_personality():
    store = PersonalityStore()
    custom = Personality(name="Night Desk", system_prompt="Be brief.", traits=["Brief"], temperature=0.3)
    store.register("night", custom)

    assert store.has("night")
    assert store.get("night") is custom


def test_temperature_is_bounded():
    with pytest.raises(ValidationError):
        Personality(name="Hot", system_prompt="x", temperature=3.0)
