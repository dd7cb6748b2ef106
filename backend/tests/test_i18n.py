import pytest
from fastapi import HTTPException

from app.services.content import localized_material_update
from app.services.i18n import clean_cache, get_translation, localize_fields, parse_lang


def test_get_translation_prefers_requested_language():
    cache = {"EN": "Hello", "UA": "Привіт", "PL": "Cześć"}
    assert get_translation(cache, "UA", "fallback") == "Привіт"
    assert get_translation(cache, "PL", "fallback") == "Cześć"


def test_get_translation_falls_back_to_english_then_any():
    assert get_translation({"EN": "Hello", "UA": ""}, "UA", "base") == "Hello"
    assert get_translation({"PL": "Cześć"}, "UA", "base") == "Cześć"


def test_get_translation_uses_base_value_without_cache():
    assert get_translation(None, "UA", "base") == "base"
    assert get_translation({}, "UA", "base") == "base"
    assert get_translation("not a dict", "UA", "base") == "base"
    assert get_translation({"UA": ""}, "UA", "base") == "base"


def test_clean_cache_drops_blank_entries_and_uppercases():
    assert clean_cache({"en": "Hello", "ua": "  ", "pl": None}) == {"EN": "Hello"}
    assert clean_cache({"UA": ""}) is None
    assert clean_cache(None) is None


def test_parse_lang():
    assert parse_lang(None) is None
    assert parse_lang("  ") is None
    assert parse_lang("ua") == "UA"
    with pytest.raises(HTTPException) as exc:
        parse_lang("de")
    assert exc.value.status_code == 400


def test_localize_fields_replaces_base_field():
    data = {"title": "Intro", "title_json": {"UA": "Вступ"}}
    out = localize_fields(dict(data), "UA", {"title_json": "title"})
    assert out["title"] == "Вступ"
    assert out["title_json"] == {"UA": "Вступ"}
    assert localize_fields(dict(data), None, {"title_json": "title"})["title"] == "Intro"


def test_localized_material_update_maps_editor_form():
    out = localized_material_update(
        {"title_en": "Intro", "title_ua": "Вступ", "title_pl": "", "content_ua": "Текст", "type": "text"}
    )
    assert out["title"] == "Intro"
    assert out["title_json"] == {"EN": "Intro", "UA": "Вступ"}
    assert out["content_json"] == {"UA": "Текст"}
    # no EN content, base content stays untouched
    assert "content" not in out
    assert "url_json" not in out
    assert out["type"] == "text"
