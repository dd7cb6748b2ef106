from __future__ import annotations

from typing import Any, Mapping

from fastapi import Query

from app.core.errors import ErrorCode, bad_request
from app.models.material import Lang


SUPPORTED_LANGS = tuple(lang.value for lang in Lang)
DEFAULT_LANG = Lang.EN.value


def parse_lang(value: str | None) -> str | None:
    """Normalizes a `lang` query value; None means "no localization requested"."""
    if value is None or not str(value).strip():
        return None
    lang = str(value).strip().upper()
    if lang not in SUPPORTED_LANGS:
        raise bad_request(f"Unsupported language: {value}", code=ErrorCode.VALIDATION_ERROR)
    return lang


def lang_query(lang: str | None = Query(default=None)) -> str | None:
    return parse_lang(lang)


def get_translation(translations: Any, lang: str | None, fallback: str | None) -> str | None:
    if not isinstance(translations, Mapping) or not translations:
        return fallback

    if lang and translations.get(lang):
        return translations[lang]
    if translations.get(DEFAULT_LANG):
        return translations[DEFAULT_LANG]
    for value in translations.values():
        if value:
            return value
    return fallback


def clean_cache(values: Mapping[str, Any] | None) -> dict[str, str] | None:
    if not values:
        return None
    out = {}
    for lang, text in values.items():
        if text is None:
            continue
        if not str(text).strip():
            continue
        out[str(lang).upper()] = str(text)
    return out or None


def localize_fields(data: dict[str, Any], lang: str | None, mapping: Mapping[str, str]) -> dict[str, Any]:
    """Resolves `{cache_field: base_field}` pairs in `data` for `lang`.

    The base field receives the localized text; cache fields are left in place
    so editors can still see every translation.
    """
    if not lang:
        return data
    for cache_field, base_field in mapping.items():
        data[base_field] = get_translation(data.get(cache_field), lang, data.get(base_field))
    return data
