"""
Localized text lookup with an explicit fallback chain.
"""
from typing import Mapping, Sequence


def resolve_text(
    translations: Mapping[str, str],
    locales: Sequence[str],
    default: str = "",
) -> str:
    """
    Pick the text for the first locale in `locales` that has a non-blank value.

    Falls back to any non-blank translation (in mapping order), then to
    `default`.
    """
    for locale in locales:
        text = translations.get(locale)
        if text and text.strip():
            return text

    for text in translations.values():
        if text and text.strip():
            return text

    return default
