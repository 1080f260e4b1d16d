from typing import Any, Dict, List, Mapping, Optional, Protocol, runtime_checkable

from formx.core.config import settings
from formx.core.logging import get_logger

logger = get_logger(__name__)


@runtime_checkable
class Localizer(Protocol):
    def resolve(self, key: str, locale: str) -> str: ...


class LocalizationManager:
    """
    Translation lookup backed by a persisted form's `localization` table
    (`{locale: {key: text}}`).

    Lookup order: requested locale, then the default language, then the key.
    """

    def __init__(
        self,
        default_language: Optional[str] = None,
        languages: Optional[List[Mapping[str, str]]] = None,
        translations: Optional[Dict[str, Dict[str, str]]] = None,
    ):
        self.default_language = default_language or settings.DEFAULT_LOCALE
        self.languages = [dict(lang) for lang in (languages or [])]
        self.translations: Dict[str, Dict[str, str]] = {k: dict(v) for k, v in (translations or {}).items()}
        self.current_language = self.default_language

    @classmethod
    def from_persisted(cls, persisted: Mapping[str, Any]) -> "LocalizationManager":
        return cls(
            default_language=persisted.get("defaultLanguage"),
            languages=persisted.get("languages") or [],
            translations=persisted.get("localization") or {},
        )

    def resolve(self, key: str, locale: Optional[str] = None) -> str:
        if not key:
            return ""
        for code in (locale or self.current_language, self.default_language):
            text = self.translations.get(code, {}).get(key)
            if text:
                return text
        logger.debug(f"[EVAL] No translation for '{key}' ({locale or self.current_language})")
        return key

    def translate(self, key: str, default: Optional[str] = None) -> str:
        text = self.translations.get(self.current_language, {}).get(key)
        return text or default or key

    def set_language(self, code: str) -> bool:
        """Switch the current language; unknown codes are ignored."""
        if any(lang.get("code") == code for lang in self.languages):
            self.current_language = code
            return True
        return False

    def add_translations(self, locale: str, entries: Mapping[str, str]) -> None:
        self.translations.setdefault(locale, {}).update(entries)
