"""
Language Service - locale validation, detection and ordering.

Works against a MultiLangConfig; the current request locale is passed in
explicitly rather than read from global state.
"""
from typing import Iterable, List, Optional

from langshadow.core.config import MultiLangConfig, check_locale
from langshadow.core.exceptions import InvalidLocaleError

LANGUAGE_NAMES = {
    'en': 'English',
    'fr': 'French',
    'de': 'German',
    'es': 'Spanish',
    'it': 'Italian',
    'pt': 'Portuguese',
    'nl': 'Dutch',
    'ru': 'Russian',
    'uk': 'Ukrainian',
    'zh': 'Chinese',
    'ja': 'Japanese',
    'ko': 'Korean',
    'ar': 'Arabic',
    'hi': 'Hindi',
    'tr': 'Turkish',
    'pl': 'Polish',
    'sv': 'Swedish',
    'da': 'Danish',
    'no': 'Norwegian',
    'fi': 'Finnish',
}


class LanguageService:
    """
    Helpers around the configured language set.
    """

    def __init__(self, config: MultiLangConfig):
        self.config = config

    def validate_locale(self, locale: str) -> str:
        """
        Check the format of a locale code.

        Raises:
            InvalidLocaleError: e.g. 'english', 'EN', 'en_us'
        """
        return check_locale(locale)

    def is_configured(self, locale: str) -> bool:
        return locale in self.config.languages

    def missing_languages(self, existing: Iterable[str]) -> List[str]:
        """Configured languages not in `existing`, in configured order."""
        present = set(existing)
        return [language for language in self.config.languages if language not in present]

    def validate_and_get_locale(self, locale: Optional[str] = None) -> str:
        """
        Return the locale if it is valid and configured, otherwise the
        fallback language.
        """
        if not locale:
            return self.config.fallback_language
        try:
            check_locale(locale)
        except InvalidLocaleError:
            return self.config.fallback_language
        return locale if self.is_configured(locale) else self.config.fallback_language

    def parse_accept_language(self, header: Optional[str]) -> str:
        """
        Pick the configured language with the highest quality from an
        Accept-Language header.

        Args:
            header: e.g. 'fr-CH, fr;q=0.9, en;q=0.8, *;q=0.5'

        Returns:
            Configured locale, or the fallback language
        """
        if not header:
            return self.config.fallback_language

        preferences = []
        for position, part in enumerate(header.split(',')):
            pieces = [piece.strip() for piece in part.split(';')]
            tag = pieces[0]
            if not tag or tag == '*':
                continue
            quality = 1.0
            for param in pieces[1:]:
                if param.startswith('q='):
                    try:
                        quality = float(param[2:])
                    except ValueError:
                        quality = 0.0
            if quality <= 0:
                continue
            preferences.append((-quality, position, tag))

        for _, _, tag in sorted(preferences):
            # Exact match first ('en-US'), then the primary subtag ('en')
            region_form = self._normalize_tag(tag)
            if region_form in self.config.languages:
                return region_form
            base = tag.split('-')[0].lower()
            if base in self.config.languages:
                return base

        return self.config.fallback_language

    @staticmethod
    def language_name(locale: str) -> str:
        """English display name of a locale ('fr' -> 'French')."""
        base = locale.split('-')[0]
        return LANGUAGE_NAMES.get(locale) or LANGUAGE_NAMES.get(base) or locale.capitalize()

    def sort_by_priority(self, languages: Iterable[str], current: Optional[str] = None) -> List[str]:
        """
        Order languages: current locale first, then configured order, then
        unknown languages in their original order.
        """
        order = {language: index for index, language in enumerate(self.config.languages)}
        unknown = len(order)

        def priority(item):
            position, language = item
            if current is not None and language == current:
                return (0, 0, position)
            return (1, order.get(language, unknown), position)

        return [language for _, language in sorted(enumerate(languages), key=priority)]

    @staticmethod
    def _normalize_tag(tag: str) -> str:
        parts = tag.split('-')
        if len(parts) == 2:
            return f"{parts[0].lower()}-{parts[1].upper()}"
        return tag.lower()
