"""
Tests for locale helpers, identifier validation and configuration
"""
import pytest
from pydantic import ValidationError

from langshadow.core.config import MultiLangConfig, Settings, check_locale
from langshadow.core.exceptions import InvalidIdentifierError, InvalidLocaleError
from langshadow.services.language_service import LanguageService
from langshadow.utils.validation import (
    is_valid_row_id,
    sanitize_attributes,
    sanitize_value,
    split_table_name,
    validate_table_name,
)


@pytest.fixture
def languages(config):
    return LanguageService(config)


@pytest.mark.parametrize("locale", ["en", "fil", "en-US", "pt-BR"])
def test_valid_locales(locale):
    assert check_locale(locale) == locale


@pytest.mark.parametrize("locale", ["EN", "english", "en_US", "en-us", "e", ""])
def test_invalid_locales(locale):
    with pytest.raises(InvalidLocaleError):
        check_locale(locale)


def test_missing_languages(languages):
    assert languages.missing_languages(["en"]) == ["fr", "nl"]
    assert languages.missing_languages(["nl", "fr", "en"]) == []


def test_validate_and_get_locale(languages):
    assert languages.validate_and_get_locale("nl") == "nl"
    assert languages.validate_and_get_locale("de") == "en"
    assert languages.validate_and_get_locale("English") == "en"
    assert languages.validate_and_get_locale(None) == "en"


def test_parse_accept_language(languages):
    assert languages.parse_accept_language("fr-CH, fr;q=0.9, en;q=0.8, *;q=0.5") == "fr"
    assert languages.parse_accept_language("de-DE,de;q=0.9") == "en"
    assert languages.parse_accept_language("nl;q=0.5, en;q=0.9") == "en"
    assert languages.parse_accept_language("de, nl;q=0.1") == "nl"
    assert languages.parse_accept_language("fr;q=0, nl") == "nl"
    assert languages.parse_accept_language("") == "en"
    assert languages.parse_accept_language(None) == "en"


def test_language_name():
    assert LanguageService.language_name("fr") == "French"
    assert LanguageService.language_name("pt-BR") == "Portuguese"
    assert LanguageService.language_name("xx") == "Xx"


def test_sort_by_priority(languages):
    assert languages.sort_by_priority(["nl", "de", "en", "fr"], current="fr") == ["fr", "en", "nl", "de"]
    assert languages.sort_by_priority(["nl", "en"]) == ["en", "nl"]


def test_config_deduplicates_languages():
    config = MultiLangConfig(languages=["en", "fr", "en"], fallback_language="fr")
    assert config.languages == ["en", "fr"]
    assert config.language_count == 2


def test_config_rejects_bad_values():
    with pytest.raises(ValidationError):
        MultiLangConfig(languages=[])
    with pytest.raises(ValidationError):
        MultiLangConfig(languages=["en", "FR"])
    with pytest.raises(ValidationError):
        MultiLangConfig(languages=["en"], fallback_language="fr")


def test_settings_build_config():
    settings = Settings(LANGUAGES=["nl", "en"], FALLBACK_LANGUAGE="nl", TABLES=["products"], CONFLICT_RETRIES=1)

    config = settings.multilang_config()

    assert config.languages == ["nl", "en"]
    assert config.fallback_language == "nl"
    assert config.tables == ["products"]
    assert config.conflict_retries == 1
    assert config.max_suffix_attempts == 100


def test_validate_table_name():
    assert validate_table_name("shop.products") == "shop.products"
    with pytest.raises(InvalidIdentifierError):
        validate_table_name("products; DROP TABLE users")
    with pytest.raises(InvalidIdentifierError):
        validate_table_name("p" * 65)


def test_split_table_name():
    assert split_table_name("products") == (None, "products")
    assert split_table_name("shop.products") == ("shop", "products")


def test_sanitize():
    assert sanitize_value("  Sh\x00oe\x07 ") == "Shoe"
    assert sanitize_value(5) == 5
    assert sanitize_attributes({"name": " Shoe "}) == {"name": "Shoe"}
    with pytest.raises(InvalidIdentifierError):
        sanitize_attributes({"name; --": "x"})


@pytest.mark.parametrize("row_id, expected", [
    (1, True),
    ("12", True),
    ("0b3d8c1e-4a7f-4f3a-9d55-2a8f7f0c1e11", True),
    (0, False),
    (-3, False),
    ("", False),
    (True, False),
    (None, False),
])
def test_is_valid_row_id(row_id, expected):
    assert is_valid_row_id(row_id) is expected
