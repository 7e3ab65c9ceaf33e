"""
Tests for the programmatic API
"""
import pytest

from langshadow.core.exceptions import (
    InvalidIdentifierError,
    InvalidLocaleError,
    NoTargetError,
    UnknownTableError,
)
from langshadow.services.multilang_service import MultiLangService


@pytest.fixture
def service(engine, config, inspector):
    return MultiLangService(engine, config, inspector)


@pytest.fixture
def bound(service, tracked_products):
    return service.for_table(tracked_products)


def test_unbound_service_fails_fast(service):
    with pytest.raises(NoTargetError):
        service.get_coverage()
    with pytest.raises(NoTargetError):
        service.create_multi_language({"name": "Shoe"})


def test_for_table_returns_bound_copy(service, tracked_products):
    bound = service.for_table(tracked_products)
    assert bound.table == "products"
    assert service.table is None


def test_unregistered_table(service):
    with pytest.raises(UnknownTableError):
        service.for_table("orders")
    with pytest.raises(InvalidIdentifierError):
        service.for_table("orders--")


def test_for_model(service, tracked_products):
    class Product:
        __table__ = type("FakeTable", (), {"name": "products", "schema": None})()

    assert service.for_model(Product).table == "products"


def test_create_multi_language(bound, rows, tracked_products):
    result = bound.create_multi_language(
        {"name": "  Shoe\x00 ", "slug": "shoe"},
        per_language_overrides={"fr": {"name": "Chaussure"}},
    )

    assert len(result.created) == 3
    stored = rows.all(tracked_products)
    assert stored[0]["id"] == stored[0]["row_id"] == result.row_id
    assert {r["iso"]: r["name"] for r in stored} == {"en": "Shoe", "fr": "Chaussure", "nl": "Shoe"}
    assert len({r["slug"] for r in stored}) == 3


def test_create_multi_language_subset(bound, rows, tracked_products):
    result = bound.create_multi_language({"name": "Shoe", "slug": "shoe"}, languages=["fr", "en"])

    assert result.created[0]["iso"] == "fr"
    assert sorted(r["iso"] for r in rows.all(tracked_products)) == ["en", "fr"]


def test_create_multi_language_rejects_unknown_language(bound):
    with pytest.raises(InvalidLocaleError):
        bound.create_multi_language({"name": "Shoe", "slug": "shoe"}, languages=["de"])


def test_create_on_unprovisioned_table_is_skipped(service, products):
    result = service.for_table(products).create_multi_language({"name": "Shoe", "slug": "shoe"})
    assert result.skipped


def test_get_all_translations_by_any_member(bound):
    result = bound.create_multi_language({"name": "Shoe", "slug": "shoe"})
    french_id = next(r["id"] for r in result.created if r["iso"] == "fr")

    translations = bound.get_all_translations(french_id)

    assert sorted(r["iso"] for r in translations) == ["en", "fr", "nl"]
    assert bound.get_all_translations(9999) == []


def test_find_falls_back_on_invalid_locale(bound):
    result = bound.create_multi_language({"name": "Shoe", "slug": "shoe"})

    assert bound.find(result.row_id, "fr")["iso"] == "fr"
    assert bound.find(result.row_id, "english")["iso"] == "en"
    assert bound.find(result.row_id)["iso"] == "en"


def test_where_maps_id_to_group(bound):
    shoe = bound.create_multi_language({"name": "Shoe", "slug": "shoe"})
    bound.create_multi_language({"name": "Boot", "slug": "boot"})

    assert [r["name"] for r in bound.where({"id": shoe.row_id}, "nl")] == ["Shoe"]
    assert sorted(r["name"] for r in bound.where({"name": ["Shoe", "Boot"]}, "fr")) == ["Boot", "Shoe"]
    with pytest.raises(InvalidIdentifierError):
        bound.where({"colour": "red"})


def test_update_all_translations_protects_tracking_columns(bound, rows, tracked_products):
    result = bound.create_multi_language({"name": "Shoe", "slug": "shoe"})

    updated = bound.update_all_translations(
        result.row_id, {"name": "Sneaker", "iso": "xx", "row_id": 42, "id": 42}
    )

    assert updated == 3
    stored = rows.all(tracked_products)
    assert {r["name"] for r in stored} == {"Sneaker"}
    assert sorted(r["iso"] for r in stored) == ["en", "fr", "nl"]
    assert {r["row_id"] for r in stored} == {result.row_id}


def test_update_all_translations_suffixes_unique_values_per_language(bound, rows, tracked_products):
    shoe = bound.create_multi_language({"name": "Shoe", "slug": "shoe"})

    assert bound.update_all_translations(shoe.row_id, {"slug": "sneaker"}) == 3
    slugs = {r["iso"]: r["slug"] for r in rows.all(tracked_products)}
    assert slugs == {"en": "sneaker", "fr": "sneaker-fr", "nl": "sneaker-nl"}

    assert bound.update_all_translations(shoe.row_id, {"slug": "sneaker"}) == 3
    assert {r["iso"]: r["slug"] for r in rows.all(tracked_products)} == slugs


def test_delete_all_translations(bound, rows, tracked_products):
    shoe = bound.create_multi_language({"name": "Shoe", "slug": "shoe"})
    bound.create_multi_language({"name": "Boot", "slug": "boot"})

    assert bound.delete_all_translations(shoe.row_id) == 3
    assert rows.count(tracked_products) == 3
    assert bound.delete_all_translations(shoe.row_id) == 0


def test_copy_to_language(bound):
    result = bound.create_multi_language({"name": "Shoe", "slug": "shoe"}, languages=["en"])

    created = bound.copy_to_language(result.row_id, "nl", {"name": "Schoen"})

    assert created["iso"] == "nl"
    assert created["name"] == "Schoen"
    assert created["slug"] == "shoe-nl"
    assert bound.copy_to_language(result.row_id, "nl") is None
    assert bound.copy_to_language(9999, "fr") is None


def test_copy_to_language_from_row(bound):
    result = bound.create_multi_language({"name": "Shoe", "slug": "shoe"}, languages=["en"])
    canonical = result.created[0]

    assert bound.copy_to_language(canonical, "fr")["row_id"] == result.row_id


def test_copy_to_language_validates_locale(bound):
    with pytest.raises(InvalidLocaleError):
        bound.copy_to_language(1, "Dutch")


def test_incomplete_coverage_and_stats(bound):
    bound.create_multi_language({"name": "Shoe", "slug": "shoe"})
    partial = bound.create_multi_language({"name": "Boot", "slug": "boot"}, languages=["en"])

    incomplete = bound.get_incomplete_translations()
    assert [r["row_id"] for r in incomplete] == [partial.row_id]
    assert bound.get_coverage() == pytest.approx(4 / 6)

    stats = bound.get_stats()
    assert stats.total_records == 4
    assert stats.unique_records == 2
    assert stats.languages == {"en": 2, "fr": 1, "nl": 1}


def test_unprovisioned_table_reads_zero(service, products):
    assert service.for_table(products).get_coverage() == 0.0
    assert service.for_table(products).get_incomplete_translations() == []


def test_migrate_generate_rollback(service, products, rows):
    bound = service.for_table(products)
    rows.insert(products, name="Shoe", slug="shoe")

    assert bound.migrate()[0].added == ["row_id", "iso"]
    reports = bound.generate(locale="fr")
    assert reports[0].created == 1
    assert bound.rollback()[0].removed == ["row_id", "iso"]


def test_generate_defaults_to_registered_tables(service, tracked_products, rows):
    rows.insert(tracked_products, name="Shoe", slug="shoe")

    reports = service.generate()

    assert [r.table for r in reports] == ["products"]
    assert reports[0].created == 2
