"""
Tests for translation group queries
"""
import pytest

from langshadow.core.exceptions import UnknownTableError
from langshadow.services.consistency_service import ConsistencyService
from langshadow.services.constraint_inspector import ConstraintInspector
from langshadow.services.schema_provisioner import SchemaProvisioner


@pytest.fixture
def consistency(engine, config, inspector):
    return ConsistencyService(engine, config, inspector)


@pytest.fixture
def ten_groups(tracked_products, rows):
    """10 groups: 5 complete (en/fr/nl), 5 missing nl -> 25 rows"""
    row_ids = []
    for group in range(10):
        row_id = 1000 + group
        languages = ["en", "fr", "nl"] if group < 5 else ["en", "fr"]
        for language in languages:
            rows.insert(
                tracked_products,
                name=f"Product {group}",
                slug=f"product-{group}-{language}",
                row_id=row_id,
                iso=language,
            )
        row_ids.append(row_id)
    return row_ids


def test_coverage_arithmetic(consistency, ten_groups, tracked_products, rows):
    assert rows.count(tracked_products) == 25
    assert consistency.coverage(tracked_products) == pytest.approx(25 / 30)


def test_coverage_of_empty_table(consistency, tracked_products):
    assert consistency.coverage(tracked_products) == 0.0


def test_coverage_ignores_rows_without_group(consistency, tracked_products, rows):
    rows.insert(tracked_products, name="Shoe", slug="shoe", row_id=1, iso="en")
    rows.insert(tracked_products, name="Loose", slug="loose")

    assert consistency.coverage(tracked_products) == pytest.approx(1 / 3)


def test_coverage_of_unprovisioned_table(consistency, products):
    assert consistency.coverage(products) == 0.0


def test_unknown_table_raises(consistency):
    with pytest.raises(UnknownTableError):
        consistency.coverage("missing")


def test_incomplete_and_complete_groups(consistency, ten_groups, tracked_products):
    assert consistency.incomplete_groups(tracked_products) == ten_groups[5:]
    assert consistency.complete_groups(tracked_products) == ten_groups[:5]


def test_incomplete_records(consistency, ten_groups, tracked_products):
    records = consistency.incomplete_records(tracked_products)

    assert len(records) == 10
    assert {r["row_id"] for r in records} == set(ten_groups[5:])


def test_find_in_language(consistency, ten_groups, tracked_products):
    row = consistency.find_in_language(tracked_products, ten_groups[0], "fr")

    assert row["iso"] == "fr"
    assert row["slug"] == "product-0-fr"
    assert consistency.find_in_language(tracked_products, ten_groups[9], "nl") is None


def test_all_in_group(consistency, ten_groups, tracked_products):
    group = consistency.all_in_group(tracked_products, ten_groups[0])
    assert sorted(r["iso"] for r in group) == ["en", "fr", "nl"]


def test_existing_languages(consistency, ten_groups, tracked_products):
    assert consistency.existing_languages(tracked_products, ten_groups[9]) == ["en", "fr"]


def test_row_id_for(consistency, tracked_products, rows):
    record_id = rows.insert(tracked_products, name="Shoe", slug="shoe", row_id=77, iso="en")
    assert consistency.row_id_for(tracked_products, record_id) == 77
    assert consistency.row_id_for(tracked_products, 9999) is None


def test_canonical_row_falls_back_to_lowest_id(consistency, tracked_products, rows):
    canonical_id = rows.insert(tracked_products, name="Shoe", slug="shoe", iso="en")
    french_id = rows.insert(tracked_products, name="Chaussure", slug="shoe-fr", row_id=canonical_id, iso="fr")

    # canonical row itself has no row_id yet: the French row is the only member
    assert consistency.canonical_row(tracked_products, canonical_id)["id"] == french_id


def test_unprovisioned_table_reads_empty(consistency, products):
    assert consistency.find_in_language(products, 1, "en") is None
    assert consistency.all_in_group(products, 1) == []
    assert consistency.incomplete_groups(products) == []
    assert consistency.incomplete_records(products) == []
    assert consistency.row_id_for(products, 1) is None


def test_translation_stats(consistency, ten_groups, tracked_products):
    stats = consistency.translation_stats(tracked_products)

    assert stats.tracked
    assert stats.total_records == 25
    assert stats.unique_records == 10
    assert stats.languages == {"en": 10, "fr": 10, "nl": 5}
    assert stats.coverage == pytest.approx(25 / 30)


def test_translation_stats_unprovisioned(consistency, products):
    stats = consistency.translation_stats(products)

    assert not stats.tracked
    assert stats.total_records == 0


def test_reads_follow_rollback_run_elsewhere(consistency, ten_groups, engine, tracked_products):
    assert consistency.coverage(tracked_products) == pytest.approx(25 / 30)

    SchemaProvisioner(engine, ConstraintInspector()).remove_columns(tracked_products)

    assert consistency.coverage(tracked_products) == 0.0
    assert consistency.incomplete_groups(tracked_products) == []
    assert consistency.find_in_language(tracked_products, ten_groups[0], "en") is None


def test_unconfigured_language_does_not_hide_incomplete_group(consistency, tracked_products, rows):
    for language in ["en", "fr", "de"]:
        rows.insert(tracked_products, name="Shoe", slug=f"shoe-{language}", row_id=500, iso=language)

    assert consistency.incomplete_groups(tracked_products) == [500]
    assert consistency.complete_groups(tracked_products) == []
