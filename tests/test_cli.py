"""
Tests for the command line interface
"""
from unittest.mock import patch

import pytest

from langshadow.cli import build_parser, main
from langshadow.services.multilang_service import MultiLangService


@pytest.fixture
def service(engine, config, inspector):
    return MultiLangService(engine, config, inspector)


def test_parser_subcommands():
    parser = build_parser()

    args = parser.parse_args(["generate", "products", "fr"])
    assert (args.command, args.model, args.locale) == ("generate", "products", "fr")

    args = parser.parse_args(["migrate", "--table", "products", "--rollback"])
    assert args.table == "products"
    assert args.rollback

    args = parser.parse_args(["worker", "--concurrency", "4"])
    assert args.concurrency == 4


def test_migrate_registered_tables(service, products, capsys):
    assert main(["migrate"], service=service) == 0
    assert "products: row_id, iso" in capsys.readouterr().out


def test_migrate_missing_table_fails(service, capsys):
    assert main(["migrate", "--table", "missing"], service=service) == 1
    assert "1 failed" in capsys.readouterr().out


def test_rollback(service, tracked_products, capsys):
    assert main(["migrate", "--rollback"], service=service) == 0
    assert "products: row_id, iso" in capsys.readouterr().out


def test_generate_reports_count(service, tracked_products, rows, capsys):
    rows.insert(tracked_products, name="Shoe", slug="shoe")

    assert main(["generate", "products"], service=service) == 0
    assert "2 translations have been generated for products" in capsys.readouterr().out


def test_generate_single_locale(service, tracked_products, rows):
    rows.insert(tracked_products, name="Shoe", slug="shoe")

    assert main(["generate", "products", "nl"], service=service) == 0
    assert sorted(r["iso"] for r in rows.all(tracked_products)) == ["en", "nl"]


def test_generate_with_failures_exits_nonzero(service, tracked_products, rows, capsys):
    rows.insert(tracked_products, name="Shoe", slug="shoe", code=1)

    assert main(["generate"], service=service) == 1
    out = capsys.readouterr().out
    assert "[fr]" in out
    assert "[nl]" in out


def test_generate_unconfigured_locale(service, tracked_products, capsys):
    assert main(["generate", "products", "de"], service=service) == 1
    assert "Configuration error" in capsys.readouterr().out


def test_generate_unprovisioned_table_is_reported_as_skipped(service, products, capsys):
    assert main(["generate", "products"], service=service) == 0
    assert "skipped" in capsys.readouterr().out


def test_serve_runs_uvicorn():
    with patch("uvicorn.run") as run:
        assert main(["serve", "--port", "9000"]) == 0

    run.assert_called_once_with("langshadow.main:app", host="0.0.0.0", port=9000)
