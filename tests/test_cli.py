"""
Tests for the command-line interface.
"""

import json

import pytest
from typer.testing import CliRunner

from spcc_import.cli import app
from spcc_import.stores.local import PLAN_DATE_FIELD, PLAN_REFERENCE_FIELD

runner = CliRunner()


@pytest.fixture
def plan_dir(tmp_path, pdf_factory):
    folder = tmp_path / "plans"
    folder.mkdir()
    for name, lines in [
        ("riverside.pdf", ["SPCC Plan", "Riverside Station", "PE stamp 3/4/25"]),
        ("lakeside.pdf", ["SPCC Plan", "Lakeside Terminal"]),
    ]:
        (folder / name).write_bytes(pdf_factory(name, lines).content)
    return folder


@pytest.fixture
def cli_env(monkeypatch, tmp_path, facility_file):
    monkeypatch.setenv("SPCC_IMPORT_ENTITY_STORE_PATH", str(facility_file))
    monkeypatch.setenv("SPCC_IMPORT_STORAGE_DIR", str(tmp_path / "storage"))
    return facility_file


def facility(path, facility_id):
    data = json.loads(path.read_text(encoding="utf-8"))
    return next(record for record in data["default"] if record["id"] == facility_id)


class TestParseDate:
    def test_valid_date(self):
        result = runner.invoke(app, ["parse-date", "3/4/25"])

        assert result.exit_code == 0
        assert "03/04/25" in result.output
        assert "2025-03-04" in result.output

    def test_invalid_date(self):
        result = runner.invoke(app, ["parse-date", "13/40/99"])

        assert result.exit_code == 1
        assert "Not a valid date" in result.output


class TestRun:
    def test_non_interactive_run_applies_batch(self, cli_env, plan_dir):
        result = runner.invoke(app, ["run", str(plan_dir), "--yes", "--date", "1/2/25"])

        assert result.exit_code == 0, result.output
        assert "Applied 2 of 2" in result.output

        riverside = facility(cli_env, "fac-1")
        lakeside = facility(cli_env, "fac-2")
        assert riverside[PLAN_DATE_FIELD] == "2025-03-04"
        assert lakeside[PLAN_DATE_FIELD] == "2025-01-02"
        assert riverside[PLAN_REFERENCE_FIELD].startswith("file://")

    def test_non_interactive_run_without_ready_rows(self, cli_env, tmp_path, pdf_factory):
        path = tmp_path / "undated.pdf"
        path.write_bytes(pdf_factory("undated.pdf", ["Lakeside Terminal"]).content)

        result = runner.invoke(app, ["run", str(path), "--yes"])

        assert result.exit_code == 1
        assert PLAN_REFERENCE_FIELD not in facility(cli_env, "fac-2")

    def test_interactive_review(self, cli_env, plan_dir):
        result = runner.invoke(app, ["run", str(plan_dir)], input="date all 1/2/25\napply\n")

        assert result.exit_code == 0, result.output
        assert facility(cli_env, "fac-2")[PLAN_DATE_FIELD] == "2025-01-02"

    def test_interactive_cancel(self, cli_env, plan_dir):
        result = runner.invoke(app, ["run", str(plan_dir)], input="cancel\n")

        assert result.exit_code == 0
        assert "Batch discarded" in result.output
        assert PLAN_REFERENCE_FIELD not in facility(cli_env, "fac-1")

    def test_invalid_date_option(self, cli_env, plan_dir):
        result = runner.invoke(app, ["run", str(plan_dir), "--yes", "--date", "someday"])

        assert result.exit_code == 1

    def test_missing_path(self, cli_env, tmp_path):
        result = runner.invoke(app, ["run", str(tmp_path / "nope.pdf"), "--yes"])

        assert result.exit_code == 1
        assert "File not found" in result.output


class TestScan:
    def test_scan_exports_matches(self, cli_env, plan_dir, tmp_path):
        output = tmp_path / "matches.json"

        result = runner.invoke(app, ["scan", str(plan_dir), "--output", str(output)])

        assert result.exit_code == 0, result.output
        rows = {row["document_name"]: row for row in json.loads(output.read_text(encoding="utf-8"))}
        assert rows["riverside.pdf"]["selected_entity_id"] == "fac-1"
        assert rows["riverside.pdf"]["confidence"] == "exact"
        assert rows["riverside.pdf"]["override_date"] == "03/04/25"
        assert rows["lakeside.pdf"]["selected_entity_id"] == "fac-2"
        assert PLAN_REFERENCE_FIELD not in facility(cli_env, "fac-1")
