from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from customsfees.cli.main import cli
from customsfees.fees.rule_store import RuleStore


@pytest.fixture()
def data_root(tmp_path: Path, monkeypatch) -> Path:
    monkeypatch.setenv("CUSTOMS_FEES_CACHE_BACKEND", "none")
    monkeypatch.delenv("CUSTOMS_FEES_DISPLAY_MODE", raising=False)
    store = RuleStore(tmp_path / "data" / "rules.json")
    store.replace_all(
        [
            {"to_country": "DE", "type": "percentage", "rate": 19, "label": "Import VAT"},
            {"from_country": "CN", "to_country": "DE", "match_type": "hs_code", "hs_code_pattern": "61*",
             "type": "percentage", "rate": 12, "label": "Apparel Duty"},
        ]
    )
    return tmp_path


def _invoke(data_root: Path, *args: str):
    runner = CliRunner()
    return runner.invoke(cli, ["--data-root", str(data_root), *args], catch_exceptions=False)


def test_cli_help():
    result = CliRunner().invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "preview" in result.stdout
    assert "presets" in result.stdout


def test_preview(data_root: Path):
    result = _invoke(data_root, "preview", "--country", "de", "--total", "100")
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["country"] == "DE"
    assert payload["fee"]["amount"] == 31.0


def test_preview_rejects_non_positive_total(data_root: Path):
    result = CliRunner().invoke(cli, ["--data-root", str(data_root), "preview", "--country", "DE", "--total", "0"])
    assert result.exit_code != 0


def test_compute(data_root: Path, tmp_path: Path):
    cart = tmp_path / "cart.json"
    cart.write_text(
        json.dumps(
            {
                "shipment": {"to_country": "DE", "cart_total": 50},
                "items": [{"product_id": "tee"}],
                "products": [{"product_id": "tee", "hs_code": "6109.10", "country_of_origin": "CN"}],
            }
        )
    )
    result = _invoke(data_root, "compute", str(cart), "--display-mode", "breakdown")
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["display_mode"] == "breakdown"
    assert [fee["label"] for fee in payload["fees"]] == ["Apparel Duty", "Import VAT"]
    assert payload["total"] == 15.5
    assert payload["evaluation_id"]


def test_compute_rejects_invalid_cart(data_root: Path, tmp_path: Path):
    cart = tmp_path / "cart.json"
    cart.write_text(json.dumps({"items": []}))
    result = CliRunner().invoke(cli, ["--data-root", str(data_root), "compute", str(cart)])
    assert result.exit_code != 0
    assert "Invalid cart file" in result.output


def test_rules_list_export_import_delete(data_root: Path, tmp_path: Path):
    listed = _invoke(data_root, "rules", "list")
    assert "Import VAT" in listed.stdout
    assert "CN → DE | HS Code: 61*" in listed.stdout

    exported = _invoke(data_root, "rules", "export")
    export_file = tmp_path / "export.json"
    export_file.write_text(exported.stdout)

    imported = _invoke(data_root, "rules", "import", str(export_file), "--append")
    assert "2 rules imported" in imported.stdout
    assert len(RuleStore(data_root / "data" / "rules.json")) == 4

    deleted = _invoke(data_root, "rules", "delete", "0")
    assert "Rule 0 deleted." in deleted.stdout
    missing = CliRunner().invoke(cli, ["--data-root", str(data_root), "rules", "delete", "42"])
    assert missing.exit_code != 0


def test_rules_list_empty(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("CUSTOMS_FEES_CACHE_BACKEND", "none")
    result = _invoke(tmp_path, "rules", "list")
    assert "No rules configured." in result.stdout


def test_presets_list_and_apply(data_root: Path):
    listed = _invoke(data_root, "presets", "list")
    assert "uk_vat: UK VAT & Duty (2 rules)" in listed.stdout

    applied = _invoke(data_root, "presets", "apply", "uk_vat", "--replace")
    assert "Applied 2 rules from uk_vat." in applied.stdout
    labels = [rule.label for rule in RuleStore(data_root / "data" / "rules.json").snapshot()]
    assert labels == ["UK VAT (Import)", "UK Duty (Import)"]

    unknown = CliRunner().invoke(cli, ["--data-root", str(data_root), "presets", "apply", "atlantis"])
    assert unknown.exit_code != 0
    assert "Unknown preset" in unknown.output
