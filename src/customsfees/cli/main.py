"""Command-line interface for customs-fees."""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError

from ..caching import build_cache
from ..fees.calculator import evaluate_test_fee
from ..fees.cart import CartPayloadModel, CustomsFeeService
from ..fees.matcher import describe_match
from ..fees.presets import UnknownPresetError, apply_preset, list_presets
from ..fees.rule_store import RuleStore, RuleStoreError
from ..observability import new_evaluation_id
from ..settings import DISPLAY_MODES, FeeSettings


def _store(ctx: click.Context) -> RuleStore:
    settings: FeeSettings = ctx.obj["settings"]
    return RuleStore(settings.rules_path, cache=build_cache(settings))


@click.group()
@click.option(
    "--data-root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding data/rules.json (defaults to CUSTOMS_FEES_DATA_ROOT).",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
)
@click.pass_context
def cli(ctx: click.Context, data_root: Optional[Path], log_level: str) -> None:
    """Customs & import fee command suite."""

    logging.basicConfig(level=getattr(logging, log_level.upper()), format="[%(levelname)s] %(name)s: %(message)s")
    settings = FeeSettings.from_env()
    if data_root is not None:
        settings = replace(settings, data_root=data_root)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


@cli.command()
@click.option("--country", required=True, help="Destination country code to preview.")
@click.option("--total", "cart_total", required=True, type=float, help="Cart total used as the fee base.")
@click.pass_context
def preview(ctx: click.Context, country: str, cart_total: float) -> None:
    """Preview the combined fee every rule reaching COUNTRY would charge."""

    try:
        line = evaluate_test_fee(country, cart_total, _store(ctx).snapshot())
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc
    payload = {"country": country.upper(), "cart_total": cart_total, "fee": line.as_dict() if line else None}
    click.echo(json.dumps(payload, indent=2))


@cli.command()
@click.argument("cart_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--display-mode", type=click.Choice(DISPLAY_MODES), default=None, help="Override the configured display mode.")
@click.pass_context
def compute(ctx: click.Context, cart_file: Path, display_mode: Optional[str]) -> None:
    """Compute customs fees for the cart described in CART_FILE (JSON)."""

    try:
        payload = CartPayloadModel.model_validate_json(cart_file.read_text(encoding="utf-8"))
    except ValidationError as exc:
        raise click.ClickException(f"Invalid cart file: {exc}") from exc

    settings: FeeSettings = ctx.obj["settings"]
    service = CustomsFeeService(_store(ctx), payload.product_lookup(), settings)
    evaluation_id = new_evaluation_id()
    fees = service.compute(payload.cart_context(), display_mode=display_mode, evaluation_id=evaluation_id)
    click.echo(
        json.dumps(
            {
                "evaluation_id": evaluation_id,
                "display_mode": display_mode or settings.display_mode,
                "fees": [fee.as_dict() for fee in fees],
                "total": round(sum(fee.amount for fee in fees), 2),
            },
            indent=2,
        )
    )


@cli.group()
def rules() -> None:
    """Rule store helpers."""


@rules.command("list")
@click.pass_context
def list_rules(ctx: click.Context) -> None:
    """List configured rules in store order."""

    snapshot = _store(ctx).snapshot()
    if not snapshot:
        click.echo("No rules configured.")
        return
    for rule in snapshot:
        label = rule.label or "(default label)"
        click.echo(
            f"[{rule.rule_id}] {label} | {rule.type or '?'} | priority {rule.priority} | "
            f"{rule.stacking_mode} | {describe_match(rule)}"
        )


@rules.command("export")
@click.pass_context
def export_rules(ctx: click.Context) -> None:
    """Write the rule store as JSON to stdout."""

    click.echo(_store(ctx).export_json())


@rules.command("import")
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--append", is_flag=True, help="Append to existing rules instead of replacing them.")
@click.pass_context
def import_rules(ctx: click.Context, source: Path, append: bool) -> None:
    """Import rules from a JSON export."""

    try:
        count = _store(ctx).import_json(source.read_text(encoding="utf-8"), append=append)
    except RuleStoreError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"{count} rules imported successfully.")


@rules.command("delete")
@click.argument("index", type=int)
@click.pass_context
def delete_rule(ctx: click.Context, index: int) -> None:
    """Delete the rule at INDEX."""

    try:
        _store(ctx).delete(index)
    except RuleStoreError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Rule {index} deleted.")


@cli.group()
def presets() -> None:
    """Preset rule templates."""


@presets.command("list")
def list_preset_templates() -> None:
    for preset in list_presets():
        click.echo(f"{preset.preset_id}: {preset.name} ({len(preset.rules)} rules)")


@presets.command("apply")
@click.argument("preset_id")
@click.option("--replace", "replace_existing", is_flag=True, help="Clear existing rules before applying.")
@click.pass_context
def apply_preset_template(ctx: click.Context, preset_id: str, replace_existing: bool) -> None:
    """Add the rules of PRESET_ID to the rule store."""

    try:
        count = apply_preset(_store(ctx), preset_id, replace=replace_existing)
    except UnknownPresetError as exc:
        raise click.ClickException(f"Unknown preset {preset_id!r}") from exc
    click.echo(f"Applied {count} rules from {preset_id}.")


if __name__ == "__main__":
    cli()
