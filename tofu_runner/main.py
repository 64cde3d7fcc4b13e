"""
tofu-runner — CLI entrypoint.

Usage:
    python -m tofu_runner.main --help
    tofu-runner --directory ./infra --version 1.8.2 plan --targets aws_instance.a
    tofu-runner --mock plan
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Any

import click
from click.core import ParameterSource

from tofu_runner import __version__
from tofu_runner.core.observability.logging_config import resolve_level, setup_logging

# Group options that map 1:1 onto RunConfig fields
_CONFIG_OPTIONS = (
    "directory",
    "version",
    "debug",
    "mock",
    "install_strategy",
    "log_upload_url",
    "hosted_plan_upload_url",
    "hosted_json_plan_upload_url",
    "hosted_structured_json_upload_url",
    "redacted_json_upload_url",
    "log_address",
    "run_id",
    "api_address",
)


def _explicit(ctx: click.Context, names: tuple[str, ...]) -> dict[str, Any]:
    """Parameter values the user actually passed (not click defaults)."""
    return {
        name: ctx.params[name]
        for name in names
        if ctx.get_parameter_source(name) not in (None, ParameterSource.DEFAULT)
    }


@click.group()
@click.version_option(__version__, "--runner-version", prog_name="tofu-runner")
@click.option("--directory", default="", help="Working directory for the engine.")
@click.option("--version", default="latest", show_default=True,
              help="OpenTofu version to run ('latest' means the pinned default).")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Only log errors.")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to tofu-runner.yml (default: auto-detect).",
)
@click.option("--install-strategy", type=click.Choice(["download", "installer"]),
              default="download", show_default=True,
              help="Direct archive download, or the caching installer.")
@click.option("--mock", is_flag=True, help="Use the mock engine (no install, no real plan).")
@click.option("--log-upload-url", default="", help="URL to upload logs to.")
@click.option("--hosted-plan-upload-url", default="", help="URL to upload the plan file to.")
@click.option("--hosted-json-plan-upload-url", default="", help="URL to upload the hosted JSON plan to.")
@click.option("--hosted-structured-json-upload-url", default="",
              help="URL to upload the structured JSON event stream to.")
@click.option("--redacted-json-upload-url", default="", help="URL to upload the redacted JSON plan to.")
@click.option("--log-address", default="", help="Base URL for per-run log objects.")
@click.option("--run-id", default="", help="ID of the current run (names the log object).")
@click.option("--api-address", default="", help="Control-plane API address.")
@click.pass_context
def cli(ctx: click.Context, debug: bool, verbose: bool, quiet: bool,
        config_path: str | None, **_: Any) -> None:
    """tofu-runner — provision OpenTofu, plan, and upload the results."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = Path(config_path) if config_path else None
    ctx.obj["overrides"] = _explicit(ctx, _CONFIG_OPTIONS)

    setup_logging(
        level=resolve_level(debug=debug, verbose=verbose, quiet=quiet),
        log_file=os.environ.get("TOFU_RUNNER_LOG_FILE"),
        log_file_level=os.environ.get("TOFU_RUNNER_LOG_FILE_LEVEL"),
        quiet_third_party=not debug,
    )


def _load(ctx: click.Context, extra: dict[str, Any]) -> Any:
    """Build the RunConfig, exiting 1 on configuration errors."""
    from tofu_runner.core.config.loader import load_config
    from tofu_runner.core.errors import ConfigError

    try:
        return load_config(
            path=ctx.obj.get("config_path"),
            overrides={**ctx.obj.get("overrides", {}), **extra},
        )
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)


def _report(result: Any, as_json: bool) -> None:
    """Print the run summary and exit with the run's exit code."""
    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    click.echo(err=True)
    if result.error:
        click.secho(f"❌ {result.operation} failed: {result.error}", fg="red", err=True)
        sys.exit(result.exit_code)

    if result.plan is not None and not result.plan.has_changes:
        click.secho("✅ No changes. Infrastructure matches the configuration.", fg="green", err=True)
    elif result.uploads is not None:
        click.secho(f"📦 Artifacts: {result.uploads.succeeded}/{result.uploads.total} uploaded",
                    fg="cyan", bold=True, err=True)
        for upload in result.uploads.results:
            if upload.ok:
                click.secho(f"   ✓ {upload.artifact}", fg="green", err=True)
            elif upload.skipped:
                click.secho(f"   ⊘ {upload.artifact} ({upload.error})", fg="yellow", err=True)
            else:
                click.secho(f"   ✗ {upload.artifact}: {upload.error}", fg="red", err=True)

    log_upload = result.log_upload
    if log_upload is not None and log_upload.failed:
        click.secho(f"   ✗ logs: {log_upload.error}", fg="red", err=True)

    if result.exit_code:
        click.secho("⚠️  Plan succeeded but some uploads failed", fg="yellow", err=True)
    sys.exit(result.exit_code)


@cli.command()
@click.option("--plan-only", is_flag=True, help="Plan without taking the state lock.")
@click.option("--targets", default="", help="Comma-separated resource addresses to target.")
@click.option("--destroy", is_flag=True, help="Plan a destroy.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Print the result as JSON.")
@click.pass_context
def plan(ctx: click.Context, as_json: bool, **_: Any) -> None:
    """Run a plan and upload its artifacts.

    Examples:

        tofu-runner --version 1.8.2 plan

        tofu-runner plan --targets aws_instance.a,aws_instance.b

        tofu-runner plan --destroy --plan-only
    """
    from tofu_runner.core.use_cases.plan import run_plan

    config = _load(ctx, _explicit(ctx, ("plan_only", "targets", "destroy")))
    _report(run_plan(config), as_json)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Print the result as JSON.")
@click.pass_context
def apply(ctx: click.Context, as_json: bool) -> None:
    """Apply changes (not implemented)."""
    from tofu_runner.core.use_cases.plan import run_operation

    _report(run_operation("apply", _load(ctx, {})), as_json)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Print the result as JSON.")
@click.pass_context
def destroy(ctx: click.Context, as_json: bool) -> None:
    """Destroy infrastructure (not implemented)."""
    from tofu_runner.core.use_cases.plan import run_operation

    _report(run_operation("destroy", _load(ctx, {})), as_json)


if __name__ == "__main__":
    cli()
