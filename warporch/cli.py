"""
CLI interface for warporch.

Provides commands to check a warp-route configuration, show the deployment
plan derived from it, and run the whole job against simulated chains.

Configuration files use the `warp-route/1` document format; existing core
deployments are passed with --core in the `core/1` format.
"""

import json
import sys
from pathlib import Path
from typing import Optional

import click
from rich.table import Table

from warporch import __version__


def _read_inputs(config_file: Path, core_file: Optional[Path]) -> tuple[bytes, Optional[bytes]]:
    config_bytes = config_file.read_bytes()
    core_bytes = core_file.read_bytes() if core_file is not None else None
    return config_bytes, core_bytes


def _decode_or_exit(config_file: Path, core_file: Optional[Path], advanced: bool):
    from warporch import codec
    from warporch.errors import ConfigError

    config_bytes, core_bytes = _read_inputs(config_file, core_file)
    try:
        return codec.decode(config_bytes, advanced_mode=advanced, existing_core_config_bytes=core_bytes)
    except ConfigError as e:
        click.echo(f"✗ {e}", err=True)
        raise SystemExit(1)


_config_argument = click.argument(
    "config_file", type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
_core_option = click.option(
    "--core",
    "core_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Existing core deployments to reuse (core/1 document)",
)
_advanced_option = click.option(
    "--advanced", is_flag=True, help="Allow custom ISMs, gas settings and core overrides"
)


@click.group()
@click.version_option(version=__version__, prog_name="warporch")
@click.option("-v", "--verbose", is_flag=True, help="Log to the console")
@click.pass_context
def main(ctx, verbose: bool):
    """
    warporch - Warp-route deployment orchestrator.

    Plan and execute cross-chain warp-route deployments.
    """
    from warporch.config import WarporchConfig, load_config
    from warporch.errors import SettingsError
    from warporch.utils import setup_logging

    ctx.ensure_object(dict)
    try:
        settings = load_config()
    except FileNotFoundError:
        settings = WarporchConfig()
    except SettingsError as e:
        click.echo(f"✗ Invalid settings: {e}", err=True)
        raise SystemExit(1)
    ctx.obj["settings"] = settings

    setup_logging(
        log_level=settings.log_level,
        log_format=settings.log_format,
        log_file=Path(settings.log_file).expanduser() if settings.log_file else None,
        console_output=verbose,
    )


@main.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing settings")
def init(force: bool):
    """Write a default settings file to $WARPORCH_HOME."""
    import yaml

    from warporch.config import WarporchConfig, get_warporch_home

    home = get_warporch_home()
    home.mkdir(parents=True, exist_ok=True)

    cfg_path = home / "config.yaml"
    if cfg_path.exists() and not force:
        click.echo(f"Settings already exist at {cfg_path}. Use --force to overwrite.", err=True)
        raise SystemExit(1)

    cfg_path.write_text(yaml.safe_dump(WarporchConfig().to_dict(), sort_keys=False))
    click.echo(f"Initialized warporch settings at {cfg_path}")


@main.command("check")
@_config_argument
@_core_option
@_advanced_option
def check(config_file: Path, core_file: Optional[Path], advanced: bool):
    """Decode a configuration and print its fingerprint."""
    from warporch.fingerprint import config_fingerprint

    config = _decode_or_exit(config_file, core_file, advanced)
    click.echo(f"✓ {config_file.name}: {len(config.chains)} chain(s), {len(config.routes)} route(s)")
    click.echo(config_fingerprint(config))


@main.command("plan")
@_config_argument
@_core_option
@_advanced_option
@click.option("--json", "as_json", is_flag=True, help="Print the plan as JSON")
def plan_cmd(config_file: Path, core_file: Optional[Path], advanced: bool, as_json: bool):
    """Show the deployment plan for a configuration."""
    from warporch.errors import PlanError
    from warporch.planner import plan as build_plan
    from warporch.utils import console

    config = _decode_or_exit(config_file, core_file, advanced)
    try:
        deployment_plan = build_plan(config)
    except PlanError as e:
        click.echo(f"✗ {e}", err=True)
        raise SystemExit(1)

    if as_json:
        click.echo(json.dumps(deployment_plan.to_dict(), indent=2))
        return

    table = Table(title=f"Plan {deployment_plan.plan_id}")
    table.add_column("#", justify="right")
    table.add_column("Step")
    table.add_column("Depends on")
    for step in deployment_plan.steps:
        deps = ", ".join(deployment_plan.steps[i].step_id for i in sorted(step.depends_on))
        table.add_row(str(step.index), step.step_id, deps or "-")
    console.print(table)


@main.command("simulate")
@_config_argument
@_core_option
@_advanced_option
@click.option("--job-id", default="simulated", show_default=True, help="Job identifier")
@click.pass_context
def simulate(ctx, config_file: Path, core_file: Optional[Path], advanced: bool, job_id: str):
    """Run the whole job against in-memory chains and print the JobResult."""
    from warporch import codec
    from warporch.errors import ConfigError
    from warporch.gateways import GatewayRegistry
    from warporch.job_runner import JobRunner
    from warporch.reporter import LogReporter
    from warporch.schemas import JobRequest

    config_bytes, core_bytes = _read_inputs(config_file, core_file)

    gateways = GatewayRegistry()
    try:
        config = codec.decode(config_bytes, advanced_mode=advanced, existing_core_config_bytes=core_bytes)
    except ConfigError:
        # The runner turns the same error into a failed JobResult
        config = None
    if config is not None:
        gateways = GatewayRegistry.create_simulated(config.chain_ids)
        for chain, core in config.existing_core.items():
            settings = {k: v for k, v in core.to_dict().items() if k != "mailbox"}
            gateways.get(chain).seed_core(core.mailbox, settings)

    runner = JobRunner(gateways, reporter=LogReporter(), settings=ctx.obj["settings"])
    result = runner.run(
        job_id,
        JobRequest(
            config_bytes=config_bytes,
            advanced_mode=advanced,
            existing_core_config_bytes=core_bytes,
        ),
    )
    click.echo(json.dumps(result.to_dict(), indent=2, sort_keys=True))
    if not result.succeeded:
        sys.exit(1)


if __name__ == "__main__":
    main()
