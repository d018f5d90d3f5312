"""
CLI interface for allocman.

Provides commands to create, inspect, edit, compile, import and delete
allocators, and to try a compiled allocator on a small workload.

Allocators live as <name>.py files in the configured allocators_dir.
"""


import sys
from pathlib import Path

import click
import yaml
from rich.table import Table

from allocman import __version__
from allocman.errors import AllocmanError


def _get_registry(ctx):
    """Build a registry from the loaded config, or exit with a hint."""
    from allocman.registry import AllocatorRegistry

    if "config" not in ctx.obj:
        click.echo(f"✗ Config not loaded: {ctx.obj.get('config_error', 'Unknown error')}", err=True)
        click.echo("Run 'allocman init' to create a configuration file.", err=True)
        raise SystemExit(1)

    return AllocatorRegistry.from_config(ctx.obj["config"])


def _fail(message: str) -> None:
    click.echo(f"✗ {message}", err=True)
    raise SystemExit(1)


@click.group()
@click.version_option(version=__version__, prog_name="allocman")
@click.pass_context
def main(ctx):
    """
    allocman - Allocator lifecycle manager.

    Author, compile and hot-swap scheduling strategies for the simulator.
    """
    from allocman.config import load_config
    from allocman.utils import setup_logging

    ctx.ensure_object(dict)
    try:
        config = load_config()
    except Exception as e:
        # init runs without a config; other commands check ctx.obj
        ctx.obj["config_error"] = str(e)
        return

    ctx.obj["config"] = config
    setup_logging(
        config.log_path,
        log_level=config.log_level,
        log_format=config.log_format,
        console_output=False,
    )


@main.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(force: bool):
    """Initialize allocman configuration."""
    from allocman.config import default_config, get_allocman_home

    home = get_allocman_home()
    if not home.exists():
        home.mkdir(parents=True)

    cfg_path = home / "config.yaml"
    if cfg_path.exists() and not force:
        click.echo(f"Config already exists at {cfg_path}. Use --force to overwrite.", err=True)
        raise SystemExit(1)

    cfg = default_config(home)
    cfg_path.write_text(yaml.safe_dump(cfg.to_dict(), sort_keys=False))
    cfg.allocators_path.mkdir(parents=True, exist_ok=True)

    env_path = home / ".env"
    if not env_path.exists():
        env_path.write_text("# Environment for allocator modules\n")

    click.echo(f"Initialized allocman config at {cfg_path}")
    click.echo(f"Allocators directory: {cfg.allocators_path}")


@main.command("list")
@click.pass_context
def list_allocators(ctx):
    """List stored allocators."""
    with _get_registry(ctx) as registry:
        names = registry.list()

    if not names:
        click.echo("No allocators found.")
        return
    for name in names:
        click.echo(name)


@main.command("status")
@click.argument("name", required=False)
@click.pass_context
def status(ctx, name: str = None):
    """Show lifecycle state of allocators.

    Compile state is not persisted, so allocators loaded from disk show
    as uncompiled until compiled in this process.
    """
    from allocman.utils import console

    with _get_registry(ctx) as registry:
        try:
            records = [registry.get(name)] if name else registry.records()
        except AllocmanError as e:
            _fail(str(e))

    table = Table(title="Allocators")
    table.add_column("Name")
    table.add_column("State")
    table.add_column("Dirty")
    table.add_column("Digest")
    for record in records:
        table.add_row(
            record.name,
            record.state.value,
            "yes" if record.dirty else "no",
            record.persisted_digest[:12],
        )
    console.print(table)


@main.command("new")
@click.argument("name")
@click.option("--file", "source_file", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Initial source text (default: rendered template)")
@click.option("--policy", default="round_robin", show_default=True,
              help="Template policy when no --file is given (round_robin, least_loaded)")
@click.pass_context
def new(ctx, name: str, source_file: Path, policy: str):
    """
    Create a new allocator.

    Examples:

        allocman new RoundRobin

        allocman new Greedy --policy least_loaded

        allocman new Custom --file ./Custom.py
    """
    text = source_file.read_text(encoding="utf-8") if source_file else None
    with _get_registry(ctx) as registry:
        try:
            registry.create(name, text, policy=policy)
        except (AllocmanError, ValueError) as e:
            _fail(str(e))
    click.echo(f"✓ Created {name}")


@main.command("show")
@click.argument("name")
@click.pass_context
def show(ctx, name: str):
    """Print the persisted source of an allocator."""
    with _get_registry(ctx) as registry:
        try:
            text = registry.open(name)
        except AllocmanError as e:
            _fail(str(e))
    click.echo(text, nl=False)


@main.command("save")
@click.argument("name")
@click.option("--file", "source_file", required=True,
              type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="File holding the new source text")
@click.pass_context
def save(ctx, name: str, source_file: Path):
    """Replace the source of an existing allocator."""
    with _get_registry(ctx) as registry:
        try:
            registry.edit(name, source_file.read_text(encoding="utf-8"))
            registry.save(name)
        except AllocmanError as e:
            _fail(str(e))
    click.echo(f"✓ Saved {name}")


@main.command("compile")
@click.argument("name")
@click.pass_context
def compile_allocator(ctx, name: str):
    """Compile an allocator and report diagnostics."""
    with _get_registry(ctx) as registry:
        try:
            outcome = registry.compile(name)
        except AllocmanError as e:
            _fail(str(e))

    if outcome.success:
        click.echo(f"✓ {name} compiled ({outcome.duration_ms}ms)")
    else:
        click.echo(f"✗ Errors found in {name}:", err=True)
        click.echo(outcome.diagnostics.rstrip("\n"), err=True)
        raise SystemExit(1)


@main.command("delete")
@click.argument("name")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def delete(ctx, name: str, yes: bool):
    """Delete an allocator."""
    if not yes:
        click.confirm(f"Are you sure you want to delete allocator {name}?", abort=True)
    with _get_registry(ctx) as registry:
        try:
            registry.delete(name)
        except AllocmanError as e:
            _fail(str(e))
    click.echo(f"✓ Deleted {name}")


@main.command("import")
@click.argument("path", type=click.Path(path_type=Path))
@click.pass_context
def import_allocator(ctx, path: Path):
    """
    Import an allocator source file.

    The allocator name is the file name without its extension. An existing
    allocator with the same name is overwritten.
    """
    with _get_registry(ctx) as registry:
        try:
            record = registry.import_file(path)
        except AllocmanError as e:
            _fail(f"Import failed: {e}")
    click.echo(f"✓ Imported {record.name}")


@main.command("try")
@click.argument("name")
@click.option("--workload", required=True,
              type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="YAML file with 'jobs' and 'resources' lists")
@click.pass_context
def try_allocator(ctx, name: str, workload: Path):
    """
    Compile an allocator and run it on a workload.

    Workload format:

        jobs:
          - {job_id: j1, size: 100, priority: 1}
        resources:
          - {resource_id: m1, capacity: 50}
    """
    from allocman.schemas import Job, Resource
    from allocman.utils import console

    try:
        data = yaml.safe_load(workload.read_text()) or {}
        jobs = [Job.from_dict(j) for j in data.get("jobs", [])]
        resources = [Resource.from_dict(r) for r in data.get("resources", [])]
    except (yaml.YAMLError, KeyError, TypeError, ValueError) as e:
        _fail(f"Invalid workload {workload}: {e}")

    with _get_registry(ctx) as registry:
        try:
            outcome = registry.compile(name)
            if not outcome.success:
                click.echo(f"✗ Errors found in {name}:", err=True)
                click.echo(outcome.diagnostics.rstrip("\n"), err=True)
                raise SystemExit(1)
            assignment = registry.get_artifact(name).schedule(jobs, resources)
        except AllocmanError as e:
            _fail(str(e))

    table = Table(title=f"{name} assignment")
    table.add_column("Job")
    table.add_column("Resource")
    for job in jobs:
        table.add_row(job.job_id, assignment.resource_for(job.job_id) or "(pending)")
    console.print(table)


if __name__ == "__main__":
    sys.exit(main())
