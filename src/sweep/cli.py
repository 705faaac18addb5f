"""Command-line interface for sweep.

sweep connects to hosts over SSH (authentication goes through the local
SSH agent) and needs an inventory plus a host selection to run a task:

    sweep -i inventory.toml info
    sweep -i inventory.toml -H web01 do -- uptime
    sweep -i inventory.toml -t 'web & !staging' do -- echo "{{ host.id }}"

If -H is given, -t is ignored. Without -i, the inventory is empty.

Any other subcommand NAME runs the program ``sweep-NAME`` from PATH with
the remaining arguments, exporting SWEEP_INVENTORY, SWEEP_HOST_ID and
SWEEP_HOST_TAGS to it.
"""

import json
import os
import shlex
import subprocess
from dataclasses import dataclass
from typing import Any, Optional

import click

from sweep import __version__
from sweep.config import OUTPUT_FORMATS, SweepConfig, load_config
from sweep.exceptions import SweepError
from sweep.executor import TaskRunner
from sweep.host_filter import format_filter_summary, select_hosts
from sweep.inventory import Inventory, load_inventory
from sweep.logging import configure_logging, get_level_from_name, get_level_from_verbosity, get_logger
from sweep.output import format_report_json, format_report_text
from sweep.progress import ProgressReporter, create_progress_reporter
from sweep.ssh import SSHTransport
from sweep.tasks import DownloadTask, ExecTask, InfoTask, ModuleTask, Task, UploadTask, parse_file_mode
from sweep.types import Host

logger = get_logger("sweep.cli")

EXTERNAL_PREFIX = "sweep-"


@dataclass
class CliState:
    """Options shared by every subcommand."""

    config: SweepConfig
    progress: ProgressReporter


class SweepGroup(click.Group):
    """Group that falls back to ``sweep-NAME`` programs for unknown commands."""

    def get_command(self, ctx: click.Context, cmd_name: str) -> Optional[click.Command]:
        command = super().get_command(ctx, cmd_name)
        if command is not None:
            return command
        return make_external_command(cmd_name)


def make_external_command(name: str) -> click.Command:
    """Build a command forwarding its arguments to ``sweep-NAME``."""

    @click.command(
        name=name,
        context_settings={"ignore_unknown_options": True, "allow_extra_args": True},
        add_help_option=False,
    )
    @click.argument("args", nargs=-1, type=click.UNPROCESSED)
    @click.pass_context
    def external(ctx: click.Context, args: tuple[str, ...]) -> None:
        state: CliState = ctx.obj
        program = f"{EXTERNAL_PREFIX}{name}"
        env = {**os.environ, **state.config.to_environment()}

        logger.debug(f"Running external subcommand {program}", args=" ".join(args))
        try:
            result = subprocess.run([program, *args], env=env)
        except OSError as e:
            click.echo(f"Error: could not run {program}: {e}", err=True)
            ctx.exit(127)

        if result.returncode < 0:
            click.echo("Subcommand was terminated by a signal.", err=True)
            ctx.exit(127)
        ctx.exit(result.returncode)

    return external


def load_selected_hosts(config: SweepConfig) -> list[Host]:
    """Load the inventory and select the hosts targeted by this invocation."""
    if config.inventory:
        inventory = load_inventory(config.inventory)
    else:
        logger.warning("No inventory provided, using empty inventory...")
        inventory = Inventory()

    hosts = select_hosts(inventory, host_id=config.host_id, tag_query=config.host_tags)

    selector = config.host_id or config.host_tags
    if selector:
        logger.info(format_filter_summary(len(inventory), len(hosts), selector))
    return hosts


def run_and_print(state: CliState, task: Task[Any]) -> None:
    """Run a task on the selected hosts and print the report."""
    config = state.config
    try:
        hosts = load_selected_hosts(config)
        runner = TaskRunner(max_workers=config.workers, progress=state.progress)
        report = runner.run(hosts, task, parallel=config.parallel)
    except SweepError as e:
        raise click.ClickException(str(e))

    if config.format == "text":
        click.echo(format_report_text(report), nl=False)
    else:
        click.echo(format_report_json(report))


def make_transport(config: SweepConfig) -> SSHTransport:
    return SSHTransport(config.ssh_config())


@click.group(cls=SweepGroup, invoke_without_command=True)
@click.option("--inventory", "-i", default=None,
              help="Path to TOML/JSON/YAML inventory file or program producing JSON inventory")
@click.option("--host-id", "-H", default=None, help="Identifier of the host to connect to")
@click.option("--host-tags", "-t", default=None,
              help="Tag expression selecting the hosts (example: 'foo & !(bar | baz)')")
@click.option("--parallel", "-p", is_flag=True, help="Run the task on all hosts concurrently")
@click.option("--sequential", is_flag=True, help="Run the task one host at a time (default)")
@click.option("--workers", type=int, default=None,
              help="Worker threads for parallel runs (default: number of CPUs)")
@click.option("--format", "-f", "output_format", type=click.Choice(list(OUTPUT_FORMATS)),
              default=None, help="Report format (default: json)")
@click.option("--progress", is_flag=True, help="Show progress on stderr as hosts complete")
@click.option("--connect-timeout", type=float, default=None, help="SSH connection timeout in seconds")
@click.option("--no-host-key-check", is_flag=True, help="Do not verify SSH host keys")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              help="Configuration file (default: ~/.sweep/config.json)")
@click.option("--log-file", type=click.Path(), default=None,
              help="Write logs to file (in addition to stderr)")
@click.option("--log-level", type=click.Choice(["trace", "debug", "info", "warning", "error"]),
              default=None, help="Set log level explicitly (overrides -v)")
@click.option("-v", "--verbose", count=True,
              help="Increase verbosity: -v=info, -vv=debug, -vvv=trace")
@click.option("--version", is_flag=True, help="Show version and exit")
@click.pass_context
def cli(
    ctx: click.Context,
    inventory: Optional[str],
    host_id: Optional[str],
    host_tags: Optional[str],
    parallel: bool,
    sequential: bool,
    workers: Optional[int],
    output_format: Optional[str],
    progress: bool,
    connect_timeout: Optional[float],
    no_host_key_check: bool,
    config_path: Optional[str],
    log_file: Optional[str],
    log_level: Optional[str],
    verbose: int,
    version: bool,
) -> None:
    """sweep - run one task on many hosts over SSH, without agents."""
    if version:
        click.echo(f"sweep {__version__}")
        ctx.exit(0)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit(0)

    level = get_level_from_name(log_level) if log_level else get_level_from_verbosity(verbose)
    configure_logging(level=level, log_file=log_file)

    if parallel and sequential:
        raise click.UsageError("--parallel and --sequential are mutually exclusive")

    try:
        config = load_config(config_path).with_overrides(
            inventory=inventory,
            host_id=host_id,
            host_tags=host_tags,
            parallel=True if parallel else (False if sequential else None),
            workers=workers,
            format=output_format,
            connect_timeout=connect_timeout,
            strict_host_keys=False if no_host_key_check else None,
        )
    except SweepError as e:
        raise click.ClickException(str(e))

    ctx.obj = CliState(
        config=config,
        progress=create_progress_reporter(progress, config.format),
    )


@cli.command("info")
@click.pass_obj
def info(state: CliState) -> None:
    """Gather information about hosts in the inventory.

    Example:
        sweep -i inventory.toml info
    """
    run_and_print(state, InfoTask())


@cli.command("do", context_settings={"ignore_unknown_options": True})
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_obj
def do(state: CliState, command: tuple[str, ...]) -> None:
    """Execute a command on multiple hosts.

    The command is a template rendered against each host:

        sweep -i inventory.toml do -- echo "{{ host.id }} says {{ host.vars.msg }}"

    A single argument is sent as is (so it may contain shell syntax);
    several arguments are quoted and joined.
    """
    command_template = command[0] if len(command) == 1 else shlex.join(command)
    run_and_print(state, ExecTask(command_template, transport=make_transport(state.config)))


@cli.command("upload")
@click.option("--template", "-T", is_flag=True,
              help="Render LOCAL_PATH as a template with the current host as input")
@click.argument("local_path")
@click.argument("remote_path")
@click.argument("file_mode", required=False)
@click.pass_obj
def upload(
    state: CliState,
    template: bool,
    local_path: str,
    remote_path: str,
    file_mode: Optional[str],
) -> None:
    """Upload a file to multiple hosts.

    FILE_MODE is an octal mode and defaults to 0644.

    Examples:
        sweep -i inventory.toml upload ./app.conf /etc/app.conf

        sweep -i inventory.toml upload -T ./motd.j2 /etc/motd 0644
    """
    try:
        mode = parse_file_mode(file_mode)
    except SweepError as e:
        raise click.BadParameter(str(e), param_hint="FILE_MODE")

    task = UploadTask(
        local_path,
        remote_path,
        file_mode=mode,
        template=template,
        transport=make_transport(state.config),
    )
    run_and_print(state, task)


@cli.command("download")
@click.option("--dest-dir", type=click.Path(file_okay=False), default=None,
              help="Base directory for downloads (default: current directory)")
@click.argument("remote_path")
@click.argument("local_path")
@click.pass_obj
def download(state: CliState, dest_dir: Optional[str], remote_path: str, local_path: str) -> None:
    """Download a file from multiple hosts.

    Files are written to {dest_dir}/{host.id}/{LOCAL_PATH}; LOCAL_PATH
    must be relative.

    Example:
        sweep -i inventory.toml download /var/log/app.log logs/app.log
    """
    task = DownloadTask(
        remote_path,
        local_path,
        base_dir=dest_dir,
        transport=make_transport(state.config),
    )
    run_and_print(state, task)


@cli.command("module")
@click.option("--module", "-m", "module_path", required=True,
              help="Path to the module executable to upload and run")
@click.option("--data", "-d", "data_path", default=None,
              help="Default data file (JSON, TOML or YAML) fed to the module")
@click.pass_obj
def module(state: CliState, module_path: str, data_path: Optional[str]) -> None:
    """Upload a module to multiple hosts and run it with data.

    The data sent on the module's standard input is the data file merged
    with the host variable module_<name>, where <name> is the module's
    file name.

    Examples:
        sweep -i inventory.toml module -m ./modules/users -d users.json

        sweep -i inventory.toml -p module -m ./modules/users
    """
    try:
        task = ModuleTask(module_path, data_path, transport=make_transport(state.config))
    except SweepError as e:
        raise click.ClickException(str(e))
    run_and_print(state, task)


@cli.group("inventory")
def inventory_group() -> None:
    """Inventory inspection commands."""
    pass


@inventory_group.command("list")
@click.pass_obj
def inventory_list(state: CliState) -> None:
    """Print the selected hosts as JSON, without connecting to them."""
    try:
        hosts = load_selected_hosts(state.config)
    except SweepError as e:
        raise click.ClickException(str(e))
    click.echo(json.dumps([host.to_dict() for host in hosts], indent=2))


@inventory_group.command("validate")
@click.pass_obj
def inventory_validate(state: CliState) -> None:
    """Validate the inventory and show a summary.

    Loads the inventory and reports the hosts it defines, flagging
    duplicate host ids (lookups by id return the first one).
    """
    if not state.config.inventory:
        raise click.UsageError("No inventory provided (use -i or SWEEP_INVENTORY)")

    try:
        inventory = load_inventory(state.config.inventory)
    except SweepError as e:
        raise click.ClickException(str(e))

    click.echo(f"Inventory: {state.config.inventory}")
    click.echo(f"Loaded {len(inventory)} host(s)")

    seen: set[str] = set()
    warnings = []
    for host in inventory:
        tags = ", ".join(tag.value for tag in host.tags) or "-"
        click.echo(f"  - {host.id} ({host.user}@{host.address}) tags: {tags}")
        if host.id.value in seen:
            warnings.append(f"{host.id}: duplicate host id, only the first one is reachable with -H")
        seen.add(host.id.value)

    click.echo("Validation:")
    if not warnings:
        click.echo("  All checks passed")
    for warning in warnings:
        click.echo(f"  Warning: {warning}")


def main() -> None:
    """Entry point for the sweep console script."""
    cli()


if __name__ == "__main__":
    main()
