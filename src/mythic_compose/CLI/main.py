"""
Command Line Interface for Mythic Compose.
"""
import functools
import logging
import sys

import click
import yaml

from ..ENGINE.docker_client import EngineClient
from ..errors import DocumentParseError, MythicComposeError
from ..MANAGERS.config_store import ConfigStore
from ..MANAGERS.environment_manager import EnvironmentManager
from ..MANAGERS.log_aggregator import LogAggregator
from ..MANAGERS.reconciler import Reconciler
from ..MANAGERS.service_orchestrator import ServiceOrchestrator
from ..MANAGERS.volume_manager import VolumeManager
from ..MODELS.settings import Settings
from ..UTILS.formatting import format_mounts, format_ports, format_table


def handle_errors(f):
    """
    Turns registry errors into a one line message and a non-zero exit.
    """
    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        ctx = click.get_current_context()
        try:
            return f(*args, **kwargs)
        except MythicComposeError as e:
            if ctx.obj.get('debug'):
                raise
            click.echo(f"[-] {e}", err=True)
            sys.exit(e.exit_code)
    return wrapper


def _echo_table(headers, rows):
    for line in format_table(headers, rows):
        click.echo(line)


@click.group()
@click.option('--workdir', '-w', envvar='MYTHIC_COMPOSE_WORKDIR', default=None,
              help='Directory holding docker-compose.yml, .env and InstalledServices')
@click.option('--debug', is_flag=True, help='Verbose logging and full tracebacks')
@click.pass_context
def cli(ctx, workdir, debug):
    """
    Mythic Compose - keeps installed, declared and running services in step.
    """
    ctx.ensure_object(dict)
    logging.basicConfig(level=logging.DEBUG if debug else logging.INFO, format='%(message)s')
    settings = Settings.from_workdir(workdir)
    engine = ctx.obj.get('engine')
    if engine is None:
        engine = EngineClient()
        ctx.call_on_close(engine.close)
    environment = ctx.obj.get('environment') or EnvironmentManager(settings.env_path)
    config_store = ConfigStore(settings.compose_path)
    reconciler = Reconciler(config_store, settings.install_root, engine)

    ctx.obj['debug'] = debug
    ctx.obj['settings'] = settings
    ctx.obj['engine'] = engine
    ctx.obj['environment'] = environment
    ctx.obj['config_store'] = config_store
    ctx.obj['reconciler'] = reconciler
    ctx.obj['orchestrator'] = ServiceOrchestrator(
        config_store, reconciler, engine, environment, settings.workdir,
        invocation=ctx.obj.get('invocation'),
        runner=ctx.obj.get('runner'),
        docker_executable=ctx.obj.get('docker_executable'),
    )
    ctx.obj['volumes'] = VolumeManager(config_store, engine)


@cli.command()
@click.option('--verbose', '-v', is_flag=True, help='Also list declared and installed services that are not running')
@click.pass_context
@handle_errors
def status(ctx, verbose):
    """Show core and installed service containers."""
    report = ctx.obj['reconciler'].diff_for_status()

    click.echo("Mythic Main Services")
    _echo_table(
        ["CONTAINER NAME", "STATE", "STATUS", "MOUNT", "PORTS"],
        [[c.name, c.state, c.status, format_mounts(c), format_ports(c.ports)] for c in report.core],
    )
    click.echo("")
    click.echo("Installed Services")
    _echo_table(
        ["CONTAINER NAME", "STATE", "STATUS", "MOUNT"],
        [[c.name, c.state, c.status, format_mounts(c)] for c in report.installed],
    )
    click.echo("")
    if verbose and report.declared_not_running:
        click.echo("Docker Compose services not running, start with: mythic-compose start [name]")
        _echo_table(["NAME"], [[name] for name in report.declared_not_running])
        click.echo("")
    if verbose and report.on_disk_not_declared:
        click.echo("Extra Services, add to docker compose with: mythic-compose add [name]")
        _echo_table(["NAME"], [[name] for name in report.on_disk_not_declared])
        click.echo("")


@cli.command()
@click.pass_context
@handle_errors
def services(ctx):
    """List installed third-party services."""
    rows = ctx.obj['reconciler'].inventory()
    _echo_table(
        ["Name", "ContainerStatus", "ImageBuilt", "DockerComposeEntry"],
        [[r.name, r.container_status, str(r.image_built).lower(), str(r.declared).lower()] for r in rows],
    )


@cli.command()
@click.argument('name')
@click.pass_context
@handle_errors
def inspect(ctx, name):
    """Show where a service is in its lifecycle."""
    state = ctx.obj['reconciler'].lifecycle_of(name)
    click.echo(f"{name.lower()}: {state.value}")


@cli.command()
@click.argument('names', nargs=-1, required=True)
@click.pass_context
@handle_errors
def add(ctx, names):
    """Declare third-party services in docker-compose.yml."""
    ctx.obj['orchestrator'].add_services(names)


@cli.command()
@click.argument('names', nargs=-1, required=True)
@click.pass_context
@handle_errors
def remove(ctx, names):
    """Stop services and remove them from docker-compose.yml."""
    ctx.obj['orchestrator'].remove_services(names)


@cli.command('rm')
@click.argument('names', nargs=-1, required=True)
@click.pass_context
@handle_errors
def rm(ctx, names):
    """Remove service containers, keeping their declarations."""
    ctx.obj['orchestrator'].remove_containers(names)


@cli.command()
@click.argument('names', nargs=-1)
@click.option('--rebuild', is_flag=True, help='Rebuild images even if they exist')
@click.pass_context
@handle_errors
def start(ctx, names, rebuild):
    """Start services (all declared services by default)."""
    ctx.obj['orchestrator'].start_services(names, rebuild=rebuild)
    click.echo("Services started.")


@cli.command()
@click.argument('names', nargs=-1)
@click.option('--delete-images', is_flag=True, help='Remove the containers as well as stopping them')
@click.pass_context
@handle_errors
def stop(ctx, names, delete_images):
    """Stop services (all declared services by default)."""
    ctx.obj['orchestrator'].stop_services(names, delete_images=delete_images)
    click.echo("Services stopped.")


@cli.command()
@click.argument('names', nargs=-1, required=True)
@click.pass_context
@handle_errors
def build(ctx, names):
    """Rebuild and restart services."""
    ctx.obj['orchestrator'].build_services(names)


@cli.command()
@click.argument('name')
@click.option('--tail', '-n', default=100, show_default=True, help='Lines to show from the end of the log')
@click.option('--follow', '-f', is_flag=True, help='Keep streaming new output')
@click.pass_context
@handle_errors
def logs(ctx, name, tail, follow):
    """Print a service container's logs."""
    LogAggregator(ctx.obj['engine']).print_logs(name, tail=tail, follow=follow)


@cli.command()
@click.argument('names', nargs=-1)
@click.pass_context
@handle_errors
def health(ctx, names):
    """Show container health checks."""
    for name, state in ctx.obj['orchestrator'].health_check(names).items():
        click.echo(f"{name}: {state}")


@cli.command('connection-info')
@click.pass_context
def connection_info(ctx):
    """Show where the core services can be reached."""
    rows = ctx.obj['environment'].connection_rows()
    _echo_table(
        ["MYTHIC SERVICE", "WEB ADDRESS", "BOUND LOCALLY"],
        [[b.title, address, str(local).lower()] for b, address, local in rows if not b.additional],
    )
    click.echo("")
    _echo_table(
        ["ADDITIONAL SERVICES", "ADDRESS", "BOUND LOCALLY"],
        [[b.title, address, str(local).lower()] for b, address, local in rows if b.additional],
    )


@cli.command('check-version')
@click.pass_context
@handle_errors
def check_version(ctx):
    """Check the Docker engine is recent enough."""
    if not ctx.obj['orchestrator'].check_engine_version():
        sys.exit(1)
    click.echo("[+] Docker version is supported")


@cli.group()
def config():
    """Read and write service definitions."""


@config.command('get')
@click.argument('name')
@click.pass_context
@handle_errors
def config_get(ctx, name):
    """Print a service definition (the default template if undeclared)."""
    definition, existed = ctx.obj['config_store'].get_service(name)
    if not existed:
        click.echo(f"# {name.lower()} is not declared, showing the default definition")
    click.echo(yaml.safe_dump(definition.to_dict(), default_flow_style=False), nl=False)


@config.command('set')
@click.argument('name')
@click.argument('definition_file', type=click.File('r'))
@click.pass_context
@handle_errors
def config_set(ctx, name, definition_file):
    """Replace a service definition with the YAML mapping in DEFINITION_FILE."""
    try:
        data = yaml.safe_load(definition_file) or {}
    except yaml.YAMLError as e:
        raise DocumentParseError(definition_file.name, str(e)) from e
    if not isinstance(data, dict):
        raise click.BadParameter("the definition must be a YAML mapping", param_hint='DEFINITION_FILE')
    ctx.obj['config_store'].set_service(name, data)


@cli.group()
def volumes():
    """Inspect and manage named volumes."""


@volumes.command('ls')
@click.pass_context
@handle_errors
def volumes_ls(ctx):
    """List declared volumes with their size and users."""
    rows = ctx.obj['volumes'].volume_report()
    _echo_table(
        ["VOLUME", "SIZE", "CONTAINER (Ref Count)", "CONTAINER STATUS", "LOCATION"],
        [[r.name, r.size, r.container, r.container_status, r.location] for r in rows],
    )
    diff = ctx.obj['reconciler'].volume_diff()
    if diff.declared_only:
        click.echo("")
        click.echo("Declared volumes not yet created: " + ", ".join(diff.declared_only))


@volumes.command('rm')
@click.argument('name')
@click.pass_context
@handle_errors
def volumes_rm(ctx, name):
    """Remove a volume and the containers using it."""
    ctx.obj['volumes'].remove_volume(name)


@volumes.command('cp-in')
@click.argument('source', type=click.Path(exists=True, dir_okay=False))
@click.argument('volume')
@click.argument('file_name')
@click.pass_context
@handle_errors
def volumes_cp_in(ctx, source, volume, file_name):
    """Copy a local file into a volume."""
    ctx.obj['volumes'].copy_into_volume(source, file_name, volume)


@volumes.command('cp-out')
@click.argument('volume')
@click.argument('file_name')
@click.argument('destination', type=click.Path(dir_okay=False))
@click.pass_context
@handle_errors
def volumes_cp_out(ctx, volume, file_name, destination):
    """Copy a file out of a volume."""
    ctx.obj['volumes'].copy_from_volume(volume, file_name, destination)


@cli.group()
def images():
    """Save, load and prune service images."""


@images.command('save')
@click.argument('names', nargs=-1)
@click.option('--out', '-o', default='saved_images', show_default=True, help='Output directory')
@click.pass_context
@handle_errors
def images_save(ctx, names, out):
    """Save service images into one archive."""
    archive = ctx.obj['orchestrator'].save_images(names, out)
    if archive is None:
        click.echo("[-] No images to save")


@images.command('load')
@click.option('--from', '-i', 'source', default='saved_images', show_default=True, help='Input directory')
@click.pass_context
@handle_errors
def images_load(ctx, source):
    """Load images saved with 'images save'."""
    ctx.obj['orchestrator'].load_images(source)


@images.command('prune')
@click.pass_context
@handle_errors
def images_prune(ctx):
    """Remove untagged images."""
    failures = ctx.obj['orchestrator'].prune_images()
    if failures:
        click.echo(f"[!] {len(failures)} image(s) could not be removed")


def main():
    """
    Main entry point for the CLI.
    """
    cli(obj={})


if __name__ == '__main__':
    main()
