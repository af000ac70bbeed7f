"""Main CLI entrypoint for Shipyard."""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict

import click

from ..commands import SubprocessRunner
from ..config import RunConfiguration, load_config
from ..context import RunContext
from ..errors import BackupNotFoundError, ConfigurationError, ConfigValidationError
from ..events import get_status_from_events, read_events
from ..health import default_endpoints, probe_endpoints
from ..orchestrator import PipelineOrchestrator
from ..proxy import ReverseProxyManager, from_settings, render_config
from ..state import list_runs, run_exists
from ..supervisor import Pm2Supervisor
from ..transform import ConversionOptions, TransformationEngine, convert_files, scan_targets


@click.group()
@click.option('--json', 'output_json', is_flag=True, help='Output machine-readable JSON')
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False), help='Path to shipyard.yml')
@click.option('--workspace', '-w', type=click.Path(file_okay=False), help='Workspace root (default: current directory)')
@click.option('--set', 'overrides', multiple=True, help='Override a config value, e.g. proxy.listen_port=8080')
@click.pass_context
def main(ctx, output_json, verbose, config_path, workspace, overrides):
    """Shipyard - build and deploy orchestrator."""
    ctx.ensure_object(dict)
    ctx.obj['json'] = output_json
    ctx.obj['config_path'] = config_path
    ctx.obj['workspace'] = workspace
    ctx.obj['overrides'] = list(overrides)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _json_output(data: Dict[str, Any]) -> None:
    """Output data as JSON."""
    print(json.dumps(data, indent=None, default=str))


def _human_output(message: str) -> None:
    """Output human-readable message."""
    if not click.get_current_context().obj.get('json', False):
        click.echo(message)


def _fail(message: str, code: int = 1) -> None:
    if click.get_current_context().obj.get('json', False):
        _json_output({'error': message})
    else:
        click.echo(f"❌ {message}", err=True)
    sys.exit(code)


def _load(ctx) -> RunConfiguration:
    try:
        return load_config(ctx.obj['config_path'], ctx.obj['workspace'], ctx.obj['overrides'])
    except ConfigurationError as e:
        _fail(f"Configuration error: {e}", 2)


def _run_pipeline(ctx, pipeline: str) -> None:
    config = _load(ctx)
    run_ctx = RunContext(config=config)
    orchestrator = PipelineOrchestrator(run_ctx, runner=SubprocessRunner())
    report = orchestrator.run_deploy() if pipeline == 'deploy' else orchestrator.run_build()

    if ctx.obj['json']:
        _json_output(report.to_dict())
    else:
        _print_report_human(report.to_dict())
    sys.exit(0 if report.success else 1)


@main.command()
@click.pass_context
def build(ctx):
    """Validate the workspace and build backend and frontend."""
    _run_pipeline(ctx, 'build')


@main.command()
@click.pass_context
def deploy(ctx):
    """Build, configure nginx, start under pm2 and probe health."""
    _run_pipeline(ctx, 'deploy')


@main.command()
@click.argument('paths', nargs=-1, required=True, type=click.Path(exists=True))
@click.option('--check', is_flag=True, help='Report what would change without writing files')
@click.option('--no-shim', is_flag=True, help='Never inject the browser-globals shim')
@click.option('--backup', is_flag=True, help='Copy each file to .conversion-backup/ before writing')
@click.option('--cjs', 'rename_to_cjs', is_flag=True, help='Write .cjs files and retarget relative requires')
@click.option('--keep-partial', is_flag=True, help='Write files even when residual ESM syntax remains')
@click.pass_context
def convert(ctx, paths, check, no_shim, backup, rename_to_cjs, keep_partial):
    """Convert ESM sources under PATHS to CommonJS."""
    files = []
    for path in paths:
        files.extend(scan_targets(path))

    engine = TransformationEngine(inject_shim=not no_shim)
    options = ConversionOptions(write=not check, backup=backup, keep_partial=keep_partial,
                                rename_to_cjs=rename_to_cjs)
    batch = convert_files(files, engine, options)

    if ctx.obj['json']:
        _json_output(batch.to_dict())
    else:
        _human_output(f"🔁 {batch.summary()}")
        for report in batch.succeeded:
            if report.needed:
                counts = ", ".join(f"{k}={v}" for k, v in report.category_counts.items())
                _human_output(f"  ✅ {report.path} ({counts})")
        for report in batch.failed:
            _human_output(f"  ❌ {report.path}: {report.error or ', '.join(report.violations)}")
    sys.exit(0 if batch.ok else 1)


@main.group()
def proxy():
    """Manage the nginx configuration."""


def _proxy_manager(config: RunConfiguration) -> ReverseProxyManager:
    return ReverseProxyManager(
        SubprocessRunner(),
        config_path=config.proxy.config_path,
        backup_dir=config.proxy.backup_dir,
        binary=config.proxy.binary,
        timeout=config.timeouts.proxy,
    )


@proxy.command('render')
@click.option('--output', '-o', type=click.Path(dir_okay=False), help='Write to a file instead of stdout')
@click.pass_context
def proxy_render(ctx, output):
    """Render the nginx configuration for the current settings."""
    config = _load(ctx)
    text = render_config(from_settings(config.proxy, enable_tls=config.enable_tls))
    if output:
        Path(output).write_text(text, encoding="utf-8")
        _human_output(f"📝 Wrote {output}")
    else:
        click.echo(text, nl=False)


@proxy.command('apply')
@click.option('--no-reload', is_flag=True, help='Do not reload nginx after applying')
@click.pass_context
def proxy_apply(ctx, no_reload):
    """Back up, write and validate the nginx configuration."""
    config = _load(ctx)
    manager = _proxy_manager(config)
    text = manager.generate(from_settings(config.proxy, enable_tls=config.enable_tls))
    try:
        backup = manager.apply(text)
    except ConfigValidationError as e:
        hint = f" Restore with: shipyard proxy restore {manager.last_backup}" if manager.last_backup else ""
        _fail(f"{e}: {e.output}.{hint}")
    except OSError as e:
        _fail(f"Could not write {manager.config_path}: {e}")

    reloaded = None
    if not no_reload:
        reloaded = manager.reload().ok

    if ctx.obj['json']:
        _json_output({'config_path': str(manager.config_path), 'backup': str(backup) if backup else None,
                      'reloaded': reloaded})
    else:
        _human_output(f"✅ Applied {manager.config_path}")
        if backup:
            _human_output(f"💾 Previous config saved to {backup}")
        if reloaded is False:
            _human_output("⚠️  nginx reload failed")
    sys.exit(1 if reloaded is False else 0)


@proxy.command('restore')
@click.argument('backup')
@click.option('--reload/--no-reload', 'do_reload', default=True, help='Reload nginx after restoring')
@click.pass_context
def proxy_restore(ctx, backup, do_reload):
    """Restore the nginx configuration from BACKUP."""
    config = _load(ctx)
    manager = _proxy_manager(config)
    try:
        manager.restore(backup)
    except BackupNotFoundError as e:
        _fail(str(e), 2)

    ok = manager.reload().ok if do_reload else True
    if ctx.obj['json']:
        _json_output({'restored': backup, 'config_path': str(manager.config_path), 'reloaded': do_reload and ok})
    else:
        _human_output(f"↩️  Restored {manager.config_path} from {backup}")
    sys.exit(0 if ok else 1)


@proxy.command('backups')
@click.pass_context
def proxy_backups(ctx):
    """List configuration backups, oldest first."""
    config = _load(ctx)
    backups = [str(p) for p in _proxy_manager(config).list_backups()]
    if ctx.obj['json']:
        _json_output({'backups': backups})
    elif not backups:
        _human_output("No backups found")
    else:
        for backup in backups:
            _human_output(backup)


@main.command()
@click.pass_context
def health(ctx):
    """Probe the service endpoints once."""
    config = _load(ctx)
    report = probe_endpoints(default_endpoints(config), timeout=config.timeouts.health)
    if ctx.obj['json']:
        _json_output({'healthy': report.all_healthy, 'results': [r.to_dict() for r in report.results]})
    else:
        for result in report.results:
            mark = "✅" if result.healthy else "❌"
            detail = result.status_code if result.healthy else result.error
            _human_output(f"{mark} {result.name}: {result.url} ({detail})")
        _human_output(report.summary())
    sys.exit(0 if report.all_healthy else 1)


@main.command('supervisor-status')
@click.pass_context
def supervisor_status(ctx):
    """Show pm2 process status."""
    config = _load(ctx)
    sup = config.supervisor
    supervisor = Pm2Supervisor(SubprocessRunner(), workspace=str(config.workspace_path),
                               manifest=sup.manifest, environment=sup.environment,
                               process_group=sup.process_group, binary=sup.binary,
                               timeout=config.timeouts.supervisor)
    status = supervisor.status()
    if ctx.obj['json']:
        _json_output(status.to_dict())
    elif status.error:
        _fail(f"pm2 status failed: {status.error}")
    else:
        _human_output(f"📊 {status.online}/{len(status.processes)} processes online")
        for p in status.processes:
            color = 'green' if p.online else 'red'
            _human_output(f"  {p.name}: {click.style(p.status, fg=color)} "
                          f"(pid {p.pid}, restarts {p.restarts}, mem {p.memory // (1024 * 1024)}MB)")
    sys.exit(0 if status.healthy else 1)


@main.command()
@click.argument('run_id', required=False)
@click.pass_context
def events(ctx, run_id):
    """Show the events of RUN_ID, or list recorded runs."""
    if run_id is None:
        runs = list_runs()
        if ctx.obj['json']:
            _json_output({'runs': [{'run_id': r, 'status': get_status_from_events(r)} for r in runs]})
        else:
            for r in runs:
                _human_output(f"{r}  {get_status_from_events(r)}")
        return

    if not run_exists(run_id):
        _fail(f"Run {run_id} not found", 2)

    items = read_events(run_id)
    if ctx.obj['json']:
        _json_output({'run_id': run_id, 'status': get_status_from_events(run_id), 'events': items})
        return
    _human_output(f"📊 Run {run_id}: {get_status_from_events(run_id)}")
    for event in items:
        _print_event_human(event)


def _print_event_human(event: Dict[str, Any]) -> None:
    event_type = event.get('type', 'UNKNOWN')
    time_str = event.get('ts', '')[11:19]
    data = event.get('data', {})
    if event_type in ('RUN_DONE', 'PHASE_DONE', 'HEALTH_OK', 'FILE_CONVERTED'):
        color = 'green'
    elif event_type in ('RUN_ABORTED', 'PHASE_FAILED', 'HEALTH_FAIL', 'FILE_CONVERSION_FAILED'):
        color = 'red'
    elif event_type in ('WARNING', 'ROLLBACK'):
        color = 'yellow'
    else:
        color = 'white'
    detail = data.get('phase') or data.get('summary') or data.get('message') or ''
    click.echo(f"[{time_str}] {click.style(event_type, fg=color)}: {detail}")


def _print_report_human(report: Dict[str, Any]) -> None:
    click.echo(f"📊 Run {report['run_id']} ({report['pipeline']})")
    for phase in report['phases']:
        mark = "✅" if phase['success'] else "❌"
        click.echo(f"  {mark} {phase['name']} ({phase['duration_ms']}ms)")
        error = phase.get('error')
        if error and error.get('hint'):
            click.echo(f"     💡 {error['hint']}")
    for error in report['errors']:
        if error['severity'] == 'recoverable':
            click.echo(f"  ⚠️  {error['phase']}: {error['message']}")
    color = 'green' if report['success'] else 'red'
    click.echo(click.style(report['summary'], fg=color))


if __name__ == '__main__':
    main()
