"""
Microseg Planner Command Line Interface.

Commands: analyze, plan, apply, vms, inspect, isolate, config, serve
"""

from __future__ import annotations

import functools
import json
import logging

import click

from . import __version__
from .client import DEFAULT_BASE_URL, DEFAULT_TIMEOUT, BackendClient
from .config.store import DEFAULT_CONFIG_DIR, ConfigStore, MicrosegConfig, YamlConfigBackend
from .errors import MicrosegError, PartialApplyError
from .generation.planner import ChangePlanGenerator
from .isolation.impact import AFFECTED_PREVIEW_LIMIT
from .isolation.models import SecurityLevel
from .service import MicrosegService


def _service(ctx: click.Context) -> MicrosegService:
    obj = ctx.find_root().obj
    if "service" not in obj:
        client = BackendClient(obj["api_url"], token=obj["api_token"], timeout=obj["timeout"])
        store = ConfigStore(YamlConfigBackend(obj["config_dir"]))
        obj["service"] = MicrosegService(client, store)
    return obj["service"]


def _handle_errors(f):
    """Report planner errors as click errors (exit code 1)."""

    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except PartialApplyError as e:
            _echo_created(e.result)
            for err in e.result.errors:
                click.echo(f"    ! {err}", err=True)
            raise click.ClickException(str(e)) from e
        except MicrosegError as e:
            raise click.ClickException(str(e)) from e

    return wrapper


def _echo_created(result) -> None:
    click.echo(f"[+] Created {len(result.created_aliases)} alias(es), "
               f"{len(result.created_groups)} security group(s)")
    for name in result.created_aliases:
        click.echo(f"    + alias {name}")
    for name in result.created_groups:
        click.echo(f"    + group {name}")


def _echo_config(connection: str, config: MicrosegConfig) -> None:
    click.echo(f"--- Config: {connection} ---")
    click.echo(f"Gateway mode:     {config.gateway_mode.value} (offset .{config.gateway_offset})")
    click.echo(f"Custom offset:    {config.custom_offset}")
    click.echo(f"Create gateways:  {'yes' if config.create_gateways else 'no'}")
    click.echo(f"Create base SGs:  {'yes' if config.create_base_sgs else 'no'}")
    click.echo(f"Show excluded:    {'yes' if config.show_excluded else 'no'}")
    click.echo(f"Exclude patterns: {', '.join(config.exclude_patterns) or '(none)'}")


@click.group()
@click.version_option(version=__version__)
@click.option("--api-url", envvar="MICROSEG_API_URL", default=DEFAULT_BASE_URL,
              show_default=True, help="Firewall backend base URL")
@click.option("--api-token", envvar="MICROSEG_API_TOKEN", default=None,
              help="Bearer token for the backend")
@click.option("--config-dir", envvar="MICROSEG_CONFIG_DIR", default=DEFAULT_CONFIG_DIR,
              show_default=True, help="Directory of per-connection YAML configs")
@click.option("--timeout", default=DEFAULT_TIMEOUT, show_default=True,
              help="Backend request timeout in seconds")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx, api_url: str, api_token: str | None, config_dir: str, timeout: float, verbose: bool):
    """Microseg Planner: micro-segmentation planning and VM isolation"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj.setdefault("api_url", api_url)
    ctx.obj.setdefault("api_token", api_token)
    ctx.obj.setdefault("config_dir", config_dir)
    ctx.obj.setdefault("timeout", timeout)


# --- Readiness and generation ---


@cli.command()
@click.argument("connection")
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
@click.pass_context
@_handle_errors
def analyze(ctx, connection: str, as_json: bool):
    """Analyze network readiness for a connection."""
    svc = _service(ctx)
    config = svc.config(connection)
    if not as_json:
        click.echo(f"[*] Analyzing {connection} (gateway .{config.gateway_offset})...")
    report = svc.report(connection, refresh=True)

    if as_json:
        click.echo(json.dumps(report.to_dict(show_excluded=config.show_excluded), indent=2))
        return

    status = "READY" if report.segmentation_ready else "not ready"
    click.echo(f"\n--- Readiness: {connection} ---")
    click.echo(f"Readiness:       {report.readiness_percent}% ({status})")
    click.echo(f"VMs isolated:    {report.isolated_vms}/{report.total_vms} "
               f"({report.isolation_percent}%), {report.unprotected_vms} unprotected")
    click.echo(f"\nNetworks in scope ({len(report.included)}):")
    for net in report.included:
        gw = "gw" if net.has_gateway else "--"
        sg = "sg" if net.has_base_sg else "--"
        click.echo(f"  [{gw}|{sg}] {net.name:24s} {net.cidr}")
    if config.show_excluded and report.excluded:
        click.echo(f"\nExcluded ({len(report.excluded)}):")
        for net in report.excluded:
            click.echo(f"  [skip]  {net.name:24s} {net.cidr}")
    elif report.excluded:
        click.echo(f"\n{len(report.excluded)} infrastructure network(s) excluded")

    if report.missing_gateways:
        click.echo(f"\nMissing gateway aliases ({len(report.missing_gateways)}):")
        for gw in report.missing_gateways:
            click.echo(f"  {gw.alias_name} -> {gw.gateway_ip}")
    if report.missing_base_sgs:
        click.echo(f"\nMissing base SGs ({len(report.missing_base_sgs)}):")
        for sg in report.missing_base_sgs:
            click.echo(f"  {sg.sg_name} ({sg.network_name})")


@cli.command()
@click.argument("connection")
@click.pass_context
@_handle_errors
def plan(ctx, connection: str):
    """Dry-run generation of missing gateway aliases and base SGs."""
    svc = _service(ctx)
    click.echo(f"[*] Analyzing {connection}...")
    svc.analyze(connection)

    pending = svc.pending_changes(connection)
    if pending.skipped_gateways:
        click.echo(f"[!] {pending.skipped_gateways} missing gateway alias(es) skipped "
                   f"(gateway creation disabled)")

    result = svc.preview(connection)
    if result is None:
        click.echo("[+] Nothing missing in scope, no changes needed")
        return

    click.echo(f"\n--- Plan: {connection} ({len(result.plan)} action(s)) ---")
    for action in result.plan:
        click.echo(f"  {action.type:16s} {action.name:28s} {action.description}")
    for err in result.errors:
        click.echo(f"  ! {err}")
    if ChangePlanGenerator.can_confirm(result):
        click.echo(f"\nRun 'microseg-planner apply {connection}' to create these objects.")


@cli.command()
@click.argument("connection")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
@_handle_errors
def apply(ctx, connection: str, yes: bool):
    """Create missing gateway aliases and base SGs."""
    svc = _service(ctx)
    click.echo(f"[*] Analyzing {connection}...")
    svc.analyze(connection)

    preview = svc.preview(connection)
    if not ChangePlanGenerator.can_confirm(preview):
        click.echo("[+] Nothing to apply")
        return

    click.echo(f"\n--- Pending changes ({len(preview.plan)}) ---")
    for action in preview.plan:
        click.echo(f"  {action.type:16s} {action.name}")
    if not yes:
        click.confirm("Apply these changes?", abort=True)

    result = svc.apply(connection)
    if result is None:
        click.echo("[+] Nothing to apply")
        return
    _echo_created(result)
    report = svc.report(connection)
    click.echo(f"[+] Readiness now {report.readiness_percent}%")


# --- VMs and isolation ---


@cli.command()
@click.argument("connection")
@click.option("--network", default=None, help="Only VMs on this network")
@click.option("--search", default="", help="Match name, vmid or node")
@click.pass_context
@_handle_errors
def vms(ctx, connection: str, network: str | None, search: str):
    """List VMs with their isolation status."""
    rows = _service(ctx).vm_rows(connection, network=network, search=search)
    click.echo(f"--- VMs: {connection} ({len(rows)}) ---")
    for row in rows:
        nets = ", ".join(
            f"{n['name']} (excluded)" if n["excluded"] else n["name"] for n in row["networks"]
        )
        click.echo(f"  {row['vmid']:>6} {row['name']:20s} {row['node']:10s} "
                   f"{row['type']:5s} [{row['badge']}] {nets}")


def _open(svc: MicrosegService, connection: str, node: str, vm_type: str, vmid: int):
    vm = svc.find_vm(connection, node, vm_type, vmid)
    if vm is None:
        raise click.ClickException(f"VM {vmid} not found on {node} ({vm_type})")
    return svc.open_session(connection, vm)


@cli.command()
@click.argument("connection")
@click.argument("node")
@click.argument("vm_type", metavar="TYPE", type=click.Choice(["qemu", "lxc"]))
@click.argument("vmid", type=int)
@click.pass_context
@_handle_errors
def inspect(ctx, connection: str, node: str, vm_type: str, vmid: int):
    """Show a VM's interfaces and the simulated impact of isolating it."""
    svc = _service(ctx)
    session = _open(svc, connection, node, vm_type, vmid)
    try:
        status = session.status
        click.echo(f"--- VM {vmid} {session.vm.name} on {node} ---")
        click.echo(f"Firewall: {'on' if status.firewall_enabled else 'off'}, "
                   f"in={status.policy_in or '-'}, out={status.policy_out or '-'}, "
                   f"isolated={'yes' if status.is_isolated else 'no'}")
        click.echo("\nInterfaces:")
        for opt in session.options:
            mark = "x" if session.selected_interfaces.get(opt.interface) else " "
            note = f" ({opt.reason})" if opt.reason else ""
            click.echo(f"  [{mark}] {opt.interface:6s} {opt.network or '-':24s} "
                       f"{opt.base_sg or '-'}{note}")

        view = svc.impact_view(session)
        if view is None:
            return
        click.echo("\nWhat will change:")
        for gw in view.allowed_gateways:
            click.echo(f"  allow  {gw}")
        for net in view.blocked_networks:
            click.echo(f"  block  intra-VLAN traffic on {net}")
        if view.affected_vms:
            click.echo(f"\nAffected VMs ({len(view.affected_vms)}):")
            for peer in view.affected_preview:
                click.echo(f"  {peer.vmid:>6} {peer.name:20s} {peer.impact}")
            if len(view.affected_vms) > AFFECTED_PREVIEW_LIMIT:
                click.echo(f"  ... and {len(view.affected_vms) - AFFECTED_PREVIEW_LIMIT} more")
        for warning in view.warnings:
            click.echo(f"[!] {warning}")
        if view.hidden_warnings:
            click.echo(f"    ({view.hidden_warnings} warning(s) about excluded networks hidden)")
    finally:
        svc.close_session(session)


@cli.command()
@click.argument("connection")
@click.argument("node")
@click.argument("vm_type", metavar="TYPE", type=click.Choice(["qemu", "lxc"]))
@click.argument("vmid", type=int)
@click.option("--iface", "interfaces", multiple=True,
              help="Interface to isolate on (repeatable, default: all eligible)")
@click.option("--level", type=click.Choice([lvl.value for lvl in SecurityLevel]),
              default=SecurityLevel.STANDARD.value, show_default=True,
              help="standard drops inbound, reinforced also drops outbound")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
@_handle_errors
def isolate(ctx, connection: str, node: str, vm_type: str, vmid: int,
            interfaces: tuple[str, ...], level: str, yes: bool):
    """Isolate a VM behind its base security groups."""
    svc = _service(ctx)
    session = _open(svc, connection, node, vm_type, vmid)
    try:
        if interfaces:
            refused = session.select(interfaces)
            if refused:
                raise click.ClickException(f"Interface(s) not selectable: {', '.join(refused)}")
        session.set_security_level(level)
        request = session.compose()

        click.echo(f"[*] Isolating VM {vmid} ({session.vm.name}) at {level} level")
        click.echo(f"    security groups: {', '.join(request.additional_sgs)}")
        if not yes:
            click.confirm("Proceed?", abort=True)
        result = svc.isolate(session)
    finally:
        svc.close_session(session)

    for action in result.actions:
        click.echo(f"    - {action}")
    for err in result.errors:
        click.echo(f"    ! {err}", err=True)
    if not result.success:
        raise click.ClickException(f"Isolation of VM {vmid} failed")
    click.echo(f"[+] VM {vmid} isolated")


# --- Configuration ---


@cli.group()
def config():
    """Per-connection settings and exclusion patterns."""


@config.command("show")
@click.argument("connection")
@click.pass_context
@_handle_errors
def config_show(ctx, connection: str):
    """Show the settings of a connection."""
    _echo_config(connection, _service(ctx).config(connection))


@config.command("set")
@click.argument("connection")
@click.option("--gateway-mode", type=click.Choice(["first", "last", "custom"]), default=None)
@click.option("--custom-offset", type=int, default=None, help="Host offset 1-254")
@click.option("--create-gateways/--no-create-gateways", default=None)
@click.option("--create-base-sgs/--no-create-base-sgs", default=None)
@click.option("--show-excluded/--hide-excluded", default=None)
@click.pass_context
@_handle_errors
def config_set(ctx, connection: str, **options):
    """Change gateway and generation settings."""
    changes = {k: v for k, v in options.items() if v is not None}
    if not changes:
        raise click.UsageError("Nothing to change")
    _echo_config(connection, _service(ctx).update_config(connection, changes))


@config.command("exclude-add")
@click.argument("connection")
@click.argument("pattern")
@click.pass_context
@_handle_errors
def config_exclude_add(ctx, connection: str, pattern: str):
    """Add an infrastructure exclusion pattern."""
    cfg = _service(ctx).add_pattern(connection, pattern)
    click.echo(f"[+] Exclude patterns: {', '.join(cfg.exclude_patterns)}")


@config.command("exclude-remove")
@click.argument("connection")
@click.argument("pattern")
@click.pass_context
@_handle_errors
def config_exclude_remove(ctx, connection: str, pattern: str):
    """Remove an exclusion pattern."""
    cfg = _service(ctx).remove_pattern(connection, pattern)
    click.echo(f"[+] Exclude patterns: {', '.join(cfg.exclude_patterns) or '(none)'}")


@config.command("exclude-reset")
@click.argument("connection")
@click.pass_context
@_handle_errors
def config_exclude_reset(ctx, connection: str):
    """Restore the default exclusion patterns."""
    cfg = _service(ctx).reset_patterns(connection)
    click.echo(f"[+] Exclude patterns: {', '.join(cfg.exclude_patterns)}")


@cli.command()
@click.option("--host", default="127.0.0.1", help="API host")
@click.option("--port", default=5000, help="API port")
@click.pass_context
def serve(ctx, host: str, port: int):
    """Run the REST API."""
    from .api import create_app

    click.echo(f"[*] Starting Microseg Planner API on {host}:{port}")
    app = create_app(_service(ctx))
    app.run(host=host, port=port)


if __name__ == "__main__":
    cli()
