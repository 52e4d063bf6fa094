#!/usr/bin/env python3
"""
Command line interface for the RADIUS/EAP diagnostics engine.

This module provides the main CLI entry point for running EAP login
probes and direct TLS checks from the command line.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from ..main import RADIUSDiagnostics
from ..core.config import DiagnosticsConfig, load_config, load_profile
from ..core.eap_types import EAPType
from ..core.models import DiagnosticsError

console = Console()

FORMATS = ['json', 'markdown', 'md', 'text', 'txt']


def setup_logging(level: str = "INFO"):
    """Setup logging configuration."""
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f'Invalid log level: {level}')

    logging.basicConfig(
        level=numeric_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stderr)
        ]
    )


def _emit(diagnostics: RADIUSDiagnostics, output_format: str, output: Optional[str]):
    report = diagnostics.generate_report(output_format)
    if output:
        Path(output).write_text(report)
        click.echo(f"Report saved to: {output}")
    else:
        click.echo(report)


@click.group()
@click.option('--log-level', default='WARNING',
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']),
              help='Set logging level')
@click.option('--config-file', type=click.Path(exists=True),
              help='Configuration file path (JSON or YAML)')
@click.pass_context
def cli(ctx, log_level: str, config_file: Optional[str]):
    """RADIUS/EAP authentication diagnostics CLI."""
    setup_logging(log_level)

    config = DiagnosticsConfig()
    if config_file:
        try:
            config = load_config(config_file)
        except DiagnosticsError as e:
            click.echo(f"Error loading config file: {e}", err=True)
            sys.exit(1)

    ctx.ensure_object(dict)
    ctx.obj['config'] = config
    ctx.obj['log_level'] = log_level


@cli.command()
@click.argument('probe_index', type=int)
@click.option('--realm', required=True, help='Realm to test')
@click.option('--no-opname', is_flag=True, help='Do not send Operator-Name')
@click.option('--no-frag', is_flag=True, help='Do not force UDP fragmentation')
@click.option('--format', '-f', 'output_format', default='text',
              type=click.Choice(FORMATS), help='Output format')
@click.option('--output', '-o', type=click.Path(), help='Output file path')
@click.pass_context
def reachability(ctx, probe_index: int, realm: str, no_opname: bool, no_frag: bool,
                 output_format: str, output: Optional[str]):
    """Check whether REALM answers at all, using made-up credentials."""
    try:
        diagnostics = RADIUSDiagnostics(realm, config=ctx.obj['config'])
        diagnostics.udp_reachability(probe_index, operator_name=not no_opname,
                                     fragment=not no_frag)
        _emit(diagnostics, output_format, output)
    except DiagnosticsError as e:
        click.echo(f"Reachability check failed: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument('probe_index', type=int)
@click.option('--eap-type', required=True, help='EAP type, e.g. PEAP-MSCHAPv2')
@click.option('--user', required=True, help='Inner identity')
@click.option('--password', prompt=True, hide_input=True, help='Password')
@click.option('--outer', default='', help='Outer identity or realm fragment')
@click.option('--realm', default='', help='Realm under test (default: profile realm)')
@click.option('--profile', 'profile_file', type=click.Path(exists=True),
              help='Profile file (JSON or YAML) with CA certificates and server names')
@click.option('--client-cert', type=click.Path(exists=True),
              help='PKCS#12 client certificate')
@click.option('--no-opname', is_flag=True, help='Do not send Operator-Name')
@click.option('--no-frag', is_flag=True, help='Do not force UDP fragmentation')
@click.option('--format', '-f', 'output_format', default='text',
              type=click.Choice(FORMATS), help='Output format')
@click.option('--output', '-o', type=click.Path(), help='Output file path')
@click.pass_context
def login(ctx, probe_index: int, eap_type: str, user: str, password: str, outer: str,
          realm: str, profile_file: Optional[str], client_cert: Optional[str],
          no_opname: bool, no_frag: bool, output_format: str, output: Optional[str]):
    """Perform a real EAP login against probe PROBE_INDEX."""
    try:
        selected = EAPType.from_label(eap_type)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint='--eap-type')

    try:
        profile = load_profile(profile_file) if profile_file else None
        tested_realm = realm or (profile.realm if profile else '')
        diagnostics = RADIUSDiagnostics(tested_realm, config=ctx.obj['config'], profile=profile)
        diagnostics.udp_login(
            probe_index, selected, user, password,
            outer_user=outer,
            operator_name=not no_opname,
            fragment=not no_frag,
            client_cert=Path(client_cert).read_bytes() if client_cert else None,
        )
        _emit(diagnostics, output_format, output)
    except DiagnosticsError as e:
        click.echo(f"Login check failed: {e}", err=True)
        sys.exit(1)


@cli.command('tls-ca')
@click.argument('host')
@click.option('--format', '-f', 'output_format', default='text',
              type=click.Choice(FORMATS), help='Output format')
@click.option('--output', '-o', type=click.Path(), help='Output file path')
@click.pass_context
def tls_ca(ctx, host: str, output_format: str, output: Optional[str]):
    """Check the CA of the TLS server at HOST:PORT."""
    try:
        diagnostics = RADIUSDiagnostics('', config=ctx.obj['config'])
        diagnostics.ca_path_check(host)
        _emit(diagnostics, output_format, output)
    except DiagnosticsError as e:
        click.echo(f"TLS CA check failed: {e}", err=True)
        sys.exit(1)


@cli.command('tls-clients')
@click.argument('host')
@click.option('--format', '-f', 'output_format', default='text',
              type=click.Choice(FORMATS), help='Output format')
@click.option('--output', '-o', type=click.Path(), help='Output file path')
@click.pass_context
def tls_clients(ctx, host: str, output_format: str, output: Optional[str]):
    """Check which test client certificates the TLS server at HOST:PORT accepts."""
    try:
        diagnostics = RADIUSDiagnostics('', config=ctx.obj['config'])
        diagnostics.tls_clients_side_check(host)
        _emit(diagnostics, output_format, output)
    except DiagnosticsError as e:
        click.echo(f"TLS client check failed: {e}", err=True)
        sys.exit(1)


@cli.command('list-eap-types')
def list_eap_types():
    """List the EAP types that can be tested."""
    table = Table(title="EAP types")
    table.add_column("Name")
    table.add_column("Outer")
    table.add_column("Inner")
    table.add_column("Client certificate")
    for eap_type in EAPType:
        table.add_row(
            eap_type.label,
            eap_type.outer or "not testable",
            eap_type.inner or "-",
            "yes" if eap_type.client_certificate else "no",
        )
    console.print(table)


def main():
    """Main CLI entry point."""
    try:
        cli()
    except KeyboardInterrupt:
        click.echo("\nOperation cancelled by user", err=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
