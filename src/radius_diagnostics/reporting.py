"""
Report rendering for diagnostics results.

Works on the plain-data form produced by ``RADIUSDiagnostics.collect_results``
so that stored results can be re-rendered without re-running probes.
"""

import io
import json
from typing import Dict, Any

from rich.console import Console
from rich.table import Table

RESULT_HEADINGS = {
    'OK': "Authentication completed",
    'INVALID': "Unexpected result",
    'NOT_CONFIGURED': "Not configured",
    'INCOMPLETE_DATA': "Not enough data to run the test",
    'NO_RESPONSE': "No response from the server",
    'IMMEDIATE_REJECT': "Rejected without EAP conversation",
    'CONVERSATION_REJECT': "Rejected after EAP conversation",
    'SERVER_UNFINISHED_COMM': "Server did not finish the conversation",
    'CONNECTION_REFUSED': "Connection refused",
    'SKIPPED': "Skipped",
}


def generate_report(results: Dict[str, Any], output_format: str = 'json') -> str:
    """
    Render collected results.

    Args:
        results: Output of ``RADIUSDiagnostics.collect_results``
        output_format: 'json', 'markdown'/'md' or 'text'/'txt'

    Returns:
        Formatted report string
    """
    fmt = output_format.lower()
    if fmt in ('markdown', 'md'):
        return _generate_markdown_report(results)
    if fmt in ('text', 'txt'):
        return _generate_text_report(results)
    # Default to JSON for unknown formats
    return json.dumps(results, indent=2, default=str)


def _oddity_line(oddity: Dict[str, Any]) -> str:
    subject = f" ({oddity['subject']})" if oddity.get('subject') else ""
    return f"{oddity['severity'].upper()}: {oddity['code']}{subject} - {oddity['description']}"


def _generate_markdown_report(results: Dict[str, Any]) -> str:
    md = f"# RADIUS/EAP Diagnostics: {results.get('realm', '')}\n\n"
    md += f"Generated: {results.get('generated', '')}\n\n"

    udp = results.get('udp', {})
    if udp:
        md += "## EAP login probes\n\n"
        for index, result in udp.items():
            code = result['return_code']
            md += f"### Probe {index}: {code}\n\n"
            md += f"{RESULT_HEADINGS.get(code, code)}"
            if result.get('time_millisec'):
                md += f" in {result['time_millisec']:.0f} ms"
            md += "\n\n"
            if result.get('packetflow'):
                md += f"- Packet flow: `{result['packetflow']}`"
                if result.get('packetflow_sane') is False:
                    md += " (not sane)"
                md += "\n"
            if result.get('name_match'):
                md += f"- Server name match: {result['name_match']}\n"
            if result.get('trust_verdict') and result['trust_verdict'] != 'not_run':
                md += f"- Trust verdict: {result['trust_verdict']}\n"
            for cert in result.get('certdata', []):
                md += f"- Certificate ({cert['type']}): `{cert['subject']}`\n"
            oddities = result.get('cert_oddities', [])
            if oddities:
                md += "\n| Severity | Code | Subject | Description |\n|---|---|---|---|\n"
                for oddity in oddities:
                    md += (f"| {oddity['severity']} | {oddity['code']} | "
                           f"{oddity.get('subject') or ''} | {oddity['description']} |\n")
            md += "\n"

    tls_ca = results.get('tls_ca', {})
    if tls_ca:
        md += "## TLS CA checks\n\n"
        for host, result in tls_ca.items():
            md += f"- `{host}`: {result['return_code']}"
            if result.get('cert_oddity'):
                md += f" ({result['cert_oddity']})"
            md += "\n"

    tls_clients = results.get('tls_clients', {})
    if tls_clients:
        md += "\n## TLS client certificate checks\n\n"
        for host, result in tls_clients.items():
            md += f"### {host}: {result['return_code']}\n\n"
            for cert_set in result.get('ca', []):
                md += f"- {cert_set['from']} ({cert_set['status']})\n"
                for cert in cert_set.get('certificate', []):
                    state = "connected" if cert['connected'] else cert.get('resultcomment', '')
                    flag = f" **{cert['oddity']}**" if cert.get('oddity') else ""
                    md += f"  - {cert['status']}, expected {cert['expected']}: {state}{flag}\n"
            md += "\n"

    return md


def _generate_text_report(results: Dict[str, Any]) -> str:
    """Generate a plain text report with rich tables."""
    buffer = io.StringIO()
    console = Console(file=buffer, width=120, force_terminal=False, color_system=None)

    console.print(f"RADIUS/EAP DIAGNOSTICS REPORT - {results.get('realm', '')}")
    console.print(f"Generated: {results.get('generated', '')}\n")

    udp = results.get('udp', {})
    if udp:
        table = Table(title="EAP login probes")
        table.add_column("Probe")
        table.add_column("Result")
        table.add_column("Time (ms)", justify="right")
        table.add_column("Packet flow")
        table.add_column("Names")
        table.add_column("Trust")
        for index, result in udp.items():
            table.add_row(
                index,
                result['return_code'],
                f"{result.get('time_millisec', 0):.0f}",
                " ".join(str(p) for p in result.get('packetflow', [])),
                result.get('name_match') or "-",
                result.get('trust_verdict', '-'),
            )
        console.print(table)

        for index, result in udp.items():
            oddities = result.get('cert_oddities', [])
            if not oddities:
                continue
            console.print(f"\nProbe {index} oddities:")
            for oddity in oddities:
                console.print(f"  {_oddity_line(oddity)}", markup=False)

    tls_ca = results.get('tls_ca', {})
    if tls_ca:
        table = Table(title="TLS CA checks")
        table.add_column("Host")
        table.add_column("Result")
        table.add_column("Oddity")
        table.add_column("Subject")
        for host, result in tls_ca.items():
            certdata = result.get('certdata') or {}
            table.add_row(host, result['return_code'], result.get('cert_oddity') or "-",
                          certdata.get('subject', "-"))
        console.print(table)

    tls_clients = results.get('tls_clients', {})
    if tls_clients:
        table = Table(title="TLS client certificate checks")
        table.add_column("Host")
        table.add_column("Set")
        table.add_column("Certificate")
        table.add_column("Expected")
        table.add_column("Connected")
        table.add_column("Oddity")
        table.add_column("Comment")
        for host, result in tls_clients.items():
            if not result.get('ca'):
                table.add_row(host, "-", "-", "-", "-", "-", result['return_code'])
            for cert_set in result.get('ca', []):
                for cert in cert_set.get('certificate', []):
                    table.add_row(
                        host, cert_set['from'], cert['status'], cert['expected'],
                        "yes" if cert['connected'] else "no",
                        cert.get('oddity') or "-",
                        cert.get('resultcomment', ''),
                    )
        console.print(table)

    return buffer.getvalue()
