"""Report generation (text and JSON) for keystores."""

import json
import logging
from dataclasses import asdict
from typing import Any

from apns_keystore.keystore import Keystore
from apns_keystore.models import EntryType, KeystoreSummary

logger = logging.getLogger(__name__)

# Global flag for colored output
_use_color = True


def set_color_output(enabled: bool) -> None:
    """Enable or disable colored output."""
    global _use_color
    _use_color = enabled


def summarize_keystore(keystore: Keystore, source: str, **kwargs: Any) -> KeystoreSummary:
    """Collect the printable description of a keystore."""
    return KeystoreSummary(
        source=source,
        keystore_type=keystore.keystore_type,
        entries=keystore.entry_infos(),
        **kwargs,
    )


def _format_entry_type(entry_type: EntryType) -> str:
    """Format entry type with visual indicator."""
    label = "Private key" if entry_type == EntryType.PRIVATE_KEY else "Certificate"
    if _use_color:
        from io import StringIO

        from rich.console import Console

        output = StringIO()
        console = Console(file=output, force_terminal=True, width=1000)
        color = "magenta" if entry_type == EntryType.PRIVATE_KEY else "green"
        console.print(f"[{color}]{label}[/{color}]", end="")
        return output.getvalue().strip()
    return label


def generate_text_report(summary: KeystoreSummary) -> str:
    """
    Generate human-readable text report.

    Args:
        summary: KeystoreSummary to report

    Returns:
        Formatted text report
    """
    lines = []
    lines.append("=" * 70)
    lines.append("Keystore Report")
    lines.append("=" * 70)
    lines.append(f"Source: {summary.source}")
    if summary.endpoint:
        lines.append(f"Endpoint: {summary.endpoint}")
    lines.append(f"Type: {summary.keystore_type}")
    lines.append(f"Entries: {len(summary.entries)}")
    lines.append("")

    for entry in summary.entries:
        lines.append("-" * 70)
        lines.append(f"Alias: {entry.alias}")
        lines.append(f"  Type:       {_format_entry_type(entry.entry_type)}")
        lines.append(f"  Subject:    {entry.subject}")
        lines.append(f"  Issuer:     {entry.issuer}")
        lines.append(f"  Serial:     {entry.serial_number}")
        lines.append(f"  Not Before: {entry.not_before}")
        lines.append(f"  Not After:  {entry.not_after}")
        lines.append(f"  SHA1:       {entry.fingerprint_sha1}")
        lines.append(f"  MD5:        {entry.fingerprint_md5}")
        if entry.entry_type == EntryType.PRIVATE_KEY:
            lines.append(f"  Chain:      {entry.chain_length} certificate(s)")

    lines.append("=" * 70)
    return "\n".join(lines)


def generate_json_report(summary: KeystoreSummary) -> str:
    """
    Generate JSON report.

    Args:
        summary: KeystoreSummary to report

    Returns:
        JSON string
    """
    # EntryType is a str enum and serializes as its value
    data = asdict(summary)
    return json.dumps(data, indent=2)
