"""CLI entry point using Typer."""

import logging
import sys
from pathlib import Path
from typing import Optional

import typer

from apns_keystore.exceptions import HarvestError, KeystoreError
from apns_keystore.loader import load_keystore
from apns_keystore.models import (
    DEFAULT_HANDSHAKE_TIMEOUT,
    DEFAULT_KEYSTORE_TYPE,
    FEEDBACK_PRODUCTION,
    FEEDBACK_SANDBOX,
    Endpoint,
)
from apns_keystore.network import harvest_certificate
from apns_keystore.reporter import (
    generate_json_report,
    generate_text_report,
    set_color_output,
    summarize_keystore,
)

app = typer.Typer(help="Harvest push service certificates and inspect keystores")

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s: %(message)s",
)


def _set_verbose(verbose: bool) -> None:
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logging.getLogger("apns_keystore").setLevel(logging.DEBUG)


def _print_report(summary, json_output: bool) -> None:
    if json_output:
        print(generate_json_report(summary))
    else:
        print(generate_text_report(summary))


@app.command()
def harvest(
    host: Optional[str] = typer.Option(None, "--host", help=f"Host (default: {FEEDBACK_PRODUCTION.host})"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help=f"Port (default: {FEEDBACK_PRODUCTION.port})"),
    sandbox: bool = typer.Option(False, "--sandbox", help="Use the sandbox feedback service"),
    timeout: float = typer.Option(DEFAULT_HANDSHAKE_TIMEOUT, "--timeout", "-t", help="Handshake timeout in seconds"),
    ca_bundle: Optional[Path] = typer.Option(None, "--ca-bundle", help="Custom CA bundle (PEM) for the trust check"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the harvested keystore to this file"),
    output_type: str = typer.Option(DEFAULT_KEYSTORE_TYPE, "--type", help="Output keystore type (PKCS12 or PEM)"),
    password: Optional[str] = typer.Option(None, "--password", help="Password for the written keystore"),
    json_output: bool = typer.Option(False, "--json", "-j", help="JSON output"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    color: bool = typer.Option(True, "--color/--no-color", help="Enable/disable colored output"),
):
    """
    Harvest the certificate presented by a push service endpoint.

    The certificate is fetched without validating it, for pinning purposes.
    """
    logger = logging.getLogger(__name__)
    _set_verbose(verbose)
    set_color_output(color)

    default = FEEDBACK_SANDBOX if sandbox else FEEDBACK_PRODUCTION
    endpoint = Endpoint(host or default.host, port or default.port, timeout)

    try:
        keystore = harvest_certificate(endpoint, ca_bundle=ca_bundle)
    except HarvestError as e:
        logger.error(f"Harvest from {endpoint} failed: {e}")
        sys.exit(2)

    if output:
        try:
            data = keystore.store(password, keystore_type=output_type)
        except KeystoreError as e:
            logger.error(f"Could not write keystore: {e}")
            sys.exit(1)
        output.parent.mkdir(parents=True, exist_ok=True)
        with open(output, "wb") as f:
            f.write(data)
        logger.info(f"Keystore saved to {output}")

    _print_report(summarize_keystore(keystore, str(output or endpoint), endpoint=str(endpoint)), json_output)
    sys.exit(0)


@app.command()
def inspect(
    keystore: Path = typer.Argument(..., help="Keystore file"),
    keystore_type: str = typer.Option(DEFAULT_KEYSTORE_TYPE, "--type", help="Keystore type (PKCS12 or PEM)"),
    password: Optional[str] = typer.Option(None, "--password", help="Keystore password"),
    json_output: bool = typer.Option(False, "--json", "-j", help="JSON output"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    color: bool = typer.Option(True, "--color/--no-color", help="Enable/disable colored output"),
):
    """
    Load a keystore and list its entries.
    """
    logger = logging.getLogger(__name__)
    _set_verbose(verbose)
    set_color_output(color)

    try:
        loaded = load_keystore(keystore, keystore_type, password)
    except KeystoreError as e:
        logger.error(f"{type(e).__name__}: {e}")
        sys.exit(1)

    _print_report(summarize_keystore(loaded, str(keystore)), json_output)
    sys.exit(0)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
