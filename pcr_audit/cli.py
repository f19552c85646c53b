"""
CLI for PCR Attestation Audit Tool
==================================

Command-line interface for receiving and inspecting Nitro attestation evidence.

Commands:
    pcr-audit listen                         Receive documents from enclaves over vsock
    pcr-audit decode <file>                  Decode a captured document and print PCRs
    pcr-audit digest <identity>              Extend-from-zero SHA-384 of an identity
    pcr-audit compare <file> -p N -i ID      Check PCR N against an identity digest
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click

from pcr_canonical import __version__
from pcr_canonical.digest import calculate_sha384
from pcr_canonical.errors import EvidenceError
from pcr_canonical.validator import EvidenceReport, validate_document, validate_frame
from relay_tee.host import config
from relay_tee.host.listener import AttestationListener

SIGNATURE_WARNING = "⚠️  SIGNATURE NOT VERIFIED: PCR values are unauthenticated (use --verify-signature)"


def _load_report(path: str, framed: bool, max_size: int, verify_signature: bool) -> EvidenceReport:
    data = Path(path).read_bytes()
    if framed:
        return validate_frame(data, max_size=max_size, verify_signature=verify_signature)
    return validate_document(data, verify_signature=verify_signature)


def _report_dict(report: EvidenceReport, show_all: bool) -> dict:
    return {
        "pcrs": report.rendered if show_all else report.nonzero(),
        "skipped": [{"key": s.key, "reason": s.reason} for s in report.skipped],
        "irregular_lengths": report.irregular_lengths(),
        "signature_verified": report.signature_verified,
    }


def _echo_report(report: EvidenceReport, show_all: bool, fmt: str) -> None:
    if fmt == "json":
        click.echo(json.dumps(_report_dict(report, show_all), indent=2))
        return

    if not report.signature_verified:
        click.echo(SIGNATURE_WARNING, err=True)

    click.echo()
    click.echo("--- Attestation Document PCRs ---")
    pcrs = report.rendered if show_all else report.nonzero()
    for index, value in pcrs.items():
        click.echo(f"PCR{index}: {value}")
    if not pcrs:
        click.echo("(no non-zero PCRs)")

    if report.skipped:
        click.echo()
        click.echo(f"⚠️  Skipped {report.skipped_count} malformed PCR entr{'y' if report.skipped_count == 1 else 'ies'}:")
        for entry in report.skipped:
            click.echo(f"   {entry.key}: {entry.reason}")

    for index in report.irregular_lengths():
        click.echo(f"⚠️  PCR{index} is {len(report.pcrs[index])} bytes (expected 48)")
    click.echo()


def _fail(error: Exception) -> None:
    click.echo(f"❌ {error}", err=True)
    sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    help="Logging verbosity",
)
def main(log_level: str):
    """
    PCR Attestation Audit CLI - decode Nitro attestation evidence

    Examples:
        pcr-audit listen --once
        pcr-audit decode attestation.bin --framed
        pcr-audit digest i-0123456789abcdef0
        pcr-audit compare attestation.bin --pcr 4 --identity i-0123456789abcdef0
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.option("--port", "-p", default=config.RELAY_PORT, type=int, help="Port to listen on")
@click.option("--tcp", is_flag=True, help="Listen on TCP instead of vsock (local testing)")
@click.option("--host", default="127.0.0.1", help="TCP bind address (with --tcp)")
@click.option("--once/--forever", default=True, help="Stop after the first document (default) or keep serving")
@click.option("--timeout", default=config.RELAY_READ_TIMEOUT, type=float, help="Per-read timeout in seconds")
@click.option("--max-size", default=config.RELAY_MAX_MESSAGE_SIZE, type=int, help="Largest accepted frame")
@click.option("--verify-signature", is_flag=True, default=config.RELAY_VERIFY_SIGNATURE, help="Verify COSE signature and Nitro chain")
@click.option("--enclave-cid", default=config.ENCLAVE_CID, type=int, help="Only accept vsock peers with this CID")
@click.option("--any-cid", is_flag=True, help="Accept vsock connections from any CID")
@click.option("--identity", "-i", default=None, help="Identity to compare against --pcr")
@click.option("--pcr", "pcr_index", default=None, type=int, help="PCR index to compare with --identity")
@click.option("--all", "show_all", is_flag=True, help="Include all-zero PCRs")
def listen(port: int, tcp: bool, host: str, once: bool, timeout: float, max_size: int,
           verify_signature: bool, enclave_cid: int, any_cid: bool,
           identity: Optional[str], pcr_index: Optional[int], show_all: bool):
    """
    Receive framed attestation documents from enclaves.
    """
    def handle(report: EvidenceReport, peer) -> None:
        click.echo(f"✅ Attestation received from {peer}")
        _echo_report(report, show_all, "table")
        if identity is not None and pcr_index is not None:
            _echo_match(report, pcr_index, identity)

    listener = AttestationListener(
        port=port,
        handler=handle,
        family="tcp" if tcp else "vsock",
        host=host,
        read_timeout=timeout,
        max_message_size=max_size,
        verify_signature=verify_signature,
        expected_cid=None if any_cid else enclave_cid,
    )

    if once:
        try:
            report = listener.accept_one()
        except (EvidenceError, OSError) as e:
            _fail(e)
        finally:
            listener.stop()
        handle(report, listener.port)
        return

    click.echo(f"🔍 Listening on {'tcp' if tcp else 'vsock'} port {port} (Ctrl+C to stop)")
    try:
        listener.serve_forever()
    except KeyboardInterrupt:
        click.echo()
    finally:
        listener.stop()


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--framed", is_flag=True, help="File holds the 4-byte length prefix as captured off the wire")
@click.option("--format", "-f", "fmt", type=click.Choice(["table", "json"]), default="table", help="Output format")
@click.option("--all", "show_all", is_flag=True, help="Include all-zero PCRs")
@click.option("--max-size", default=config.RELAY_MAX_MESSAGE_SIZE, type=int, help="Largest accepted frame")
@click.option("--verify-signature", is_flag=True, help="Verify COSE signature and Nitro chain")
def decode(path: str, framed: bool, fmt: str, show_all: bool, max_size: int, verify_signature: bool):
    """
    Decode an attestation document and print its PCR table.
    """
    try:
        report = _load_report(path, framed, max_size, verify_signature)
    except EvidenceError as e:
        _fail(e)
    _echo_report(report, show_all, fmt)


@main.command()
@click.argument("identity")
def digest(identity: str):
    """
    Print SHA384(48 zero bytes || IDENTITY) as hex.
    """
    click.echo(calculate_sha384(identity))


def _echo_match(report: EvidenceReport, pcr_index: int, identity: str) -> bool:
    expected = calculate_sha384(identity)
    actual = report.rendered.get(str(pcr_index))
    if report.matches_identity(pcr_index, identity):
        click.echo(f"✅ PCR{pcr_index} matches identity {identity}")
        return True
    click.echo(f"❌ PCR{pcr_index} does not match identity {identity}")
    click.echo(f"   Got:      {actual}")
    click.echo(f"   Expected: {expected}")
    return False


@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--pcr", "-p", "pcr_index", required=True, type=int, help="PCR index to check")
@click.option("--identity", "-i", required=True, help="Identity string (e.g. EC2 instance ID)")
@click.option("--framed", is_flag=True, help="File holds the 4-byte length prefix")
@click.option("--max-size", default=config.RELAY_MAX_MESSAGE_SIZE, type=int, help="Largest accepted frame")
@click.option("--verify-signature", is_flag=True, help="Verify COSE signature and Nitro chain")
def compare(path: str, pcr_index: int, identity: str, framed: bool, max_size: int, verify_signature: bool):
    """
    Compare PCR[N] against the extend-from-zero digest of an identity.

    Exit status is 0 on match and 1 otherwise.
    """
    try:
        report = _load_report(path, framed, max_size, verify_signature)
    except EvidenceError as e:
        _fail(e)

    if not report.signature_verified:
        click.echo(SIGNATURE_WARNING, err=True)

    if not _echo_match(report, pcr_index, identity):
        sys.exit(1)


if __name__ == "__main__":
    main()
