"""
Relay Host Attestation Listener
===============================

This module runs on the HOST (parent EC2) and receives attestation documents
pushed by enclaves over vsock.

Each accepted connection carries exactly one framed COSE_Sign1 document and is
handled in its own thread with a read timeout, so one slow or malicious peer
cannot block the others.

Usage:
    from relay_tee.host.listener import AttestationListener

    listener = AttestationListener(port=5000, handler=print_report)
    listener.start()
    ...
    listener.stop()

    # or, single exchange:
    report = AttestationListener(port=5000).accept_one()
"""

import logging
import socket
import threading
from typing import Callable, List, Optional, Tuple

from pcr_canonical.constants import AF_VSOCK, VMADDR_CID_ANY
from pcr_canonical.errors import EvidenceError
from pcr_canonical.validator import EvidenceReport, receive_and_validate
from relay_tee.host import config

logger = logging.getLogger(__name__)

ACCEPT_POLL_SECONDS = 0.5

ReportHandler = Callable[[EvidenceReport, Tuple], None]
ErrorHandler = Callable[[EvidenceError, Tuple], None]


def _log_report(report: EvidenceReport, peer: Tuple) -> None:
    logger.info(f"[RELAY] Attestation from {peer}: {len(report.pcrs)} PCRs, {report.skipped_count} skipped")
    for index, value in report.nonzero().items():
        logger.info(f"[RELAY] PCR{index}: {value}")


def _log_error(error: EvidenceError, peer: Tuple) -> None:
    logger.warning(f"[RELAY] Rejected attestation from {peer}: {error}")


class AttestationListener:
    """
    vsock (or TCP, for local testing) listener for framed attestation documents.
    """

    def __init__(
        self,
        port: int = config.RELAY_PORT,
        handler: Optional[ReportHandler] = None,
        on_error: Optional[ErrorHandler] = None,
        family: str = "vsock",
        host: str = "127.0.0.1",
        read_timeout: Optional[float] = config.RELAY_READ_TIMEOUT,
        max_message_size: int = config.RELAY_MAX_MESSAGE_SIZE,
        verify_signature: bool = config.RELAY_VERIFY_SIGNATURE,
        expected_cid: Optional[int] = None,
    ):
        """
        Args:
            port: vsock/TCP port to listen on (0 picks a free TCP port)
            handler: called with (report, peer) for each valid document
            on_error: called with (error, peer) for each rejected document
            family: "vsock" on a Nitro host, "tcp" for local runs
            host: TCP bind address (ignored for vsock)
            expected_cid: only accept vsock peers with this CID (None accepts any)
        """
        if family not in ("vsock", "tcp"):
            raise ValueError(f"Unknown socket family: {family}")

        self.port = port
        self.handler = handler or _log_report
        self.on_error = on_error or _log_error
        self.family = family
        self.host = host
        self.read_timeout = read_timeout
        self.max_message_size = max_message_size
        self.verify_signature = verify_signature
        self.expected_cid = expected_cid

        self._server: Optional[socket.socket] = None
        self._stopped = threading.Event()
        self._accept_thread: Optional[threading.Thread] = None
        self._workers: List[threading.Thread] = []
        self._workers_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Socket setup
    # ------------------------------------------------------------------

    def bind(self) -> "AttestationListener":
        if self._server is not None:
            return self

        if self.family == "vsock":
            server = socket.socket(AF_VSOCK, socket.SOCK_STREAM)
            server.bind((VMADDR_CID_ANY, self.port))
        else:
            server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            server.bind((self.host, self.port))

        server.listen(5)
        self._server = server
        logger.info(f"[RELAY] Listening for enclave connections on {self.family} {self.address}")
        return self

    @property
    def address(self) -> Tuple:
        if self._server is None:
            raise RuntimeError("Listener is not bound")
        return self._server.getsockname()

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------

    def peer_allowed(self, peer: Tuple) -> bool:
        """vsock peers are (cid, port); TCP peers are never filtered."""
        if self.family != "vsock" or self.expected_cid is None:
            return True
        if peer[0] == self.expected_cid:
            return True
        logger.warning(f"[RELAY] Dropping connection from CID {peer[0]} (expected enclave CID {self.expected_cid})")
        return False

    def _receive(self, conn: socket.socket) -> EvidenceReport:
        return receive_and_validate(
            conn,
            max_size=self.max_message_size,
            timeout=self.read_timeout,
            verify_signature=self.verify_signature,
        )

    def _handle_connection(self, conn: socket.socket, peer: Tuple) -> None:
        # Always closed afterwards: a half-read frame cannot be resumed
        try:
            report = self._receive(conn)
        except EvidenceError as e:
            self.on_error(e, peer)
            return
        except OSError as e:
            logger.warning(f"[RELAY] Connection error from {peer}: {e}")
            return
        finally:
            conn.close()
        self.handler(report, peer)

    def accept_one(self) -> EvidenceReport:
        """
        Accept a single connection and return its report (single-exchange mode).

        Raises:
            EvidenceError: the document could not be received or decoded
        """
        self.bind()
        while True:
            conn, peer = self._server.accept()
            if self.peer_allowed(peer):
                break
            conn.close()
        logger.info(f"[RELAY] Enclave connected: {peer}")
        try:
            return self._receive(conn)
        finally:
            conn.close()

    def serve_forever(self) -> None:
        """Accept connections until stop() is called; one thread per peer."""
        self.bind()
        self._server.settimeout(ACCEPT_POLL_SECONDS)

        while not self._stopped.is_set():
            try:
                conn, peer = self._server.accept()
            except socket.timeout:
                continue
            except OSError:
                if self._stopped.is_set():
                    break
                raise

            if not self.peer_allowed(peer):
                conn.close()
                continue

            # Accepted sockets must not inherit the polling timeout
            conn.settimeout(None)
            logger.info(f"[RELAY] Enclave connected: {peer}")
            worker = threading.Thread(target=self._handle_connection, args=(conn, peer), daemon=True)
            with self._workers_lock:
                self._workers = [w for w in self._workers if w.is_alive()]
                self._workers.append(worker)
            worker.start()

    def start(self) -> "AttestationListener":
        """Run serve_forever() in a background thread."""
        self.bind()
        self._accept_thread = threading.Thread(target=self.serve_forever, daemon=True)
        self._accept_thread.start()
        return self

    def stop(self, timeout: float = 5.0) -> None:
        self._stopped.set()
        if self._accept_thread is not None:
            self._accept_thread.join(timeout)
        with self._workers_lock:
            workers = list(self._workers)
        for worker in workers:
            worker.join(timeout)
        if self._server is not None:
            self._server.close()
            self._server = None
        logger.info("[RELAY] Listener stopped")
