from __future__ import annotations

"""
Per-request FTP/FTPS session.

Usage:
    with open_session(creds, timeout=30.0) as s:
        s.ensure_dir("/certificates/images")
        data = s.read_bytes("/certificates/manifest.json")

Every `ftplib` failure is re-raised as a cert_store error:
  - connect/login/TLS problems -> FTPConnectionError
  - 550 on download            -> RemoteFileNotFoundError
  - anything else              -> TransportError
The session is closed when the `with` block exits, however it exits.
"""

import ftplib
import io
import logging
import ssl
from contextlib import contextmanager
from typing import Iterator, Optional

from common.types import SECURITY_EXPLICIT, SECURITY_IMPLICIT, FtpCredentials
from cert_store.errors import FTPConnectionError, RemoteFileNotFoundError, TransportError


log = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 30.0


class ImplicitFTP_TLS(ftplib.FTP_TLS):
    """FTPS with TLS on the control connection from the first byte (usually port 990)."""

    _sock = None

    @property
    def sock(self):
        return self._sock

    @sock.setter
    def sock(self, value):
        if value is not None and not isinstance(value, ssl.SSLSocket):
            value = self.context.wrap_socket(value, server_hostname=self.host)
        self._sock = value


def _ssl_context(verify_tls: bool) -> ssl.SSLContext:
    ctx = ssl.create_default_context()
    if not verify_tls:
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
    return ctx


def _new_client(security: str, timeout: float, verify_tls: bool) -> ftplib.FTP:
    if security == SECURITY_IMPLICIT:
        return ImplicitFTP_TLS(context=_ssl_context(verify_tls), timeout=timeout)
    if security == SECURITY_EXPLICIT:
        return ftplib.FTP_TLS(context=_ssl_context(verify_tls), timeout=timeout)
    return ftplib.FTP(timeout=timeout)


def _is_not_found(err: BaseException) -> bool:
    return isinstance(err, ftplib.error_perm) and str(err)[:3] == "550"


class FtpSession:
    """Thin wrapper over a logged-in `ftplib.FTP` client using absolute remote paths."""

    def __init__(self, client: ftplib.FTP, credentials: FtpCredentials):
        self.client = client
        self.credentials = credentials
        self.closed = False

    @classmethod
    def connect(
        cls,
        credentials: FtpCredentials,
        timeout: float = DEFAULT_TIMEOUT_S,
        verify_tls: bool = True,
    ) -> "FtpSession":
        """
        Connect and log in. One attempt only; failures raise FTPConnectionError
        with the ftplib/ssl/socket error chained as `__cause__`.
        """
        client = _new_client(credentials.security, timeout, verify_tls)
        try:
            client.connect(credentials.host, credentials.port, timeout=timeout)
            # FTP_TLS.login() issues AUTH TLS first when the control socket is still plain
            client.login(credentials.user, credentials.password)
            if credentials.uses_tls:
                client.prot_p()
            client.set_pasv(True)
        except ftplib.all_errors as e:
            client.close()
            log.warning("FTP connection failed: %s", e, extra={"extra": credentials.describe()})
            raise FTPConnectionError(
                f"FTP connection failed: {e}. Check host, credentials, and security setting."
            ) from e
        log.debug("FTP session opened", extra={"extra": credentials.describe()})
        return cls(client, credentials)

    # ----------------------------
    # Remote operations
    # ----------------------------
    def read_bytes(self, path: str) -> bytes:
        buf = io.BytesIO()
        try:
            self.client.retrbinary(f"RETR {path}", buf.write)
        except ftplib.all_errors as e:
            if _is_not_found(e):
                raise RemoteFileNotFoundError(path) from e
            raise TransportError(f"Download of {path} failed: {e}") from e
        return buf.getvalue()

    def write_bytes(self, path: str, data: bytes) -> None:
        """Upload `data` to `path`, replacing any existing file."""
        try:
            self.client.storbinary(f"STOR {path}", io.BytesIO(data))
        except ftplib.all_errors as e:
            raise TransportError(f"Upload to {path} failed: {e}") from e

    def remove(self, path: str) -> None:
        try:
            self.client.delete(path)
        except ftplib.all_errors as e:
            raise TransportError(f"Removing {path} failed: {e}") from e

    def ensure_dir(self, path: str) -> None:
        """Create every missing component of absolute `path`; existing ones are left alone."""
        current = ""
        for part in [p for p in path.split("/") if p]:
            current = f"{current}/{part}"
            try:
                self.client.cwd(current)
                continue
            except ftplib.error_perm:
                pass
            except ftplib.all_errors as e:
                raise TransportError(f"Checking directory {current} failed: {e}") from e
            try:
                self.client.mkd(current)
            except ftplib.all_errors as e:
                raise TransportError(f"Creating directory {current} failed: {e}") from e
            log.info("Created remote directory %s", current)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self.client.quit()
        except ftplib.all_errors:
            # server already gone; drop the socket
            self.client.close()


@contextmanager
def open_session(
    credentials: FtpCredentials,
    timeout: float = DEFAULT_TIMEOUT_S,
    verify_tls: bool = True,
) -> Iterator[FtpSession]:
    session: Optional[FtpSession] = None
    try:
        session = FtpSession.connect(credentials, timeout=timeout, verify_tls=verify_tls)
        yield session
    finally:
        if session is not None:
            session.close()
