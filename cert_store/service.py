from __future__ import annotations

"""
Certificate operations. Each call opens its own FTP session from the
credentials it is given and closes it before returning; no state is kept
between calls.

Write ordering:
  - upload: image first, then manifest (a crash leaves an orphan image,
    never a manifest entry without its image)
  - delete: manifest first, then image (a crash leaves a dangling image,
    never a manifest entry pointing at a removed image)

Two concurrent writers both read the same manifest; the last upload wins.
"""

import logging
from typing import Callable, ContextManager, List

from common.types import Certificate, FtpCredentials, image_url_for
from cert_store.errors import ValidationError
from cert_store.ftp_session import DEFAULT_TIMEOUT_S, FtpSession, open_session
from cert_store.manifest import (
    RemoteLayout,
    image_extension,
    read_existing_manifest,
    read_manifest,
    remove_record,
    upsert_record,
    write_manifest,
)


log = logging.getLogger(__name__)

SessionFactory = Callable[..., ContextManager[FtpSession]]


def _check_cert_number(cert_number: str) -> str:
    cert_number = (cert_number or "").strip()
    if not cert_number:
        raise ValidationError("certNumber is required.")
    if "/" in cert_number or "\\" in cert_number or cert_number in (".", ".."):
        raise ValidationError("certNumber must not contain path separators.")
    return cert_number


class CertificateStore:
    def __init__(
        self,
        layout: RemoteLayout = RemoteLayout(),
        timeout: float = DEFAULT_TIMEOUT_S,
        verify_tls: bool = True,
        session_factory: SessionFactory = open_session,
    ):
        self.layout = layout
        self.timeout = timeout
        self.verify_tls = verify_tls
        self._session_factory = session_factory

    def _session(self, credentials: FtpCredentials) -> ContextManager[FtpSession]:
        return self._session_factory(credentials, timeout=self.timeout, verify_tls=self.verify_tls)

    # ----------------------------
    # Operations
    # ----------------------------
    def test_connection(self, credentials: FtpCredentials) -> None:
        """Connect and make sure the images directory (and its parent) exist."""
        with self._session(credentials) as s:
            s.ensure_dir(self.layout.images_path)
        log.info("Connection test passed", extra={"extra": credentials.describe()})

    def list_certificates(self, credentials: FtpCredentials) -> List[Certificate]:
        with self._session(credentials) as s:
            return read_manifest(s, self.layout)

    def upload_certificate(
        self,
        credentials: FtpCredentials,
        cert_number: str,
        issue_date: str,
        issued_to_name: str,
        filename: str,
        data: bytes,
    ) -> Certificate:
        """
        Store the image, then put the record at the front of the manifest,
        replacing any record with the same certNumber.
        """
        cert_number = _check_cert_number(cert_number)
        if not data:
            raise ValidationError("No image file uploaded.")

        ext = image_extension(filename)
        record = Certificate(
            cert_number=cert_number,
            issue_date=issue_date or "",
            issued_to_name=issued_to_name or "",
            image_url=image_url_for(cert_number, ext),
        )

        with self._session(credentials) as s:
            records = read_manifest(s, self.layout)
            s.ensure_dir(self.layout.images_path)
            s.write_bytes(self.layout.image_path(record.image_name), data)
            updated = upsert_record(records, record)
            write_manifest(s, self.layout, updated)

        log.info(
            "Certificate uploaded",
            extra={"extra": {"certNumber": cert_number, "bytes": len(data), "total": len(updated)}},
        )
        return record

    def delete_certificate(self, credentials: FtpCredentials, cert_number: str) -> Certificate:
        """
        Drop the record from the manifest, then remove its image. A failed
        image removal is reported even though the manifest is already updated.

        `cert_number` is matched exactly as stored, so entries written by older
        clients (padded or containing separators) can still be removed.
        """
        with self._session(credentials) as s:
            records = read_existing_manifest(s, self.layout)
            remaining, removed = remove_record(records, cert_number)
            write_manifest(s, self.layout, remaining)
            if removed.image_name:
                s.remove(self.layout.image_path(removed.image_name))

        log.info("Certificate deleted", extra={"extra": {"certNumber": cert_number, "total": len(remaining)}})
        return removed
