from __future__ import annotations

"""
Exceptions raised by the certificate store. The HTTP layer maps them to
status codes; nothing here knows about HTTP.
"""


class CertStoreError(Exception):
    """Base class; `message` is safe to show to the caller."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class FTPConnectionError(CertStoreError):
    """Could not open a session (host, credentials or TLS negotiation)."""


class TransportError(CertStoreError):
    """Any other remote I/O failure."""


class RemoteFileNotFoundError(TransportError):
    """The server answered 550 for a download."""

    def __init__(self, path: str):
        super().__init__(f"Remote file not found: {path}")
        self.path = path


class ManifestCorruptError(CertStoreError):
    """The manifest exists but is not a JSON array of certificate records."""


class ManifestNotFoundError(CertStoreError):
    """An operation needed an existing manifest and there is none."""


class RecordNotFoundError(CertStoreError):
    """No manifest entry has the requested certificate number."""

    def __init__(self, cert_number: str):
        super().__init__("Certificate not found in manifest.")
        self.cert_number = cert_number


class ValidationError(CertStoreError):
    """A required request field is missing or malformed."""
