from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional


IMAGE_URL_PREFIX = "/api/image/"

SECURITY_PLAIN = "plain"
SECURITY_EXPLICIT = "explicit"
SECURITY_IMPLICIT = "implicit"


def normalize_security(value: Any) -> str:
    """
    Map the client's `secure` field onto a security mode.

    The browser form historically sent `"implicit"` or `false`; `true` and
    `"explicit"` mean AUTH TLS on the control port.
    """
    if isinstance(value, str):
        v = value.strip().lower()
        if v == SECURITY_IMPLICIT:
            return SECURITY_IMPLICIT
        if v in (SECURITY_EXPLICIT, "true"):
            return SECURITY_EXPLICIT
        return SECURITY_PLAIN
    if value is True:
        return SECURITY_EXPLICIT
    return SECURITY_PLAIN


@dataclass(slots=True)
class FtpCredentials:
    """
    Connection parameters for one request. Never persisted.

    Attributes:
        host: FTP server host name or address.
        port: control port; 0 means "default for the security mode".
        user, password: login.
        security: plain | explicit | implicit
    """
    host: str
    user: str = "anonymous"
    password: str = field(default="", repr=False)
    port: int = 0
    security: str = SECURITY_PLAIN

    def __post_init__(self) -> None:
        if not self.host:
            raise ValueError("host is required")
        self.security = normalize_security(self.security)
        self.port = int(self.port or 0)
        if self.port <= 0:
            self.port = 990 if self.security == SECURITY_IMPLICIT else 21
        if self.port > 65535:
            raise ValueError("port out of range")

    @property
    def uses_tls(self) -> bool:
        return self.security != SECURITY_PLAIN

    def describe(self) -> Dict[str, Any]:
        """Loggable view without the password."""
        return {"host": self.host, "port": self.port, "user": self.user, "security": self.security}


@dataclass(slots=True)
class Certificate:
    """
    One manifest entry.

    `cert_number` is the unique key; `image_url` points at the image stored
    next to the manifest (see `image_url_for`). Entries read from a manifest
    keep their original JSON object in `source` and are written back from it
    unchanged, so records nobody edited survive a manifest rewrite
    (nulls, numeric keys and unknown fields included).
    """
    cert_number: str
    issue_date: str
    issued_to_name: str
    image_url: str
    source: Optional[Dict[str, Any]] = field(default=None, repr=False, compare=False)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Certificate":
        return cls(
            # compared as stored; a numeric certNumber never matches a request string
            cert_number=d["certNumber"],
            issue_date=_text(d.get("issueDate")),
            issued_to_name=_text(d.get("issuedToName")),
            image_url=_text(d.get("imageUrl")),
            source=dict(d),
        )

    def to_dict(self) -> Dict[str, Any]:
        if self.source is not None:
            return dict(self.source)
        return {
            "certNumber": self.cert_number,
            "issueDate": self.issue_date,
            "issuedToName": self.issued_to_name,
            "imageUrl": self.image_url,
        }

    @property
    def image_name(self) -> str:
        """File name of the image under the remote images directory."""
        return self.image_url.rsplit("/", 1)[-1]


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def image_url_for(cert_number: str, extension: str) -> str:
    return f"{IMAGE_URL_PREFIX}{cert_number}{extension}"
