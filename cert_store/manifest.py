from __future__ import annotations

"""
Manifest = the whole certificate list as one remote JSON array.

Remote layout (defaults):
    /certificates/manifest.json
    /certificates/images/<certNumber><ext>

Writers always read the full document, edit it in memory and upload the full
document back; there is no partial update.
"""

import json
import logging
import posixpath
from dataclasses import dataclass
from typing import Dict, List, Tuple

from common.types import Certificate
from cert_store.errors import (
    ManifestCorruptError,
    ManifestNotFoundError,
    RecordNotFoundError,
    RemoteFileNotFoundError,
)
from cert_store.ftp_session import FtpSession


log = logging.getLogger(__name__)

DEFAULT_IMAGE_EXTENSION = ".jpg"


@dataclass(frozen=True)
class RemoteLayout:
    base_dir: str = "/certificates"
    manifest_name: str = "manifest.json"
    images_dir: str = "images"

    @property
    def manifest_path(self) -> str:
        return posixpath.join(self.base_dir, self.manifest_name)

    @property
    def images_path(self) -> str:
        return posixpath.join(self.base_dir, self.images_dir)

    def image_path(self, image_name: str) -> str:
        return posixpath.join(self.images_path, image_name)

    def to_dict(self) -> Dict[str, str]:
        return {
            "base_dir": self.base_dir,
            "manifest": self.manifest_path,
            "images": self.images_path,
        }


def image_extension(filename: str) -> str:
    """'photo.PNG' -> '.PNG'; no extension -> '.jpg'."""
    ext = posixpath.splitext(posixpath.basename(filename or ""))[1]
    return ext or DEFAULT_IMAGE_EXTENSION


# ----------------------------
# (De)serialization
# ----------------------------
def parse_manifest(raw: bytes) -> List[Certificate]:
    try:
        doc = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise ManifestCorruptError(f"Manifest is not valid JSON: {e}") from e
    if not isinstance(doc, list):
        raise ManifestCorruptError("Manifest must be a JSON array of certificates.")
    out: List[Certificate] = []
    for i, entry in enumerate(doc):
        if not isinstance(entry, dict) or "certNumber" not in entry:
            raise ManifestCorruptError(f"Manifest entry {i} is not a certificate record.")
        out.append(Certificate.from_dict(entry))
    return out


def serialize_manifest(records: List[Certificate]) -> bytes:
    return json.dumps([r.to_dict() for r in records], indent=2, ensure_ascii=False).encode("utf-8")


# ----------------------------
# Remote read
# ----------------------------
def read_manifest(session: FtpSession, layout: RemoteLayout) -> List[Certificate]:
    """Current manifest; an absent file is the bootstrap state and reads as []."""
    try:
        raw = session.read_bytes(layout.manifest_path)
    except RemoteFileNotFoundError:
        log.info("Manifest not found at %s, starting with an empty list.", layout.manifest_path)
        return []
    return parse_manifest(raw)


def read_existing_manifest(session: FtpSession, layout: RemoteLayout) -> List[Certificate]:
    """Like read_manifest, but a missing file is an error."""
    try:
        raw = session.read_bytes(layout.manifest_path)
    except RemoteFileNotFoundError as e:
        raise ManifestNotFoundError("Certificate manifest does not exist.") from e
    return parse_manifest(raw)


def write_manifest(session: FtpSession, layout: RemoteLayout, records: List[Certificate]) -> None:
    session.write_bytes(layout.manifest_path, serialize_manifest(records))


# ----------------------------
# In-memory edits (never mutate the input list)
# ----------------------------
def upsert_record(records: List[Certificate], record: Certificate) -> List[Certificate]:
    rest = [r for r in records if r.cert_number != record.cert_number]
    return [record] + rest


def remove_record(records: List[Certificate], cert_number: str) -> Tuple[List[Certificate], Certificate]:
    for r in records:
        if r.cert_number == cert_number:
            return [x for x in records if x.cert_number != cert_number], r
    raise RecordNotFoundError(cert_number)
