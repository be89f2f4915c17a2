from __future__ import annotations

"""
Certificate Store HTTP API.

Every /api call carries its own FTP credentials; the server keeps nothing
between requests.

Run:
    python -m cert_store.server --config config/params.yaml
    uvicorn cert_store.server:app --port 3000
"""

import argparse
import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import uvicorn
import yaml
from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, Field

from common.logging_setup import setup_logging
from common.types import FtpCredentials
from cert_store.errors import (
    CertStoreError,
    ManifestNotFoundError,
    RecordNotFoundError,
    ValidationError,
)
from cert_store.manifest import RemoteLayout
from cert_store.service import CertificateStore


log = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).resolve().parent / "static"
CONFIG_ENV = "CERT_STORE_CONFIG"

DEFAULT_CONFIG: Dict[str, Any] = {
    "server": {"host": "0.0.0.0", "port": 3000},
    "ftp": {"timeout_s": 30.0, "verify_tls": True},
    "remote": {"base_dir": "/certificates", "manifest_name": "manifest.json", "images_dir": "images"},
    "logging": {"level": "INFO"},
}

IMAGE_PROXY_UNSUPPORTED = (
    "Image preview requires the FTP images directory to be publicly accessible via a web URL."
)
PUBLIC_LIST_UNSUPPORTED = (
    "Public verification endpoint not implemented. Verify after connecting as admin."
)


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out


def _load_config(path: Optional[str] = None) -> Dict[str, Any]:
    path = path or os.environ.get(CONFIG_ENV) or "config/params.yaml"
    if not Path(path).exists():
        return copy.deepcopy(DEFAULT_CONFIG)
    with open(path, "r") as f:
        return _merge(DEFAULT_CONFIG, yaml.safe_load(f) or {})


# ----------------------------
# Request bodies
# ----------------------------
class CredentialsBody(BaseModel):
    host: str
    port: Optional[int] = None
    user: str = "anonymous"
    password: str = ""
    secure: Union[bool, str, None] = None

    def to_credentials(self) -> FtpCredentials:
        try:
            return FtpCredentials(
                host=self.host.strip(),
                port=self.port or 0,
                user=self.user,
                password=self.password,
                security=self.secure,
            )
        except ValueError as e:
            raise ValidationError(f"Invalid FTP settings: {e}") from e


class DeleteBody(CredentialsBody):
    cert_number: str = Field(alias="certNumber")


def _credentials_from_json(raw: Optional[str]) -> FtpCredentials:
    if not raw:
        raise ValidationError("ftpConfig is required.")
    try:
        body = CredentialsBody.model_validate(json.loads(raw))
    except ValueError as e:
        # json.JSONDecodeError and pydantic.ValidationError are both ValueErrors
        raise ValidationError(f"ftpConfig is not valid: {e}") from e
    return body.to_credentials()


def _status_for(exc: CertStoreError) -> int:
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, (RecordNotFoundError, ManifestNotFoundError)):
        return 404
    return 500


# ----------------------------
# App
# ----------------------------
def create_app(config: Optional[Dict[str, Any]] = None, store: Optional[CertificateStore] = None) -> FastAPI:
    P = _merge(DEFAULT_CONFIG, config or {})
    setup_logging(P["logging"].get("level"))

    remote_cfg = P["remote"]
    ftp_cfg = P["ftp"]
    if store is None:
        store = CertificateStore(
            layout=RemoteLayout(
                base_dir=str(remote_cfg["base_dir"]),
                manifest_name=str(remote_cfg["manifest_name"]),
                images_dir=str(remote_cfg["images_dir"]),
            ),
            timeout=float(ftp_cfg["timeout_s"]),
            verify_tls=bool(ftp_cfg["verify_tls"]),
        )

    app = FastAPI(title="Certificate Store API", version="1.0.0")
    app.state.store = store

    # The page may be opened from another dev server
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CertStoreError)
    async def handle_store_error(request: Request, exc: CertStoreError):
        status = _status_for(exc)
        if status >= 500:
            log.error("%s failed: %s", request.url.path, exc.message, exc_info=exc)
        else:
            log.warning("%s rejected: %s", request.url.path, exc.message)
        return JSONResponse({"message": exc.message}, status_code=status)

    @app.exception_handler(RequestValidationError)
    async def handle_bad_body(request: Request, exc: RequestValidationError):
        fields = [".".join(str(p) for p in e.get("loc", ()) if p != "body") for e in exc.errors()]
        named = [f for f in fields if f]
        msg = "Invalid request: " + ", ".join(named) if named else "Invalid request."
        log.warning("%s rejected: %s", request.url.path, msg)
        return JSONResponse({"message": msg}, status_code=400)

    @app.get("/")
    def index():
        return FileResponse(STATIC_DIR / "index.html", media_type="text/html")

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "layout": store.layout.to_dict(),
            "ftp": {"timeout_s": store.timeout, "verify_tls": store.verify_tls},
        }

    @app.post("/api/test-connection")
    def test_connection(body: CredentialsBody):
        store.test_connection(body.to_credentials())
        return {"message": "Connection successful. Certificate directory is ready."}

    @app.post("/api/certificates")
    def list_certificates(body: CredentialsBody):
        return [c.to_dict() for c in store.list_certificates(body.to_credentials())]

    @app.post("/api/upload", status_code=201)
    def upload(
        image: Optional[UploadFile] = File(None),
        certNumber: Optional[str] = Form(None),
        issueDate: str = Form(""),
        issuedToName: str = Form(""),
        ftpConfig: Optional[str] = Form(None),
    ):
        if image is None:
            raise ValidationError("No image file uploaded.")
        creds = _credentials_from_json(ftpConfig)
        store.upload_certificate(
            creds,
            cert_number=certNumber or "",
            issue_date=issueDate,
            issued_to_name=issuedToName,
            filename=image.filename or "",
            data=image.file.read(),
        )
        return {"message": "Certificate uploaded successfully."}

    @app.post("/api/delete")
    def delete(body: DeleteBody):
        store.delete_certificate(body.to_credentials(), body.cert_number)
        return {"message": "Certificate deleted successfully."}

    @app.get("/api/image/{name}")
    def image(name: str):
        # No server-side credentials, so there is nothing to fetch the image with.
        return JSONResponse({"message": IMAGE_PROXY_UNSUPPORTED}, status_code=501)

    @app.get("/api/get-all-certs")
    def get_all_certs():
        return JSONResponse({"message": PUBLIC_LIST_UNSUPPORTED}, status_code=501)

    return app


P = _load_config()
app = create_app(P)


# -------- local dev entrypoint --------
def main() -> None:
    ap = argparse.ArgumentParser(description="Certificate Store API server")
    ap.add_argument("--config", default=None, help=f"YAML config (default: ${CONFIG_ENV} or config/params.yaml)")
    ap.add_argument("--host", default=None, help="Bind address (overrides server.host)")
    ap.add_argument("--port", type=int, default=None, help="Bind port (overrides server.port)")
    ap.add_argument("--log-level", default=None, help="DEBUG/INFO/WARNING/ERROR")
    args = ap.parse_args()

    cfg = _load_config(args.config)
    if args.log_level:
        cfg["logging"]["level"] = args.log_level
    setup_logging(cfg["logging"].get("level"), force=True)

    host = args.host or cfg["server"]["host"]
    port = args.port or int(cfg["server"]["port"])
    log.info("Server listening at http://%s:%s", host, port)
    uvicorn.run(create_app(cfg), host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
