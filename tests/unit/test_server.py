"""
HTTP API tests (FastAPI TestClient, in-memory remote)
"""

import json
import os
import sys

import pytest
from fastapi.testclient import TestClient

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from cert_store.server import _load_config, create_app
from cert_store.service import CertificateStore
from tests.fakes import FakeRemote


FTP = {"host": "ftp.example.org", "port": 21, "user": "admin", "password": "s3cret", "secure": False}


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def client(remote):
    store = CertificateStore(session_factory=remote.session)
    return TestClient(create_app(store=store))


def _upload(client, n, date="2024-01-01", name="Jane", filename="a.jpg"):
    return client.post(
        "/api/upload",
        files={"image": (filename, b"\xff\xd8\xff", "image/jpeg")},
        data={"certNumber": n, "issueDate": date, "issuedToName": name, "ftpConfig": json.dumps(FTP)},
    )


def _list(client):
    r = client.post("/api/certificates", json=FTP)
    assert r.status_code == 200
    return r.json()


class TestPages:
    def test_index(self, client):
        r = client.get("/")
        assert r.status_code == 200
        assert "text/html" in r.headers["content-type"]
        assert "Certificate Store" in r.text

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["layout"]["manifest"] == "/certificates/manifest.json"

    def test_image_proxy_not_supported(self, client):
        r = client.get("/api/image/A1.jpg")
        assert r.status_code == 501
        assert "message" in r.json()

    def test_public_listing_not_supported(self, client):
        assert client.get("/api/get-all-certs").status_code == 501


class TestConnectionEndpoint:
    def test_success(self, client, remote):
        r = client.post("/api/test-connection", json=FTP)
        assert r.status_code == 200
        assert r.json() == {"message": "Connection successful. Certificate directory is ready."}
        assert "/certificates/images" in remote.dirs

    def test_failure(self, client, remote):
        remote.refuse_connect = True
        r = client.post("/api/test-connection", json=FTP)
        assert r.status_code == 500
        assert "530" in r.json()["message"]

    def test_missing_host_is_bad_request(self, client):
        r = client.post("/api/test-connection", json={"user": "admin"})
        assert r.status_code == 400
        assert "host" in r.json()["message"]

    def test_missing_body_message(self, client):
        r = client.post("/api/test-connection")
        assert r.status_code == 400
        assert r.json() == {"message": "Invalid request."}


class TestCertificates:
    def test_empty_store(self, client):
        assert _list(client) == []

    def test_transport_failure(self, client, remote):
        remote.refuse_connect = True
        r = client.post("/api/certificates", json=FTP)
        assert r.status_code == 500

    def test_upload_then_replace(self, client):
        r = _upload(client, "A1")
        assert r.status_code == 201
        assert r.json() == {"message": "Certificate uploaded successfully."}
        assert _list(client) == [
            {"certNumber": "A1", "issueDate": "2024-01-01", "issuedToName": "Jane", "imageUrl": "/api/image/A1.jpg"}
        ]

        assert _upload(client, "A1", date="2024-02-02").status_code == 201
        certs = _list(client)
        assert len(certs) == 1
        assert certs[0]["issueDate"] == "2024-02-02"

    def test_upload_without_image(self, client, remote):
        r = client.post(
            "/api/upload",
            data={"certNumber": "A1", "issueDate": "2024-01-01", "issuedToName": "Jane", "ftpConfig": json.dumps(FTP)},
        )
        assert r.status_code == 400
        assert r.json() == {"message": "No image file uploaded."}
        assert remote.opened == 0

    def test_upload_with_bad_ftp_config(self, client):
        r = client.post(
            "/api/upload",
            files={"image": ("a.jpg", b"x", "image/jpeg")},
            data={"certNumber": "A1", "ftpConfig": "{not json"},
        )
        assert r.status_code == 400

    def test_upload_failure(self, client, remote):
        remote.fail_write.add("/certificates/manifest.json")
        r = _upload(client, "A1")
        assert r.status_code == 500
        assert "disk full" in r.json()["message"]

    def test_delete(self, client):
        _upload(client, "A1")
        _upload(client, "B2")
        r = client.post("/api/delete", json={"certNumber": "A1", **FTP})
        assert r.status_code == 200
        assert r.json() == {"message": "Certificate deleted successfully."}
        assert [c["certNumber"] for c in _list(client)] == ["B2"]

    def test_delete_unknown(self, client):
        _upload(client, "A1")
        r = client.post("/api/delete", json={"certNumber": "ZZ", **FTP})
        assert r.status_code == 404
        assert r.json() == {"message": "Certificate not found in manifest."}
        assert len(_list(client)) == 1

    def test_delete_without_manifest(self, client):
        r = client.post("/api/delete", json={"certNumber": "A1", **FTP})
        assert r.status_code == 404

    def test_delete_image_removal_failure(self, client, remote):
        _upload(client, "A1")
        remote.fail_remove.add("/certificates/images/A1.jpg")
        r = client.post("/api/delete", json={"certNumber": "A1", **FTP})
        assert r.status_code == 500
        assert _list(client) == []


class TestConfig:
    def test_defaults_when_file_missing(self, tmp_path):
        cfg = _load_config(str(tmp_path / "missing.yaml"))
        assert cfg["server"]["port"] == 3000
        assert cfg["remote"]["base_dir"] == "/certificates"

    def test_file_overrides_are_merged(self, tmp_path):
        path = tmp_path / "params.yaml"
        path.write_text("remote:\n  base_dir: /srv/certs\nftp:\n  timeout_s: 5\n")
        cfg = _load_config(str(path))
        assert cfg["remote"]["base_dir"] == "/srv/certs"
        assert cfg["remote"]["manifest_name"] == "manifest.json"
        assert cfg["ftp"]["timeout_s"] == 5
        assert cfg["ftp"]["verify_tls"] is True

    def test_app_uses_configured_layout(self):
        app = create_app({"remote": {"base_dir": "/srv/certs"}})
        r = TestClient(app).get("/health")
        assert r.json()["layout"]["images"] == "/srv/certs/images"
