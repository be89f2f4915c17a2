"""
Certificate Store — certificate records kept on a remote FTP/FTPS server

- One JSON manifest (`/certificates/manifest.json`) lists every certificate
- Images live next to it under `/certificates/images/<certNumber><ext>`
- HTTP API in server.py; every request brings its own FTP credentials

Usage:
    from cert_store.service import CertificateStore
    from common.types import FtpCredentials

    store = CertificateStore()
    certs = store.list_certificates(FtpCredentials(host="ftp.example.org", user="u", password="p"))
"""
