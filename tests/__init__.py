"""
Certificate Store test suite

Structure:
- unit/: unit tests per module (FTP session, manifest, store, HTTP API)
- fakes.py: in-memory stand-in for the remote FTP directory
"""
