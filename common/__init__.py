"""
Shared pieces: record/credential types and JSON logging setup.
"""
