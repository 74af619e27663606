"""Clients for the external systems wired together by the stack."""
