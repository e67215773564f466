"""Shared outreach mailbox: outbound sends and reply correlation."""

__version__ = "0.1.0"
