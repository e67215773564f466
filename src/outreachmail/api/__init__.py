"""HTTP API for the outreach mailbox."""
