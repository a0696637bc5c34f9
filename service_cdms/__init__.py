"""Case-management ledger service."""
