"""KYA CLI - operate a ledger kept in a local JSON state file."""
