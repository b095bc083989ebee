"""Customer credit ledger."""
