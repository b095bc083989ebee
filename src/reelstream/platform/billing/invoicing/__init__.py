"""Invoice assembly, numbering and status transitions."""
