"""Shared billing enums and database tables."""
