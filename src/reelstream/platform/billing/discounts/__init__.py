"""Discount definitions and the priority-ordered discount engine."""
