"""Escalation engine: scoring, intent classification, case lookup, cases and queue."""
