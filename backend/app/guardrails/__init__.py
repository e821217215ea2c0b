"""Guardrails: pure policy checks gating every agent-proposed action.

Nothing in this package touches the database or the clock. Every function
is deterministic over its arguments, so evaluations are safe to run
concurrently and to replay for audit.

check_guardrails() in orchestrator is the single authoritative decision
point; services must not combine the lower-level checks themselves.
"""
