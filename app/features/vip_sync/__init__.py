"""
VIP sync feature package.

Keeps every layer of the roster-driven VIP role flow together: domain
models, the entitlement repository, roster parsing, the trial/reconcile/
status services, the scheduler job and the Discord-facing router.
"""
