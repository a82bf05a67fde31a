"""
Dashboard Module
================

Read-only metrics over tickets and users: counts, SLA compliance,
resolution and first-response times, technician workload.
"""
