"""
Ticket Lifecycle Module
=======================

Bounded context for support tickets opened by ISP customers.

Responsibilities:
- Open tickets with an SLA deadline derived from priority
- Keep an append-only history of every status change and action
- Assign year-scoped human-readable identifiers (TK-<year>-<seq>)
- Enrich new tickets with the client's IP and approximate location
- Expose ticket CRUD endpoints and the metrics summary
"""

__version__ = "1.0.0"
