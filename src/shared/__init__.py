"""
Shared Kernel Module
====================

This module contains shared infrastructure used across all bounded
contexts (tickets, users and dashboard).

Architecture Pattern: Modular Monolith
- Each module (tickets, users, dashboard) is a bounded context
- Shared kernel contains only generic infrastructure

DO NOT add ticket or user business rules to the shared kernel.
"""

__version__ = "1.0.0"
