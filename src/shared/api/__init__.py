"""
Shared API Layer
================

Middleware, exception handlers and app-state dependencies used by every
module's routers.
"""
