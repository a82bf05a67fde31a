"""
Ticket Interfaces Layer
=======================

Interface adapters (controllers) for the ticket module.

Contains:
- Controllers: ticket routes and the geo-ip helper routes

This is the outermost layer - handles HTTP requests/responses and
delegates to application services.
"""
