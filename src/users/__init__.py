"""
Users Module
============

Accounts for customers, technicians and administrators: registration,
credential checks, access tokens and role-based access control.
"""
