"""
Infrastructure Package
======================

Technical services shared by every module (database engine and sessions).
"""
