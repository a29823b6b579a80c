"""
Core infrastructure: configuration, database sessions, errors, logging
and locking.
"""
