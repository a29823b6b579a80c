"""
CampusGuard: identity verification and alert targeting for a campus
access / safety backend.
"""

__version__ = "0.1.0"
