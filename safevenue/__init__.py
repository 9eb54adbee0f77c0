"""
SafeVenue - Predictive Risk & Crowd Analytics
Risk scoring, pattern recognition, crowd flow prediction and predictive alerting for live events.
"""

__version__ = "1.0.0"
