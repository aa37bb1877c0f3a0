"""
trailauth - authentication and session lifecycle for the trail mobile backend.
"""

__version__ = "1.0.0"
