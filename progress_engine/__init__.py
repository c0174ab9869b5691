"""Gamified-exercise progress engine: sessions, mastery, achievements, rankings"""

__version__ = "1.0.0"
