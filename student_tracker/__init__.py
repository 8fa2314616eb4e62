"""Student Tracker API - slug-keyed student progress records."""

__version__ = "0.1.0"
