"""Scriptor Umbra backend: authentication, profiles and conversation storage."""

__version__ = "1.0.0"
