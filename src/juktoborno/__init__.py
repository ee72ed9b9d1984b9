"""Juktoborno: Bengali compound character classification service."""

__version__ = "0.1.0"
