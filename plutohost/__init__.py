"""
plutohost - startup orchestrator for a Pluto notebook host.

Synchronizes notebook repositories from GitHub, builds a flat index of their
Pluto notebooks, and launches PlutoSliderServer on it.
"""

__version__ = "1.0.0"
