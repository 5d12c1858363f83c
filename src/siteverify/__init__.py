"""siteverify — scripted verification runs against remote headless browser sessions."""

from __future__ import annotations

try:
    from importlib.metadata import version

    __version__ = version("siteverify")
except Exception:
    __version__ = "0.0.0"
