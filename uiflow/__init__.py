"""
uiflow - progressive feature disclosure engine.

Tracks how a user interacts with UI elements and decides, from declarative
dependency expressions, timed rules, A/B variants and inferred journey
behaviour, which elements are visible.
"""

__version__ = "1.0.0"
