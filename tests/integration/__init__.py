"""
Integration tests for SpinMate.

These drive whole drop-in events through the tournament coordinator:
players join, matches are paired and played to the end, and freed
players are fed straight back into new pairings.
"""

# Mark this package for pytest discovery
__all__ = []
