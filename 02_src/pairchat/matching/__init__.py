"""MatchMaker module."""

from .matchmaker import IMatchMaker, MatchMaker

__all__ = ["IMatchMaker", "MatchMaker"]
