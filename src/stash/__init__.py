"""
stash: a personal task-tiering engine.

Tasks live in four tiers (L1, L2, L3, MEM) and escalate toward L1 on their
own when they have waited long enough and the hotter tier has room.
"""

__version__ = "0.1.0"
