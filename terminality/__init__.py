"""Terminality game core: resolved systems, virtual filesystems, trace and quests."""

__version__ = "0.1.0"
