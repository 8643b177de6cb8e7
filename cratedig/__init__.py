"""Cratedig: resolve an album on MusicBrainz, find it on Soulseek, queue the transfer."""

from cratedig.__version__ import __version__

__all__ = ["__version__"]
