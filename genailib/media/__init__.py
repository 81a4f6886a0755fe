"""
Media Module
============

ffmpeg-backed video merging and audio overlay.
"""

from .combiner import MediaCombiner

__all__ = ["MediaCombiner"]
