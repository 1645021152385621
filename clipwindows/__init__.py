"""
clipwindows - differential enrichment of CLIP sliding windows.

Tests sliding windows for enrichment of a CLIP sample over its
size-matched input, corrects for overlapping windows and merges the
significant ones into binding regions.
"""

__version__ = "0.1.0"
