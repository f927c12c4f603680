"""
Item fetcher implementations.

Provides implementations of the ItemSource interface for loading candidate
items from various sources.

Available implementations:
- TextFileFetcher: Loads items from a text file, one per line
"""

from .text_file_fetcher import TextFileFetcher

__all__ = ["TextFileFetcher"]
