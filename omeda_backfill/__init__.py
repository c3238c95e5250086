"""
Omeda match backfill.

Fetches historical Predecessor matches from the Omeda public API in fixed-size
time windows, saves every page to durable storage and zips the result.
"""

__version__ = "0.1.0"
