"""
statcache: client-side data freshness layer for sports stats.
"""
__version__ = "0.1.0"
