"""
Raw data acquisition from GEO.
"""

from .geo_download import GEOSupplementDownloader

__all__ = ['GEOSupplementDownloader']
