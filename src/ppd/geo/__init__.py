"""Geo package: normalization, resolution and the location dictionary."""

from ppd.geo.dictionary import LocationDictionary
from ppd.geo.lookup import ResolutionLookup
from ppd.geo.normalize import CountryNormalizer
from ppd.geo.queue import RequestQueue
from ppd.geo.resolver import LocationResolver

__all__ = [
    "CountryNormalizer",
    "LocationDictionary",
    "LocationResolver",
    "RequestQueue",
    "ResolutionLookup",
]
