"""HTTP clients for the geocoding and language-model providers."""

from .geocoder import GeocodingError, OpenCageGeocoder
from .interpreter import InterpretationError, OpenRouterInterpreter

__all__ = ["GeocodingError", "OpenCageGeocoder", "InterpretationError", "OpenRouterInterpreter"]
