"""Basic definitions for the two feature encodings."""

from typing import Any, TypeAlias


__docformat__ = "google"
__all__ = (
    "GeoJsonDict",
    "EsriJsonDict",
    "FEATURE_COLLECTION",
)


GeoJsonDict: TypeAlias = dict[str, Any]
"""
A dictionary representing a GeoJSON object.

Features have the keys ``type``, ``geometry`` and ``properties``.

References:
    - https://tools.ietf.org/html/rfc7946
"""

EsriJsonDict: TypeAlias = dict[str, Any]
"""
A dictionary representing an Esri JSON object.

Features have the keys ``geometry`` and ``attributes``.

References:
    - https://developers.arcgis.com/documentation/common-data-types/feature-object.htm
"""

FEATURE_COLLECTION = "FeatureCollection"
