"""Conversion between Esri JSON features and GeoJSON features."""

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from typing import Any

from aio_featureservice.settings import DEFAULT_ID_FIELD
from aio_featureservice.spatial import EsriJsonDict, GeoJsonDict

from shapely.geometry import LinearRing, Polygon


__docformat__ = "google"
__all__ = (
    "FeatureConverter",
    "EsriConverter",
    "DEFAULT_WKID",
)


DEFAULT_WKID = 4326
"""Well-known ID of WGS 84, the spatial reference of GeoJSON coordinates."""

_Coords = Sequence[Sequence[float]]


class FeatureConverter(ABC):
    """
    A converter translates single features between the service's encoding and GeoJSON.

    Clients use a converter for every feature they receive or send. Converters
    must not change geometry types or the structure of coordinates. Attributes are
    expected to pass through unchanged.
    """

    __slots__ = ()

    @abstractmethod
    def to_geojson(self, feature: EsriJsonDict) -> GeoJsonDict:
        """Convert a feature with ``geometry`` and ``attributes`` to a GeoJSON feature."""
        raise NotImplementedError

    @abstractmethod
    def to_esri(self, feature: GeoJsonDict) -> EsriJsonDict:
        """Convert a GeoJSON feature to a feature with ``geometry`` and ``attributes``."""
        raise NotImplementedError


class EsriConverter(FeatureConverter):
    """
    The default converter.

    Polygons are written with the winding order each format expects: in Esri JSON,
    exterior rings are clockwise and holes are counterclockwise; in GeoJSON,
    it is the other way around. When reading Esri polygons, rings are assigned to
    polygons based on their winding order.

    Args:
        id_field: The attribute that holds a feature's identifier. It is used as
                  the ``id`` of GeoJSON features, and vice versa.
        wkid: The well-known ID of the spatial reference that is attached to
              converted geometries. This does not transform coordinates.

    References:
        - https://developers.arcgis.com/documentation/common-data-types/geometry-objects.htm
        - https://tools.ietf.org/html/rfc7946#section-3.1.6
    """

    __slots__ = (
        "_id_field",
        "_wkid",
    )

    def __init__(self, id_field: str = DEFAULT_ID_FIELD, wkid: int = DEFAULT_WKID) -> None:
        self._id_field = id_field
        self._wkid = wkid

    @property
    def id_field(self) -> str:
        """The attribute that holds a feature's identifier."""
        return self._id_field

    def to_geojson(self, feature: EsriJsonDict) -> GeoJsonDict:
        """Convert a feature with ``geometry`` and ``attributes`` to a GeoJSON feature."""
        attributes = feature.get("attributes") or {}

        geojson: GeoJsonDict = {
            "type": "Feature",
            "geometry": _geojson_geometry(feature.get("geometry")),
            "properties": dict(attributes),
        }

        if attributes.get(self._id_field) is not None:
            geojson["id"] = attributes[self._id_field]

        return geojson

    def to_esri(self, feature: GeoJsonDict) -> EsriJsonDict:
        """
        Convert a GeoJSON feature to a feature with ``geometry`` and ``attributes``.

        Raises:
            ValueError: if the feature has a geometry that Esri JSON does not support,
                        like a ``GeometryCollection``
        """
        attributes = dict(feature.get("properties") or {})

        if feature.get("id") is not None and self._id_field not in attributes:
            attributes[self._id_field] = feature["id"]

        esri: EsriJsonDict = {}

        if geometry := feature.get("geometry"):
            esri["geometry"] = self._esri_geometry(geometry)

        esri["attributes"] = attributes
        return esri

    def _esri_geometry(self, geometry: GeoJsonDict) -> EsriJsonDict:
        coords = geometry.get("coordinates") or []

        esri: EsriJsonDict
        match geometry.get("type"):
            case "Point":
                esri = {"x": coords[0], "y": coords[1]}
                if len(coords) > 2:
                    esri["z"] = coords[2]
            case "MultiPoint":
                esri = {"points": _copy_line(coords)}
            case "LineString":
                esri = {"paths": [_copy_line(coords)]}
            case "MultiLineString":
                esri = {"paths": [_copy_line(path) for path in coords]}
            case "Polygon":
                esri = {"rings": _esri_rings([coords])}
            case "MultiPolygon":
                esri = {"rings": _esri_rings(coords)}
            case other:
                msg = f"cannot convert geometry of type {other!r}"
                raise ValueError(msg)

        esri["spatialReference"] = {"wkid": self._wkid}
        return esri


def _geojson_geometry(geometry: EsriJsonDict | None) -> GeoJsonDict | None:
    """
    Construct the GeoJSON geometry of an Esri geometry.

    Returns:
        - None if there is no geometry, or if it is empty.
        - Point when given ``x`` and ``y``.
        - MultiPoint when given ``points``.
        - LineString when given ``paths`` with a single path, MultiLineString otherwise.
        - Polygon when given ``rings`` with a single exterior ring, MultiPolygon otherwise.
    """
    if not geometry:
        return None

    if "x" in geometry:
        x, y, z = geometry.get("x"), geometry.get("y"), geometry.get("z")
        if x is None or y is None:
            return None
        coords = [x, y] if z is None else [x, y, z]
        return {"type": "Point", "coordinates": coords}

    if points := geometry.get("points"):
        return {"type": "MultiPoint", "coordinates": _copy_line(points)}

    if paths := geometry.get("paths"):
        if len(paths) == 1:
            return {"type": "LineString", "coordinates": _copy_line(paths[0])}
        return {"type": "MultiLineString", "coordinates": [_copy_line(p) for p in paths]}

    if rings := geometry.get("rings"):
        polygons = _polygons(rings)
        if len(polygons) == 1:
            return {"type": "Polygon", "coordinates": polygons[0]}
        return {"type": "MultiPolygon", "coordinates": polygons}

    return None


def _polygons(rings: Iterable[_Coords]) -> list[list[list[list[float]]]]:
    """
    Group Esri rings into polygons, with GeoJSON winding order.

    Clockwise rings are exterior rings. A counterclockwise ring is a hole in the first
    exterior ring that covers it. If there is no such ring, it is an exterior ring itself.
    Coordinates are kept as they are, including any z and m values.
    """
    lines = [(_copy_line(ring), _planar_ring(ring)) for ring in rings]

    shells = [(coords, line) for coords, line in lines if not line.is_ccw]
    holes_by_shell: list[list[list[list[float]]]] = [[] for _ in shells]

    for coords, hole in ((coords, line) for coords, line in lines if line.is_ccw):
        for i, (_, shell) in enumerate(shells):
            if Polygon(shell).covers(hole):
                holes_by_shell[i].append(_wind(coords, hole, ccw=False))
                break
        else:
            shells.append((coords, hole))
            holes_by_shell.append([])

    return [
        [_wind(coords, shell, ccw=True), *holes]
        for (coords, shell), holes in zip(shells, holes_by_shell, strict=True)
    ]


def _esri_rings(polygons: Iterable[Sequence[_Coords]]) -> list[list[list[float]]]:
    """Flatten GeoJSON polygon coordinates to Esri rings, with Esri winding order."""
    rings = []

    for exterior, *interiors in polygons:
        rings.append(_wind(_copy_line(exterior), _planar_ring(exterior), ccw=False))
        rings.extend(
            _wind(_copy_line(interior), _planar_ring(interior), ccw=True)
            for interior in interiors
        )

    return rings


def _planar_ring(coords: _Coords) -> LinearRing:
    """The ring in the plane, which is all that matters for its orientation."""
    return LinearRing([c[:2] for c in coords])


def _wind(coords: list[list[float]], ring: LinearRing, *, ccw: bool) -> list[list[float]]:
    if ring.is_ccw != ccw:
        coords.reverse()
    return coords


def _copy_line(coords: Iterable[Any]) -> list[list[float]]:
    return [list(c) for c in coords]
