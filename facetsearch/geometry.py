"""Normalization of WKT shapes used by spatial filters."""

import logging

from shapely import wkt
from shapely.errors import ShapelyError
from shapely.geometry import MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry

from .exceptions import UnsupportedShapeError

logger = logging.getLogger(__name__)

SUPPORTED_SHAPES = ("Point", "LinearRing", "Polygon", "MultiPolygon")

# closed ring: three distinct corners plus the closing coordinate
MIN_RING_COORDINATES = 4

Coordinate = tuple[float, ...]


def remove_consecutive_duplicates(coordinates: list[Coordinate]) -> list[Coordinate]:
    """Drop consecutive duplicate coordinates, keeping order.

    The first coordinate is always kept, and a closing coordinate equal to
    the first one is never treated as a duplicate.
    """
    if not coordinates:
        return []

    normalized = [coordinates[0]]
    for previous, current in zip(coordinates, coordinates[1:]):
        if previous != current:
            normalized.append(current)
    return normalized


class GeometryNormalizer:
    """Parses, validates and re-serializes WKT shapes."""

    def normalize(self, shape: str) -> str:
        """Normalize a WKT shape.

        Polygon rings (shells and holes) lose their consecutive duplicate
        vertices; other supported shapes are only re-serialized.

        Args:
            shape: Well-known text of a point, linear ring, polygon or
                multi-polygon

        Returns:
            The normalized well-known text

        Raises:
            UnsupportedShapeError: If the text is not valid WKT or describes
                an unsupported shape
        """
        geometry = self.read(shape)
        try:
            normalized = self._normalize(geometry)
        except (ShapelyError, ValueError) as e:
            raise UnsupportedShapeError(f"Invalid {geometry.geom_type} shape: {e}") from e
        return wkt.dumps(normalized, trim=True)

    def read(self, shape: str) -> BaseGeometry:
        """Parse a WKT shape, rejecting unsupported shape kinds."""
        try:
            geometry = wkt.loads(shape)
        except (ShapelyError, ValueError, TypeError) as e:
            raise UnsupportedShapeError(f"Invalid WKT shape: {shape}") from e

        if geometry is None:
            raise UnsupportedShapeError(f"Invalid WKT shape: {shape}")
        if geometry.geom_type not in SUPPORTED_SHAPES:
            raise UnsupportedShapeError(f"{geometry.geom_type} shape is not supported")
        if geometry.is_empty:
            raise UnsupportedShapeError(f"Empty {geometry.geom_type} shape")
        return geometry

    def _normalize(self, geometry: BaseGeometry) -> BaseGeometry:
        if isinstance(geometry, Polygon):
            return self._normalize_polygon(geometry)
        if isinstance(geometry, MultiPolygon):
            return MultiPolygon([self._normalize_polygon(p) for p in geometry.geoms])
        return geometry

    @staticmethod
    def _normalize_ring(coordinates: list[Coordinate]) -> list[Coordinate]:
        ring = remove_consecutive_duplicates(coordinates)
        if len(ring) < MIN_RING_COORDINATES:
            raise UnsupportedShapeError(
                f"ring has {len(ring)} coordinates after removing duplicates, "
                f"at least {MIN_RING_COORDINATES} are required"
            )
        return ring

    def _normalize_polygon(self, polygon: Polygon) -> Polygon:
        shell = self._normalize_ring(list(polygon.exterior.coords))
        holes = [self._normalize_ring(list(ring.coords)) for ring in polygon.interiors]
        return Polygon(shell, holes)
