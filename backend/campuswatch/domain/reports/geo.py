"""Geodesic helpers backing the nearby-report queries."""

from __future__ import annotations

import math
from typing import Tuple

from campuswatch.domain.reports.exceptions import InvalidArgument
from campuswatch.domain.reports.models import MAX_RADIUS_M, MIN_RADIUS_M, GeoPoint

EARTH_RADIUS_M = 6_371_000.0


def validate_point(longitude: float, latitude: float) -> GeoPoint:
	try:
		lon = float(longitude)
		lat = float(latitude)
	except (TypeError, ValueError):
		raise InvalidArgument("invalid_coordinates", "Invalid coordinates", field="location") from None
	if not (math.isfinite(lon) and math.isfinite(lat)):
		raise InvalidArgument("invalid_coordinates", "Invalid coordinates", field="location")
	if not -180.0 <= lon <= 180.0:
		raise InvalidArgument("invalid_longitude", "Longitude must be between -180 and 180", field="lon")
	if not -90.0 <= lat <= 90.0:
		raise InvalidArgument("invalid_latitude", "Latitude must be between -90 and 90", field="lat")
	return GeoPoint(longitude=lon, latitude=lat)


def validate_radius(radius_m: float) -> float:
	try:
		radius = float(radius_m)
	except (TypeError, ValueError):
		raise InvalidArgument("invalid_radius", "Invalid radius", field="radius") from None
	if not math.isfinite(radius) or not MIN_RADIUS_M <= radius <= MAX_RADIUS_M:
		raise InvalidArgument(
			"invalid_radius",
			f"Radius must be between {MIN_RADIUS_M} and {MAX_RADIUS_M} meters",
			field="radius",
		)
	return radius


def haversine_m(a: GeoPoint, b: GeoPoint) -> float:
	lat1 = math.radians(a.latitude)
	lat2 = math.radians(b.latitude)
	dlat = lat2 - lat1
	dlon = math.radians(b.longitude - a.longitude)
	h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
	return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))


def bounding_box(center: GeoPoint, radius_m: float) -> Tuple[float, float, float, float]:
	"""Return (min_lon, min_lat, max_lon, max_lat) enclosing the search circle.

	Used as an index-friendly prefilter before the exact distance check.
	"""
	dlat = math.degrees(radius_m / EARTH_RADIUS_M)
	cos_lat = math.cos(math.radians(center.latitude))
	if cos_lat < 1e-9:
		dlon = 180.0
	else:
		dlon = min(180.0, math.degrees(radius_m / (EARTH_RADIUS_M * cos_lat)))
	min_lon = center.longitude - dlon
	max_lon = center.longitude + dlon
	if min_lon < -180.0 or max_lon > 180.0:
		# circle crosses the antimeridian; only the latitude band narrows anything
		min_lon, max_lon = -180.0, 180.0
	return (
		min_lon,
		max(-90.0, center.latitude - dlat),
		max_lon,
		min(90.0, center.latitude + dlat),
	)
