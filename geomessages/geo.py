"""
Bounding box value type used by geo-bounded retrieval.

A BoundingBox is validated on construction, so holding one means
all four corners are in range and the box is not inverted.
Boxes crossing the antimeridian (lon_left > lon_right) are rejected.
"""

from dataclasses import dataclass

from geomessages.errors import ValidationError


MIN_LATITUDE = -90.0
MAX_LATITUDE = 90.0
MIN_LONGITUDE = -180.0
MAX_LONGITUDE = 180.0


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned latitude/longitude rectangle (inclusive edges)."""
    lat_bottom: float
    lat_top: float
    lon_left: float
    lon_right: float

    def __post_init__(self):
        """Validate the corners, reporting the first violation found."""
        # Written as "not (lo <= v <= hi)" so NaN is rejected too
        if not MIN_LATITUDE <= self.lat_bottom <= MAX_LATITUDE:
            raise ValidationError("Invalid latitude_bottom", field="latitude_bottom")
        if not MIN_LATITUDE <= self.lat_top <= MAX_LATITUDE:
            raise ValidationError("Invalid latitude_top", field="latitude_top")
        if not MIN_LONGITUDE <= self.lon_left <= MAX_LONGITUDE:
            raise ValidationError("Invalid longitude_left", field="longitude_left")
        if not MIN_LONGITUDE <= self.lon_right <= MAX_LONGITUDE:
            raise ValidationError("Invalid longitude_right", field="longitude_right")
        if self.lat_bottom > self.lat_top:
            raise ValidationError(
                "Passed latitude_bottom that is greater than latitude_top",
                field="latitude_bottom",
            )
        if self.lon_left > self.lon_right:
            raise ValidationError(
                "Passed longitude_left that is greater than longitude_right "
                "(boxes crossing the antimeridian are not supported)",
                field="longitude_left",
            )

    @property
    def lat_span(self) -> float:
        return self.lat_top - self.lat_bottom

    @property
    def lon_span(self) -> float:
        return self.lon_right - self.lon_left

    def contains(self, latitude: float, longitude: float) -> bool:
        """Check whether a point lies inside the box, edges included."""
        return (
            self.lat_bottom <= latitude <= self.lat_top
            and self.lon_left <= longitude <= self.lon_right
        )
