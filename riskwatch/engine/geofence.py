"""
Geofence Watcher.

A static, ordered set of polygons each tagged with a risk level. Polygons
are not assumed disjoint: they are tested in order and the first match wins.

ZoneWatcher keeps each subject's last classified level and reports a
transition only when a subject moves INTO a Yellow or Red zone it was not
already in. Moving into Green, or out of every fence, updates the
remembered state silently.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Sequence, Union

import structlog
from cachetools import LRUCache

from riskwatch.geo import point_in_polygon
from riskwatch.schemas.common import RiskLevel
from riskwatch.schemas.subject import SubjectUpdate

logger = structlog.get_logger(__name__)

NOTIFY_LEVELS = frozenset({RiskLevel.YELLOW, RiskLevel.RED})

# Sample fences around central New Delhi (GeoJSON lon/lat), in priority order
DEFAULT_GEOFENCES: dict[str, Any] = {
    "type": "FeatureCollection",
    "features": [
        {
            "type": "Feature",
            "properties": {"level": "Green"},
            "geometry": {
                "type": "Polygon",
                "coordinates": [[
                    [77.15, 28.60], [77.27, 28.60], [77.27, 28.66], [77.15, 28.66], [77.15, 28.60],
                ]],
            },
        },
        {
            "type": "Feature",
            "properties": {"level": "Yellow"},
            "geometry": {
                "type": "Polygon",
                "coordinates": [[
                    [77.19, 28.61], [77.31, 28.61], [77.31, 28.69], [77.19, 28.69], [77.19, 28.61],
                ]],
            },
        },
        {
            "type": "Feature",
            "properties": {"level": "Red"},
            "geometry": {
                "type": "Polygon",
                "coordinates": [[
                    [77.21, 28.59], [77.24, 28.59], [77.24, 28.62], [77.21, 28.62], [77.21, 28.59],
                ]],
            },
        },
    ],
}


@dataclass(frozen=True)
class Geofence:
    level: RiskLevel
    ring: tuple[tuple[float, float], ...]     # closed ring of (lon, lat)
    name: Optional[str] = None

    def contains(self, longitude: float, latitude: float) -> bool:
        return point_in_polygon(longitude, latitude, self.ring)


class GeofenceSet:
    """Immutable ordered geofence collection."""

    def __init__(self, fences: Sequence[Geofence]):
        self._fences: tuple[Geofence, ...] = tuple(fences)

    def __len__(self) -> int:
        return len(self._fences)

    def __iter__(self):
        return iter(self._fences)

    def classify(self, longitude: float, latitude: float) -> Optional[RiskLevel]:
        """Level of the first fence containing the point, or None."""
        for fence in self._fences:
            if fence.contains(longitude, latitude):
                return fence.level
        return None

    @classmethod
    def from_geojson(cls, collection: dict[str, Any]) -> "GeofenceSet":
        """
        Build from a GeoJSON FeatureCollection.

        Only Polygon features are used (outer ring only); each needs a
        `level` property of Green, Yellow or Red.
        """
        fences: list[Geofence] = []
        for feature in collection.get("features", []):
            geometry = feature.get("geometry") or {}
            if geometry.get("type") != "Polygon":
                continue
            properties = feature.get("properties") or {}
            ring = tuple((float(x), float(y)) for x, y, *_ in geometry["coordinates"][0])
            fences.append(Geofence(
                level=RiskLevel(properties["level"]),
                ring=ring,
                name=properties.get("name"),
            ))
        return cls(fences)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "GeofenceSet":
        with open(path, encoding="utf-8") as fh:
            collection = json.load(fh)
        fences = cls.from_geojson(collection)
        logger.info("geofences_loaded", path=str(path), count=len(fences))
        return fences

    @classmethod
    def default(cls) -> "GeofenceSet":
        return cls.from_geojson(DEFAULT_GEOFENCES)


@dataclass(frozen=True)
class ZoneTransition:
    subject_id: str
    subject_name: str
    previous: Optional[RiskLevel]
    level: RiskLevel


class ZoneWatcher:
    """Per-subject zone state machine: unclassified / Green / Yellow / Red."""

    def __init__(self, geofences: GeofenceSet, max_subjects: int = 100_000):
        self.geofences = geofences
        self._zones: LRUCache = LRUCache(maxsize=max_subjects)

    def observe(self, update: SubjectUpdate) -> Optional[ZoneTransition]:
        """Reclassify one update. Returns a transition on entry into Yellow/Red."""
        if not update.has_location:
            return None

        level = self.geofences.classify(update.longitude, update.latitude)
        previous = self._zones.get(update.subject_id)
        self._zones[update.subject_id] = level

        if level == previous or level not in NOTIFY_LEVELS:
            return None

        return ZoneTransition(
            subject_id=update.subject_id,
            subject_name=update.display_name,
            previous=previous,
            level=level,
        )

    def current_zone(self, subject_id: str) -> Optional[RiskLevel]:
        return self._zones.get(subject_id)

    def reset(self) -> None:
        self._zones.clear()

    def __len__(self) -> int:
        return len(self._zones)
