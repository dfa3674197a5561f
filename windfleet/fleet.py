from __future__ import annotations

import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, FrozenSet, List, Mapping, Optional, Tuple

import pytz

from windfleet.cache import ResultCache

FLEET_TIMEZONE = os.environ.get("WINDFLEET_TIMEZONE", "America/Curacao")

@dataclass(frozen=True)
class Turbine:
    id: int
    name: str
    location: str
    latitude: float
    longitude: float

    @property
    def coordinates(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)

# Static reference data for the Curacao fleet
TURBINES: List[Turbine] = [
    Turbine(152, "TPK01", "Playa Kanoa", 12.174414, -68.856097),
    Turbine(153, "TPK02", "Playa Kanoa", 12.172306, -68.853696),
    Turbine(154, "TPK03", "Playa Kanoa", 12.170293, -68.851205),
    Turbine(155, "TPK04", "Playa Kanoa", 12.168005, -68.848947),
    Turbine(156, "TPK05", "Playa Kanoa", 12.165856, -68.846429),
    Turbine(157, "TTC01", "Tera Cora", 12.2474125, -69.0342807),
    Turbine(158, "TTC02", "Tera Cora", 12.2446829, -69.0327308),
    Turbine(159, "TTC03", "Tera Cora", 12.2427298, -69.031011),
    Turbine(160, "TTC04", "Tera Cora", 12.2407336, -69.0299708),
    Turbine(161, "TTC05", "Tera Cora", 12.2385725, -69.0289214),
    Turbine(267, "TTC06", "Tera Cora", 12.2363767, -69.0265066),
    Turbine(268, "TTC07", "Tera Cora", 12.2342816, -69.0237002),
    Turbine(269, "TTC08", "Tera Cora", 12.2286691, -69.0175458),
    Turbine(270, "TTC09", "Tera Cora", 12.2259029, -69.0144197),
    Turbine(271, "TTC10", "Tera Cora", 12.2233604, -69.0116079),
    Turbine(460, "TKT01", "Koraal Tabak", 12.14048, -68.8111938),
    Turbine(461, "TKT02", "Koraal Tabak", 12.1381709, -68.8107317),
    Turbine(462, "TKT03", "Koraal Tabak", 12.1359924, -68.810574),
    Turbine(463, "TKT04", "Koraal Tabak", 12.1339172, -68.8096241),
    Turbine(464, "TKT05", "Koraal Tabak", 12.1315948, -68.8091023),
]

@dataclass(frozen=True)
class FleetRegistry:
    """Read-only lookups over the static turbine table.

    Each id belongs to exactly one location group; construction fails otherwise.
    """
    turbines: Tuple[Turbine, ...]
    names: Mapping[int, str] = field(init=False)
    coordinates: Mapping[int, Tuple[float, float]] = field(init=False)
    location_groups: Mapping[str, FrozenSet[int]] = field(init=False)

    def __post_init__(self):
        names: Dict[int, str] = {}
        coords: Dict[int, Tuple[float, float]] = {}
        groups: Dict[str, List[int]] = {}
        for t in self.turbines:
            if t.id in names:
                raise ValueError(f"Turbine {t.id} is registered twice")
            names[t.id] = t.name
            coords[t.id] = t.coordinates
            groups.setdefault(t.location, []).append(t.id)
        object.__setattr__(self, "names", MappingProxyType(names))
        object.__setattr__(self, "coordinates", MappingProxyType(coords))
        object.__setattr__(self, "location_groups", MappingProxyType(
            {loc: frozenset(ids) for loc, ids in groups.items()}
        ))

    @property
    def ids(self) -> List[int]:
        return [t.id for t in self.turbines]

    def get(self, turbine_id: int) -> Optional[Turbine]:
        for t in self.turbines:
            if t.id == turbine_id:
                return t
        return None

    def name_for(self, turbine_id: int) -> str:
        return self.names.get(turbine_id) or f"Turbine {turbine_id}"

    def location_for(self, turbine_id: int) -> str:
        t = self.get(turbine_id)
        return t.location if t else ""

    def ids_in(self, location: str) -> List[int]:
        """Fleet-ordered ids of one location group (empty for unknown names)."""
        members = self.location_groups.get(location, frozenset())
        return [i for i in self.ids if i in members]

    def groups_as_lists(self) -> Dict[str, List[int]]:
        return {loc: self.ids_in(loc) for loc in self.location_groups}

@dataclass
class FleetContext:
    """Everything the engine needs beyond the request itself."""
    registry: FleetRegistry
    cache: ResultCache
    tz: pytz.BaseTzInfo = field(default_factory=lambda: pytz.timezone(FLEET_TIMEZONE))

def default_context(cache: ResultCache | None = None) -> FleetContext:
    return FleetContext(registry=FleetRegistry(tuple(TURBINES)), cache=cache if cache is not None else ResultCache.from_env())
