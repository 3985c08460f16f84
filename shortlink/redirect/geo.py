from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class GeoInfo:
    country: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None
    timezone: Optional[str] = None


class GeoLookup(Protocol):
    def lookup(self, ip_address: str) -> Optional[GeoInfo]:
        ...


class NullGeoLookup:
    """Used when no IP geolocation source is configured."""

    def lookup(self, ip_address: str) -> Optional[GeoInfo]:
        return None
