import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from services.exceptions import InvalidIcaoCodeError

ICAO_PATTERN = re.compile(r"^[A-Z0-9]{4}$")


def normalize_icao_code(code: Optional[str]) -> str:
    """Trim, upper-case and validate an ICAO code; raise InvalidIcaoCodeError otherwise."""
    if code is None:
        raise InvalidIcaoCodeError(code)
    normalized = code.strip().upper()
    if not ICAO_PATTERN.match(normalized):
        raise InvalidIcaoCodeError(code)
    return normalized


class Airport(BaseModel):
    """Airport domain entity. Immutable; invalid data never constructs."""

    model_config = ConfigDict(frozen=True)

    icao_code: str = Field(description="4-character ICAO code")
    secondary_code: Optional[str] = Field(None, description="Alternate identifier (FAA/IATA ident)")
    name: str = Field(description="Facility name")
    city: Optional[str] = Field(None, description="City served")
    country: Optional[str] = Field(None, description="Country")
    latitude: Optional[float] = Field(None, ge=-90, le=90, description="Latitude in decimal degrees")
    longitude: Optional[float] = Field(None, ge=-180, le=180, description="Longitude in decimal degrees")
    timezone_id: Optional[str] = Field(None, description="IANA timezone derived from coordinates")
    elevation_feet: Optional[int] = Field(None, description="Elevation in feet above sea level")

    @field_validator("icao_code")
    @classmethod
    def validate_icao_code(cls, v):
        if not v or not v.strip():
            raise ValueError("ICAO code cannot be null or empty")
        if not ICAO_PATTERN.match(v):
            raise ValueError("ICAO code must be 4 alphanumeric characters")
        return v

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("Airport name cannot be null or empty")
        return v.strip()

    @model_validator(mode="after")
    def validate_coordinates(self):
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must both be present or both be absent")
        return self


class Coordinates(BaseModel):
    latitude: float = Field(..., description="Latitude in decimal degrees")
    longitude: float = Field(..., description="Longitude in decimal degrees")


class AirportResponse(BaseModel):
    """API representation of an airport; absent fields are omitted."""

    icao_code: str = Field(description="4-character ICAO code")
    iata_code: Optional[str] = Field(None, description="Alternate identifier")
    name: str = Field(description="Facility name")
    city: Optional[str] = Field(None, description="City served")
    country: Optional[str] = Field(None, description="Country")
    coordinates: Optional[Coordinates] = Field(None, description="Airport reference point")
    timezone: Optional[str] = Field(None, description="IANA timezone identifier")
    elevation_feet: Optional[int] = Field(None, description="Elevation in feet")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "icao_code": "KJFK",
                "iata_code": "JFK",
                "name": "JOHN F KENNEDY INTL",
                "city": "NEW YORK",
                "country": "QUEENS",
                "coordinates": {"latitude": 40.6399, "longitude": -73.7787},
                "timezone": "America/New_York",
                "elevation_feet": 13,
            }
        }
    )

    @classmethod
    def from_domain(cls, airport: Airport) -> "AirportResponse":
        coordinates = None
        if airport.latitude is not None and airport.longitude is not None:
            coordinates = Coordinates(latitude=airport.latitude, longitude=airport.longitude)
        return cls(
            icao_code=airport.icao_code,
            iata_code=airport.secondary_code,
            name=airport.name,
            city=airport.city,
            country=airport.country,
            coordinates=coordinates,
            timezone=airport.timezone_id,
            elevation_feet=airport.elevation_feet,
        )
