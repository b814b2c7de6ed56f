"""Provider-side record of the aviationapi.com airports endpoint."""

from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class AirportRecord(BaseModel):
    """One airport entry of ``GET /v1/airports?apt=...``. Unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    site_number: Optional[str] = None
    type: Optional[str] = None
    facility_name: Optional[str] = None
    faa_ident: Optional[str] = None
    icao_ident: Optional[str] = None
    region: Optional[str] = None
    state: Optional[str] = None
    state_full: Optional[str] = None
    # The feed has no country column; its "county" is what gets reported as country
    country: Optional[str] = Field(None, validation_alias=AliasChoices("country", "county"))
    city: Optional[str] = None
    ownership: Optional[str] = None
    use: Optional[str] = None
    latitude: Optional[str] = Field(None, description="Dashed DMS, e.g. 40-38-23.7400N")
    latitude_sec: Optional[str] = Field(None, description="Arc-seconds, e.g. 146303.7400N")
    longitude: Optional[str] = Field(None, description="Dashed DMS, e.g. 073-46-43.2930W")
    longitude_sec: Optional[str] = Field(None, description="Arc-seconds, e.g. 265603.2930W")
    elevation: Optional[str] = None
    magnetic_variation: Optional[str] = None
    status: Optional[str] = None
    control_tower: Optional[str] = None
    effective_date: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        """The feed sends empty strings for missing values; numbers arrive as numbers sometimes."""
        if v is None:
            return None
        if isinstance(v, bool):
            raise ValueError("unexpected boolean value")
        if isinstance(v, (int, float)):
            return str(v)
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v
