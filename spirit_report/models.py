"""Canonical domain models for birth data and chart analysis results."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class Location(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    longitude: float = Field(..., ge=-180, le=180, description="Longitude")
    latitude: float = Field(..., ge=-90, le=90, description="Latitude")
    timezone_offset: float = Field(..., description="UTC offset hours")
    timezone: str = Field("", description="IANA timezone name")
    location_name: str = ""
    complete_name: str = ""
    country: str = ""
    administrative_zone_1: str = ""
    administrative_zone_2: str = ""


class Subject(BaseModel):
    """Birth data of one person; its full structural value is the cache identity."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    name: str = ""
    email: str = ""
    date_of_birth: str = Field(..., alias="dateOfBirth", description="YYYY-MM-DD")
    time_of_birth: str = Field(..., alias="timeOfBirth", description="HH:mm or HH:mm:ss")
    place_of_birth: str = Field("", alias="placeOfBirth")
    location: Location = Field(..., alias="selectedLocation")


class Placement(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = ""
    sign: str = ""


class HousePlacement(BaseModel):
    model_config = ConfigDict(frozen=True)

    house: int = Field(..., ge=1, le=12)
    sign: str = ""


class Big3(BaseModel):
    model_config = ConfigDict(frozen=True)

    ascendant: str = ""
    sun: str = ""
    moon: str = ""


class AnalysisResult(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    big3: Big3 = Field(default_factory=Big3)
    planets: tuple[Placement, ...] = ()
    houses: tuple[HousePlacement, ...] = ()
    planet_interpretation: str = Field("", alias="planetInterpretation")
    house_interpretation: str = Field("", alias="houseInterpretation")

    def to_response(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class CacheEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    subject: Subject
    result: AnalysisResult
