from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class LocationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    name: str
    address: str | None


class LeagueOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    location_id: str
    name: str
    status: str


class TeamOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    league_id: str
    name: str
    status: str


class LeagueMemberOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    league_id: str
    user_id: str
    role: str
