from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from league_auth.authz.decision import RoleMatch
from league_auth.authz.scopes import LeagueRole, Scope
from league_auth.db.session import get_db
from league_auth.models.identity import League, LeagueMember, Location, Team
from league_auth.schemas.leagues import LeagueMemberOut, LeagueOut, LocationOut, TeamOut
from league_auth.security.decorators import require_scope_role

logger = logging.getLogger(__name__)

router = APIRouter(tags=["leagues"])


def _get_or_404(db: Session, model, id: str, label: str):
    obj = db.get(model, id)
    if obj is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{label} not found")
    return obj


# Scope checks for the three reads live in security_config.yaml.
@router.get("/locations/{location_id}", response_model=LocationOut)
def get_location(location_id: str, db: Session = Depends(get_db)) -> Location:
    return _get_or_404(db, Location, location_id, "Location")


@router.get("/leagues/{league_id}", response_model=LeagueOut)
def get_league(league_id: str, db: Session = Depends(get_db)) -> League:
    return _get_or_404(db, League, league_id, "League")


@router.get("/teams/{team_id}", response_model=TeamOut)
def get_team(team_id: str, db: Session = Depends(get_db)) -> Team:
    return _get_or_404(db, Team, team_id, "Team")


@router.post("/leagues/{league_id}/members/{user_id}/promote", response_model=LeagueMemberOut)
@require_scope_role(Scope.LEAGUES, LeagueRole.MANAGER.value, "league_id", RoleMatch.EXACT)
def promote_member(league_id: str, user_id: str, request: Request, db: Session = Depends(get_db)) -> LeagueMember:
    """
    Make a league member a manager.

    The promoted user's existing credentials keep the old role until they
    expire or the user refreshes.
    """

    member = db.scalars(
        select(LeagueMember).where(LeagueMember.league_id == league_id, LeagueMember.user_id == user_id)
    ).first()
    if member is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="League member not found")
    member.role = LeagueRole.MANAGER.value
    db.commit()
    authz = request.state.authz
    logger.info(
        "Promoted user_id=%s to manager league_id=%s by=%s admin=%s",
        user_id,
        league_id,
        authz.identity_id,
        authz.is_platform_admin,
    )
    return member
