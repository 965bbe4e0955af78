"""API v1 router aggregation"""
from fastapi import APIRouter

from app.api.v1 import token, voting_power, governance

api_router = APIRouter()

api_router.include_router(token.router, prefix="/token", tags=["Token"])
api_router.include_router(voting_power.router, prefix="/voting-power", tags=["Voting Power"])
api_router.include_router(governance.router, prefix="/governance", tags=["Governance"])
