from fastapi import APIRouter
from shiftwatch.routers import ratings, violations, violation_rules, monitoring

# Routers are aggregated here; main.py only imports this hub.
api_router = APIRouter()

api_router.include_router(ratings.router, tags=["Ratings"])
api_router.include_router(violations.router, tags=["Violations"])
api_router.include_router(violation_rules.router, tags=["Violation Rules"])
api_router.include_router(monitoring.router, tags=["Monitoring"])
