from fastapi import APIRouter

from reportsql.api.routes import reports, utils

api_router = APIRouter()
api_router.include_router(reports.router)
api_router.include_router(utils.router)
