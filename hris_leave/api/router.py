from fastapi import APIRouter

from hris_leave.api.categories import categories_router
from hris_leave.api.quotas import employee_quotas_router, quotas_router
from hris_leave.api.requests import requests_router

api_router = APIRouter()
api_router.include_router(categories_router)
api_router.include_router(quotas_router)
api_router.include_router(employee_quotas_router)
api_router.include_router(requests_router)
