"""Aggregate all v1 API routers."""

from fastapi import APIRouter
from pdftools.api.v1.compress import router as compress_router
from pdftools.api.v1.merge import router as merge_router
from pdftools.api.v1.jobs import router as jobs_router
from pdftools.api.v1.stats import router as stats_router
from pdftools.api.v1.email import router as email_router

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(compress_router, tags=["compress"])
v1_router.include_router(merge_router, tags=["merge"])
v1_router.include_router(jobs_router, tags=["jobs"])
v1_router.include_router(stats_router, tags=["stats"])
v1_router.include_router(email_router, tags=["email"])
