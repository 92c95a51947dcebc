"""API routes."""

from fastapi import APIRouter

from storefront.routes import stores

api_router = APIRouter()

# Store listings, reports and reviews
api_router.include_router(stores.router, prefix="/v1/stores", tags=["stores"])
