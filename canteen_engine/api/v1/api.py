"""API v1 router composition."""

from fastapi import APIRouter

from canteen_engine.api.v1.endpoints import accounts, cart, loans, orders, restaurants, schedule

api_router: APIRouter = APIRouter()
api_router.include_router(schedule.router, prefix="/schedule", tags=["schedule"])
api_router.include_router(restaurants.router, prefix="/restaurants", tags=["restaurants"])
api_router.include_router(cart.router, prefix="/cart", tags=["cart"])
api_router.include_router(orders.router, prefix="/orders", tags=["orders"])
api_router.include_router(loans.router, prefix="/loans", tags=["loans"])
api_router.include_router(accounts.router, prefix="/accounts", tags=["accounts"])
