# storefront/api/__init__.py
from fastapi import FastAPI
from storefront.api.routers import checkout
from storefront.api.routers.health import router as health_router

def create_app() -> FastAPI:
    app = FastAPI(title="Storefront Checkout", version="1.0.0")
    app.include_router(health_router)
    app.include_router(checkout.router)
    return app
