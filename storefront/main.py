# storefront/main.py
from storefront.data.database import Base, engine
from storefront.api import create_app
from storefront.utils.logging import get_logger
import uvicorn

logger = get_logger(__name__)

# modele musza byc zarejestrowane w Base.metadata przed create_all
import storefront.data.models  # noqa: F401,E402

logger.info(f"Models registered in Base.metadata: {list(Base.metadata.tables.keys())}")

try:
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")
except Exception as e:
    logger.error(f"Failed to create tables: {e}")
    raise


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
