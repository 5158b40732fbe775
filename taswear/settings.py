import logging
import os
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

load_dotenv()


def _schemes(raw: str) -> List[str]:
    return [s.strip() for s in raw.split(",") if s.strip()]


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    database_url: str = "mongodb://localhost:27017"
    database_name: str = "taswear"
    jwt_secret: str = "dev-secret-change"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7  # 7 days
    password_schemes: List[str] = Field(default_factory=lambda: ["bcrypt"])
    catalog_poll_interval: float = Field(2.0, gt=0)
    featured_products_limit: int = Field(10, ge=1)
    log_level: str = "INFO"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", "mongodb://localhost:27017"),
            database_name=os.getenv("DATABASE_NAME", "taswear"),
            jwt_secret=os.getenv("JWT_SECRET", "dev-secret-change"),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            access_token_expire_minutes=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24 * 7)),
            password_schemes=_schemes(os.getenv("PASSWORD_SCHEMES", "bcrypt")),
            catalog_poll_interval=float(os.getenv("CATALOG_POLL_INTERVAL", 2.0)),
            featured_products_limit=int(os.getenv("FEATURED_PRODUCTS_LIMIT", 10)),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            port=int(os.getenv("PORT", 8000)),
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
