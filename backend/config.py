import os
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


def _split_csv(value: str) -> List[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


class Settings(BaseModel):
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "MediTrack API")

    DATABASE_URL: str = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
    DATABASE_NAME: str = os.getenv("DATABASE_NAME", "meditrack")

    CORS_ORIGINS: List[str] = _split_csv(os.getenv("CORS_ORIGINS", "*"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # One canonical room-type enum; stored spelling is the one listed here
    ROOM_TYPES: List[str] = _split_csv(
        os.getenv("ROOM_TYPES", "general,private,ICU,emergency,operation")
    )

    INVOICE_NUMBER_PREFIX: str = os.getenv("INVOICE_NUMBER_PREFIX", "INV")
    INVOICE_SEQUENCE_PADDING: int = int(os.getenv("INVOICE_SEQUENCE_PADDING", "4"))

    # Attempts for read-compute-write cycles guarded by a version check
    WRITE_RETRIES: int = int(os.getenv("WRITE_RETRIES", "5"))

    DEFAULT_HOSPITAL_NAME: str = os.getenv("DEFAULT_HOSPITAL_NAME", "")
    DEFAULT_HOSPITAL_ADDRESS: str = os.getenv("DEFAULT_HOSPITAL_ADDRESS", "")
    DEFAULT_HOSPITAL_CONTACT: str = os.getenv("DEFAULT_HOSPITAL_CONTACT", "")


settings = Settings()
