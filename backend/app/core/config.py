from dotenv import load_dotenv
import os

load_dotenv()  # Carrega variáveis do .env

DATABASE_URL = os.getenv("DATABASE_URL")
SECRET_KEY = os.getenv("SECRET_KEY")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
SYNC_API_KEY = os.getenv("SYNC_API_KEY")
SYNC_RATE_LIMIT_PER_MINUTE = int(os.getenv("SYNC_RATE_LIMIT_PER_MINUTE", 50))
BUSINESS_TIMEZONE = os.getenv("BUSINESS_TIMEZONE", "America/Belem")
RETROACTIVE_JUSTIFICATION_DAYS = int(os.getenv("RETROACTIVE_JUSTIFICATION_DAYS", 7))
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
CORS_ORIGIN_REGEX = os.getenv("CORS_ORIGIN_REGEX", r"^https://.*\.vercel\.app$")

PAT_CODE_LENGTH = 6

def parse_cors_origins(value: str):
    if not value:
        return []
    if value.strip() == "*":
        return ["*"]
    return [origin.strip() for origin in value.split(",") if origin.strip()]
