# drivecrm/config.py
import os

# Access tokens are issued elsewhere; this service only verifies them.
JWT_SECRET = os.getenv("JWT_SECRET", "")
JWT_ALG = os.getenv("JWT_ALG", "HS256")
JWT_LEEWAY_SECONDS = int(os.getenv("JWT_LEEWAY_SECONDS", "30"))
ACCESS_TOKEN_COOKIE = os.getenv("ACCESS_TOKEN_COOKIE", "access_token")

# Service-to-service callers (n8n, cron runners) sign request bodies
SERVICE_TOKEN = os.getenv("SERVICE_TOKEN", "")
CRM_HMAC_SECRET = os.getenv("CRM_HMAC_SECRET", "") or SERVICE_TOKEN

CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000")
DB_POOL_MAX = int(os.getenv("DB_POOL_MAX", "10"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()
