import os

# --- Service ---
SERVER_NAME = os.environ.get("SERVER_NAME", "upload-ledger")
API_KEY = os.environ.get("API_KEY", "supersecretkey")
ADMIN_KEY = os.environ.get("ADMIN_KEY")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# --- Record store ---
DATABASE_URL = os.environ.get(
    "DATABASE_URL", "postgresql+asyncpg://postgres:postgres@db:5432/postgres"
)
# read-merge-write attempts before a concurrent update is surfaced
UPDATE_RETRIES = int(os.environ.get("UPDATE_RETRIES", "3"))
RETENTION_HOURS = int(os.environ.get("RETENTION_HOURS", "24"))

# --- Storage residence (MinIO / S3 compatible) ---
MINIO_ENDPOINT = os.environ.get("MINIO_ENDPOINT", "minio:9000")
MINIO_ACCESS_KEY = os.environ.get("MINIO_ACCESS_KEY", "testadmin123")
MINIO_SECRET_KEY = os.environ.get("MINIO_SECRET_KEY", "testadmin321")
MINIO_SECURE = os.environ.get("MINIO_SECURE", "false").lower() == "true"
MINIO_PROVIDER_NAME = os.environ.get("MINIO_PROVIDER_NAME", "amazon")
MINIO_PROVIDER_NAMESPACE = os.environ.get("MINIO_PROVIDER_NAMESPACE", "global")
MINIO_LOCATION = os.environ.get("MINIO_LOCATION") or None
