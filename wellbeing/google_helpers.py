import logging
import os
from google.cloud import secretmanager
from google.oauth2 import service_account
from google.auth import default as google_auth_default
from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s | %(levelname)s | %(name)s\n%(message)s\n"
)

logger = logging.getLogger("wellbeing_hub")

# --- Configuration ---
PROJECT_ID = os.getenv("GOOGLE_CLOUD_PROJECT", "your-project-id")
APP_ID = os.getenv("APP_ID", "default-app-id")

DATABASE_URL        = os.environ.get("DATABASE_URL", "")
DB_HOST             = os.environ.get("DB_HOST", "localhost")
DB_PORT             = int(os.environ.get("DB_PORT", "5432"))
DB_NAME             = os.environ.get("DB_NAME", "wellbeing")
DB_USER             = os.environ.get("DB_USER", "postgres")
DB_PASSWORD         = os.environ.get("DB_PASSWORD")
DB_SECRET_ID        = os.environ.get("DB_SECRET_ID")

GEMINI_API_KEY      = os.getenv("GEMINI_API_KEY", "")
GEMINI_MODEL        = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
GEMINI_API_BASE     = os.getenv("GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta")
LLM_TIMEOUT         = float(os.getenv("LLM_TIMEOUT", "60"))

SNAPSHOT_POLL_INTERVAL  = float(os.getenv("SNAPSHOT_POLL_INTERVAL", "1.0"))
# 0 means the whole conversation goes to the model
CHAT_HISTORY_MAX_TOKENS = int(os.getenv("CHAT_HISTORY_MAX_TOKENS", "0"))

AUTH_TOKEN_SECRET   = os.getenv("AUTH_TOKEN_SECRET")
INITIAL_AUTH_TOKEN  = os.getenv("INITIAL_AUTH_TOKEN")


def _build_creds():
    key_path = os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")
    scopes = ["https://www.googleapis.com/auth/cloud-platform"]
    if key_path and os.path.exists(key_path):
        return service_account.Credentials.from_service_account_file(key_path, scopes=scopes)
    creds, _ = google_auth_default(scopes=scopes)
    return creds


def get_db_password() -> str:
    global DB_PASSWORD

    if DB_PASSWORD:
        return DB_PASSWORD

    if DB_SECRET_ID:
        creds = _build_creds()
        client = secretmanager.SecretManagerServiceClient(credentials=creds)
        name = client.secret_version_path(PROJECT_ID, DB_SECRET_ID, "latest")
        resp = client.access_secret_version(request={"name": name})
        DB_PASSWORD = resp.payload.data.decode("utf-8")
        return DB_PASSWORD

    raise RuntimeError("No DB_PASSWORD and no Secret Manager configured")


def get_db_engine(database_url: str | None = None):
    url = database_url or DATABASE_URL
    if url:
        logger.info(f"[DB] Using DATABASE_URL: {make_url(url).render_as_string(hide_password=True)}")
        return create_engine(url, future=True, pool_pre_ping=True)

    password = get_db_password()
    url = f"postgresql+pg8000://{DB_USER}:{password}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
    logger.info(f"[DB] Connecting to Postgres at {DB_HOST}:{DB_PORT}/{DB_NAME}")

    # pg8000 supports 'timeout' in seconds
    return create_engine(
        url,
        connect_args={"timeout": 10},  # fail in 10s instead of hanging forever
        future=True,
        pool_pre_ping=True,
    )


def create_session_factory(engine=None) -> sessionmaker:
    engine = engine or get_db_engine()
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        future=True,
    )
