from pydantic import BaseModel
from dotenv import load_dotenv
import os

# Load environment variables from .env file
load_dotenv()

class Settings(BaseModel):
    # Database (MySQL connection pool)
    db_host: str = os.getenv("DB_HOST", "127.0.0.1")
    db_port: int = int(os.getenv("DB_PORT", "3306"))
    db_user: str = os.getenv("DB_USER", "opsbot")
    db_pass: str = os.getenv("DB_PASS", "")
    db_name: str = os.getenv("DB_NAME", "opsdb")
    db_pool_size: int = int(os.getenv("DB_POOL_SIZE", "10"))

    # LLM (Ollama runtime)
    ollama_url: str = os.getenv("OLLAMA_URL", "http://127.0.0.1:11434")
    ollama_model: str = os.getenv("OLLAMA_MODEL", "mistral")
    llm_timeout: float = float(os.getenv("LLM_TIMEOUT", "60"))

    # Pipeline shaping
    sql_row_hint: int = int(os.getenv("SQL_ROW_HINT", "50"))
    preview_rows: int = int(os.getenv("PREVIEW_ROWS", "10"))
    narration_rows: int = int(os.getenv("NARRATION_ROWS", "5"))
    stage_timeout: float = float(os.getenv("STAGE_TIMEOUT", "90"))

    # "off" runs model SQL as-is, "select_only" rejects anything but a single SELECT
    sql_guard: str = os.getenv("SQL_GUARD", "off")

    # Spreadsheet reports
    report_base_url: str = os.getenv(
        "REPORT_BASE_URL",
        "https://gaigkyc.blob.core.windows.net/ops-data/OneDrive_1_9-10-2025",
    )
    report_timeout: float = float(os.getenv("REPORT_TIMEOUT", "30"))

    # HTTP
    cors_origins: str = os.getenv("CORS_ORIGINS", "*")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

# Create a global settings object
settings = Settings()
