import os
from pathlib import Path

# Repo root is always the parent of /backend (i.e., civic_report/)
repo_root = Path(__file__).resolve().parent.parent

# Load local environment variables (do NOT commit secrets).
# Lets developers keep DATABASE_URL / data paths in civic_report/.env without exporting in every terminal.
try:
    from dotenv import load_dotenv  # type: ignore

    load_dotenv(repo_root / ".env", override=False)
except ImportError:
    # If python-dotenv isn't installed, continue with process env.
    pass
from dataclasses import dataclass


def _get_list(name: str, default: str) -> tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(v.strip() for v in raw.split(",") if v.strip())


@dataclass(frozen=True)
class Settings:
    app_name: str = "Civic Service-Request Report"
    env: str = os.getenv("APP_ENV", os.getenv("ENV", "local"))

    cors_origins: str = os.getenv("CORS_ORIGINS", "http://localhost:3000")

    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./civic_report.db")

    # Data paths. Defaults are absolute under repo root, so running scripts from any cwd still works.
    data_raw_dir: str = os.getenv("DATA_RAW_DIR", str((repo_root / "data/raw").resolve()))
    # Reference lookups (area metadata + population estimates) live apart from the raw request dumps.
    data_reference_dir: str = os.getenv("DATA_REFERENCE_DIR", str((repo_root / "data/reference").resolve()))

    requests_file: str = os.getenv("REQUESTS_FILE", "service_requests.csv")
    areas_file: str = os.getenv("AREAS_FILE", "areas.csv")
    population_file: str = os.getenv("POPULATION_FILE", "population.csv")

    # Report policy.
    # Excluded request types are matched case-insensitively after trimming.
    excluded_request_types: tuple[str, ...] = _get_list("EXCLUDED_REQUEST_TYPES", "Informational,Noise Complaint")
    min_total_requests: int = int(os.getenv("MIN_TOTAL_REQUESTS", "10000"))
    top_n_per_area: int = int(os.getenv("TOP_N_PER_AREA", "5"))

    ingest_on_startup: bool = os.getenv("INGEST_ON_STARTUP", "false").lower() in ("1", "true", "yes")
    recreate_db_on_startup: bool = os.getenv("RECREATE_DB_ON_STARTUP", "false").lower() in ("1", "true", "yes")


settings = Settings()
