"""Configuration loading and validation for threadclip."""

import os
from pathlib import Path

from dotenv import load_dotenv

from utils.errors import ConfigurationError

# Get the project root directory (parent of src)
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Load environment variables from .env file in project root
load_dotenv(PROJECT_ROOT / ".env")

DEFAULT_THREAD_DELIMITER = "---"
DEFAULT_MIN_MATCH_CONFIDENCE = 0.75


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def load_config() -> dict:
    """Load configuration from environment variables."""

    # Helper function to resolve paths relative to project root
    def resolve_path(path: str | None, default_relative: str) -> str:
        if not path:
            return str(PROJECT_ROOT / default_relative)
        if Path(path).is_absolute():
            return path
        return str(PROJECT_ROOT / path)

    config = {
        # Required API keys
        "gemini_api_key": os.getenv("GEMINI_API_KEY"),
        "rapidapi_key": os.getenv("RAPIDAPI_KEY"),
        # Model configurations
        "whisper_model": os.getenv("WHISPER_MODEL", "base"),
        "gemini_model": os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
        # Video-data provider
        "rapidapi_host": os.getenv(
            "RAPIDAPI_HOST", "youtube-video-fast-downloader-24-7.p.rapidapi.com"
        ),
        "provider_max_requests_per_minute": int(
            os.getenv("PROVIDER_MAX_REQUESTS_PER_MINUTE", "13")
        ),
        "provider_min_request_interval": float(
            os.getenv("PROVIDER_MIN_REQUEST_INTERVAL", "2.0")
        ),
        # Thread parsing and matching
        "thread_delimiter": os.getenv("THREAD_DELIMITER", DEFAULT_THREAD_DELIMITER),
        "min_match_confidence": float(
            os.getenv("MIN_MATCH_CONFIDENCE", str(DEFAULT_MIN_MATCH_CONFIDENCE))
        ),
        # Concurrency
        "max_concurrent_transcripts": int(os.getenv("MAX_CONCURRENT_TRANSCRIPTS", "3")),
        "parallel_downloads": int(os.getenv("PARALLEL_DOWNLOADS", "3")),
        # Job lifecycle
        "job_timeout_seconds": float(os.getenv("JOB_TIMEOUT_SECONDS", "1800")),
        "job_retention_seconds": float(os.getenv("JOB_RETENTION_SECONDS", "3600")),
        # Scratch space and credentials
        "scratch_dir": resolve_path(os.getenv("SCRATCH_DIR"), "temp"),
        "cookies_dir": resolve_path(os.getenv("COOKIES_DIR"), "temp/cookies"),
        "ytdlp_cookies_file": os.getenv("YTDLP_COOKIES_FILE"),  # Optional cookie file path
        "youtube_cookies": os.getenv("YOUTUBE_COOKIES"),  # Optional cookie file contents
        "ytdlp_cookies_from_browser": os.getenv("YTDLP_COOKIES_FROM_BROWSER"),
        # Clip output
        "clip_max_height": int(os.getenv("CLIP_MAX_HEIGHT", "720")),
        # Scoring response cache
        "score_cache_enabled": _env_bool("SCORE_CACHE_ENABLED", "true"),
        "score_cache_dir": resolve_path(os.getenv("SCORE_CACHE_DIR"), ".cache/scores"),
        "score_cache_ttl_days": int(os.getenv("SCORE_CACHE_TTL_DAYS", "30")),
        # Logging
        "log_level": os.getenv("LOG_LEVEL", "INFO"),
        "log_json": _env_bool("LOG_JSON"),
    }

    return config


def validate_config(config: dict) -> list[str]:
    """Validate configuration and return list of errors."""
    errors = []

    # Check required API keys
    if not config.get("gemini_api_key"):
        errors.append("GEMINI_API_KEY is required (language understanding)")
    if not config.get("rapidapi_key"):
        errors.append("RAPIDAPI_KEY is required (video-data provider)")
    if not config.get("whisper_model"):
        errors.append("WHISPER_MODEL is required (speech-to-text)")

    if not config.get("thread_delimiter"):
        errors.append("THREAD_DELIMITER must not be empty")

    confidence = config.get("min_match_confidence", DEFAULT_MIN_MATCH_CONFIDENCE)
    if not 0.0 <= confidence <= 1.0:
        errors.append(f"MIN_MATCH_CONFIDENCE must be between 0 and 1, got {confidence}")

    for key in (
        "max_concurrent_transcripts",
        "parallel_downloads",
        "provider_max_requests_per_minute",
    ):
        if config.get(key, 1) < 1:
            errors.append(f"{key.upper()} must be at least 1")

    for key in ("job_timeout_seconds", "job_retention_seconds"):
        if config.get(key, 1) <= 0:
            errors.append(f"{key.upper()} must be positive")

    if config.get("provider_min_request_interval", 0) < 0:
        errors.append("PROVIDER_MIN_REQUEST_INTERVAL must not be negative")

    cookies_file = config.get("ytdlp_cookies_file")
    if cookies_file and not Path(cookies_file).exists():
        errors.append(f"YTDLP_COOKIES_FILE not found: {cookies_file}")

    # Validate local paths exist
    for key in ("scratch_dir", "cookies_dir"):
        if config.get(key):
            try:
                Path(config[key]).mkdir(parents=True, exist_ok=True)
            except Exception as e:
                errors.append(f"Cannot create {key}: {e}")

    return errors


def require_valid_config(config: dict | None = None) -> dict:
    """Load (if needed) and validate configuration, raising on any error."""
    config = config if config is not None else load_config()
    errors = validate_config(config)
    if errors:
        raise ConfigurationError(errors)
    return config
