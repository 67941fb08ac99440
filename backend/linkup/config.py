import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() not in ("0", "false", "no", "")


def _env_list(name: str) -> List[str]:
    raw = os.getenv(name, "")
    return [x.strip() for x in raw.split(",") if x.strip()]


class Settings(BaseModel):
    """Runtime configuration, built once at startup and passed to each component."""

    # Twilio
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_api_base: str = "https://api.twilio.com/2010-04-01"
    twilio_verify_service_sid: Optional[str] = None
    twilio_verify_base: str = "https://verify.twilio.com/v2"

    # Speech-to-text Space
    gradio_base_url: str = "https://dougsworth-linkup-asr.hf.space"
    gradio_job_name: str = "transcribe"

    # Supabase
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    voice_jobs_table: str = "voice_jobs"

    # Completion step
    completion_url: Optional[str] = None
    notify_timeout: float = 1.0
    completion_polls: int = 6
    completion_poll_interval: float = 1.0
    completion_max_attempts: int = 5

    # Patois translation (Groq first, then OpenAI)
    groq_api_key: Optional[str] = None
    groq_model: str = "llama-3.1-8b-instant"
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    patois_translation_enabled: bool = True

    # Place-name correction (OpenStreetMap Nominatim)
    location_correction_enabled: bool = True
    nominatim_base_url: str = "https://nominatim.openstreetmap.org"
    location_country_codes: str = "jm"
    location_timeout: float = 1.5
    location_max_lookups: int = 3
    location_lookup_delay: float = 0.1
    location_user_agent: str = "LinkUpWork/1.0"

    # Retry/timeouts
    http_timeout: float = 30.0
    fetch_max_attempts: int = 3
    store_max_attempts: int = 3
    retry_wait_min: float = 0.5
    retry_wait_max: float = 5.0

    cors_allow_origins: List[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    @property
    def twilio_configured(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token)

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        values = {
            "twilio_account_sid": os.getenv("TWILIO_ACCOUNT_SID"),
            "twilio_auth_token": os.getenv("TWILIO_AUTH_TOKEN"),
            "twilio_verify_service_sid": os.getenv("TWILIO_VERIFY_SERVICE_SID"),
            "supabase_url": os.getenv("SUPABASE_URL"),
            "supabase_key": os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_ANON_KEY"),
            "completion_url": os.getenv("COMPLETION_URL"),
            "groq_api_key": os.getenv("GROQ_API_KEY"),
            "openai_api_key": os.getenv("OPENAI_API_KEY"),
            "patois_translation_enabled": _env_bool("PATOIS_TRANSLATION_ENABLED", True),
            "location_correction_enabled": _env_bool("LOCATION_CORRECTION_ENABLED", True),
        }
        optional = {
            "twilio_api_base": "TWILIO_API_BASE",
            "gradio_base_url": "GRADIO_BASE_URL",
            "gradio_job_name": "GRADIO_JOB_NAME",
            "voice_jobs_table": "VOICE_JOBS_TABLE",
            "notify_timeout": "NOTIFY_TIMEOUT",
            "completion_polls": "COMPLETION_POLLS",
            "completion_poll_interval": "COMPLETION_POLL_INTERVAL",
            "completion_max_attempts": "COMPLETION_MAX_ATTEMPTS",
            "groq_model": "GROQ_MODEL",
            "openai_model": "OPENAI_MODEL",
            "nominatim_base_url": "NOMINATIM_BASE_URL",
            "location_timeout": "LOCATION_TIMEOUT",
            "http_timeout": "HTTP_TIMEOUT",
            "fetch_max_attempts": "FETCH_MAX_ATTEMPTS",
            "store_max_attempts": "STORE_MAX_ATTEMPTS",
            "log_level": "LOG_LEVEL",
        }
        for field, env_name in optional.items():
            raw = os.getenv(env_name)
            if raw is not None and raw.strip():
                values[field] = raw.strip()
        origins = _env_list("CORS_ALLOW_ORIGINS")
        if origins:
            values["cors_allow_origins"] = origins
        return cls(**values)
