from functools import lru_cache
import json
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _parse_list_value(value) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        raw = value.strip()
        if raw == "":
            return []
        try:
            parsed = json.loads(raw)
            if isinstance(parsed, list):
                return [str(item).strip().lower() for item in parsed if str(item).strip()]
        except ValueError:
            pass
        return [item.strip().lower() for item in raw.split(",") if item.strip()]
    if isinstance(value, list):
        return [str(item).strip().lower() for item in value if str(item).strip()]
    return []


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="forbid",
        validate_by_name=True,
        populate_by_name=True,
    )

    docs_enabled: bool = Field(default=True)
    openapi_enabled: bool = Field(default=True)

    enable_scan_api: bool = Field(
        default=True,
        validation_alias=AliasChoices("ENABLE_SCAN_API"),
    )

    # --- Orchestration ---
    scan_quality_threshold: int = Field(
        default=85,
        ge=0,
        le=100,
        validation_alias=AliasChoices("SCAN_QUALITY_THRESHOLD"),
    )
    scan_primary_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        validation_alias=AliasChoices("SCAN_PRIMARY_TIMEOUT_SECONDS"),
    )
    scan_secondary_timeout_seconds: float = Field(
        default=20.0,
        gt=0,
        validation_alias=AliasChoices("SCAN_SECONDARY_TIMEOUT_SECONDS"),
    )
    scan_primary_backend: str = Field(
        default="vision_ocr",
        validation_alias=AliasChoices("SCAN_PRIMARY_BACKEND"),
    )
    scan_secondary_backend: str = Field(
        default="context_llm",
        validation_alias=AliasChoices("SCAN_SECONDARY_BACKEND"),
    )
    scan_allowed_backends_raw: str = Field(
        default="vision_ocr,context_llm,mock",
        validation_alias=AliasChoices("SCAN_ALLOWED_BACKENDS"),
    )
    scan_debug_store_raw: bool = Field(
        default=False,
        validation_alias=AliasChoices("SCAN_DEBUG_STORE_RAW"),
    )

    # --- Backends ---
    google_vision_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("GOOGLE_VISION_API_KEY", "CLOUD_VISION_API_KEY"),
    )
    google_vision_url: str = Field(
        default="https://vision.googleapis.com/v1/images:annotate",
        validation_alias=AliasChoices("GOOGLE_VISION_URL"),
    )
    llm_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("LLM_API_KEY", "OPENAI_API_KEY"),
    )
    llm_base_url: str = Field(
        default="https://api.openai.com/v1",
        validation_alias=AliasChoices("LLM_BASE_URL"),
    )
    llm_model: str = Field(
        default="gpt-4o",
        validation_alias=AliasChoices("LLM_MODEL"),
    )
    llm_temperature: float = Field(
        default=0.1,
        validation_alias=AliasChoices("LLM_TEMPERATURE"),
    )
    llm_max_tokens: int = Field(
        default=1024,
        validation_alias=AliasChoices("LLM_MAX_TOKENS"),
    )

    # --- Cache ---
    cache_ttl_days: int = Field(
        default=30,
        gt=0,
        validation_alias=AliasChoices("CACHE_TTL_DAYS"),
    )
    cache_similarity_threshold: float = Field(
        default=0.85,
        ge=0.0,
        le=1.0,
        validation_alias=AliasChoices("CACHE_SIMILARITY_THRESHOLD"),
    )
    cache_min_confidence: int = Field(
        default=80,
        ge=0,
        le=100,
        validation_alias=AliasChoices("CACHE_MIN_CONFIDENCE"),
    )
    cache_max_entries: int = Field(
        default=500,
        ge=1,
        validation_alias=AliasChoices("CACHE_MAX_ENTRIES"),
    )
    cache_store_key: str = Field(
        default="scanned_bank_data_cache",
        validation_alias=AliasChoices("CACHE_STORE_KEY"),
    )
    cache_database_url: str = Field(
        default="",
        validation_alias=AliasChoices("CACHE_DATABASE_URL", "DATABASE_URL"),
    )
    cache_write_on_success: bool = Field(
        default=True,
        validation_alias=AliasChoices("CACHE_WRITE_ON_SUCCESS"),
    )

    # --- Images ---
    image_normalize_enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("IMAGE_NORMALIZE_ENABLED"),
    )
    image_max_width: int = Field(default=1920, validation_alias=AliasChoices("IMAGE_MAX_WIDTH"))
    image_max_height: int = Field(default=1080, validation_alias=AliasChoices("IMAGE_MAX_HEIGHT"))
    image_jpeg_quality: int = Field(
        default=85,
        ge=1,
        le=95,
        validation_alias=AliasChoices("IMAGE_JPEG_QUALITY"),
    )
    image_fetch_timeout_seconds: float = Field(
        default=10.0,
        validation_alias=AliasChoices("IMAGE_FETCH_TIMEOUT_SECONDS"),
    )

    # --- Bank registry / prompts ---
    bank_registry_url: str = Field(
        default="",
        validation_alias=AliasChoices("BANK_REGISTRY_URL"),
    )
    bank_registry_timeout_seconds: float = Field(
        default=15.0,
        validation_alias=AliasChoices("BANK_REGISTRY_TIMEOUT_SECONDS"),
    )
    prompt_max_examples: int = Field(default=5, ge=0, validation_alias=AliasChoices("PROMPT_MAX_EXAMPLES"))
    prompt_ranked_banks: int = Field(default=10, ge=1, validation_alias=AliasChoices("PROMPT_RANKED_BANKS"))

    @field_validator("scan_primary_backend", "scan_secondary_backend", mode="before")
    @classmethod
    def _normalize_backend_name(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @property
    def scan_allowed_backends(self) -> list[str]:
        return _parse_list_value(self.scan_allowed_backends_raw)

    @property
    def cache_ttl_seconds(self) -> int:
        return self.cache_ttl_days * 24 * 60 * 60


@lru_cache

def get_settings() -> Settings:
    return Settings()
