import json
import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

load_dotenv()


class Settings(BaseModel):
    # MAAS API Configuration
    maas_api_url: str = Field(default="http://localhost:5240/MAAS", alias="MAAS_API_URL")
    maas_api_key: str = Field(default="", alias="MAAS_API_KEY")
    maas_request_timeout: float = Field(default=30.0, alias="MAAS_REQUEST_TIMEOUT")

    # Cache Configuration
    cache_enabled: bool = Field(default=True, alias="CACHE_ENABLED")
    cache_max_size: int = Field(default=1000, alias="CACHE_MAX_SIZE")
    cache_max_age: int = Field(default=300, alias="CACHE_MAX_AGE")
    cache_resource_specific_ttl: dict[str, int] = Field(
        default_factory=dict, alias="CACHE_RESOURCE_SPECIFIC_TTL"
    )

    # Audit Log Configuration
    audit_log_enabled: bool = Field(default=True, alias="AUDIT_LOG_ENABLED")
    audit_log_include_resource_state: bool = Field(
        default=False, alias="AUDIT_LOG_INCLUDE_RESOURCE_STATE"
    )
    audit_log_mask_sensitive_fields: bool = Field(
        default=True, alias="AUDIT_LOG_MASK_SENSITIVE_FIELDS"
    )
    audit_log_sensitive_fields: str = Field(
        default="password,token,secret,key,credential",
        alias="AUDIT_LOG_SENSITIVE_FIELDS",
    )

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator("cache_resource_specific_ttl", mode="before")
    @classmethod
    def _parse_ttl_map(cls, value):
        # Environment values arrive as a JSON object string
        if isinstance(value, str):
            return json.loads(value) if value.strip() else {}
        return value

    @property
    def sensitive_fields(self) -> list[str]:
        return [
            f.strip() for f in self.audit_log_sensitive_fields.split(",") if f.strip()
        ]


def load_settings() -> Settings:
    """Build settings from the current process environment."""
    known = {field.alias for field in Settings.model_fields.values()}
    return Settings(**{k: v for k, v in os.environ.items() if k in known})


global_settings = load_settings()
