import re
from typing import List, Optional, Tuple

from pydantic import Field, validator
from pydantic_settings import BaseSettings

from nlu_studio import __version__

_DURATION_UNITS = {"ms": 0.001, "s": 1, "m": 60, "h": 3600, "d": 86400}
_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h|d)?\s*$")


def parse_duration(value: str) -> float:
    """Convert a duration such as ``"1h"``, ``"30s"`` or ``"250ms"`` to seconds."""
    match = _DURATION_RE.match(str(value).lower())
    if not match:
        raise ValueError(f"invalid duration: {value!r}")
    amount, unit = match.groups()
    return float(amount) * _DURATION_UNITS[unit or "ms"]


class Settings(BaseSettings):

    # Application settings
    app_name: str = Field(default="NLU Server", description="Application name")
    app_version: str = Field(default=__version__, description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server settings
    host: str = Field(default="localhost", description="Server host")
    port: int = Field(default=3200, description="Server port")
    workers: int = Field(default=1, description="Number of worker processes")
    log_level: str = Field(default="info", description="Logging level")

    # Storage
    model_dir: str = Field(default="./models", description="Directory where trained models are persisted")

    # Security
    auth_token: Optional[str] = Field(default=None, description="Bearer token required on every request")
    admin_token: Optional[str] = Field(default=None, description="Secondary token accepted alongside auth_token")

    # Request limits
    body_limit_kb: int = Field(default=250, description="Maximum JSON body size in kilobytes")
    limit: int = Field(default=0, description="Max requests per window and client, 0 disables rate limiting")
    limit_window: str = Field(default="1h", description="Rate limit window, e.g. 30s, 15m, 1h")
    reverse_proxy: Optional[str] = Field(default=None, description="Trusted proxy addresses, comma separated")

    # Monitoring
    monitoring_interval: Optional[str] = Field(default=None, description="Interval between monitoring log lines")

    # Engine configuration
    hidden_layers: Tuple[int, ...] = Field(default=(100,), description="MLP hidden layer sizes")
    max_iter: int = Field(default=500, description="Maximum MLP training iterations")

    # CORS settings
    cors_origins: List[str] = Field(default=["*"], description="CORS allowed origins")
    cors_allow_credentials: bool = Field(default=False, description="CORS allow credentials")
    cors_allow_methods: List[str] = Field(default=["*"], description="CORS allowed methods")
    cors_allow_headers: List[str] = Field(default=["*"], description="CORS allowed headers")

    # API settings
    docs_url: Optional[str] = Field(default="/docs", description="API documentation URL")
    redoc_url: Optional[str] = Field(default=None, description="ReDoc documentation URL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        env_prefix = "NLU_SERVER_"
        protected_namespaces = ()

    @validator('log_level')
    def validate_log_level(cls, v):
        valid_levels = ["debug", "info", "warning", "error", "critical"]
        if v.lower() not in valid_levels:
            raise ValueError(f"log_level must be one of: {valid_levels}")
        return v.lower()

    @validator('port')
    def validate_port(cls, v):
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @validator('limit_window', 'monitoring_interval')
    def validate_duration(cls, v):
        if v is not None:
            parse_duration(v)
        return v

    @property
    def body_limit_bytes(self) -> int:
        return self.body_limit_kb * 1024

    @property
    def limit_window_seconds(self) -> float:
        return parse_duration(self.limit_window)

    @property
    def monitoring_interval_seconds(self) -> Optional[float]:
        if not self.monitoring_interval:
            return None
        return parse_duration(self.monitoring_interval)


# Global settings instance
_settings: Optional[Settings] = None

def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
