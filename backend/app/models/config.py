"""Configuration models"""

import os
from pydantic import BaseModel, Field
from typing import Optional, List, Dict

from app.utils.config_loader import ConfigLoader


class AppConfig(BaseModel):
    """Application configuration"""
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    log_file: Optional[str] = "logs/app.log"
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])


class LLMConfig(BaseModel):
    """LLM gateway configuration"""
    default_model: str = "llama3-8b"
    temperature: float = 0.7
    fallback_order: List[str] = Field(default_factory=lambda: ["groq", "openai", "anthropic"])
    # Logical model used when a provider is reached as a fallback
    fallback_models: Dict[str, str] = Field(default_factory=lambda: {
        "groq": "llama3-8b",
        "openai": "gpt-3.5-turbo",
        "anthropic": "claude-3-haiku",
        "google": "gemini-1.5-flash",
    })
    placeholder_delay: float = 0.2


class ModelSpec(BaseModel):
    """A logical model id resolved to a provider and its underlying model"""
    name: str
    provider: str
    model: str
    context_limit: int
    max_tokens: int
    description: str = ""


class DatabaseConfig(BaseModel):
    """Document store configuration"""
    url: str = ""
    connect_timeout: float = 5.0
    min_pool_size: int = 1
    max_pool_size: int = 10
    command_timeout: float = 10.0

    @classmethod
    def from_loader(cls, config: ConfigLoader) -> "DatabaseConfig":
        values = dict(config.get_section('database'))
        values['url'] = os.getenv('DATABASE_URL', values.get('url', ''))
        return cls(**values)


class FilesConfig(BaseModel):
    """File ingestion configuration"""
    max_file_size_mb: int = 10
    fetch_timeout: float = 30.0
    preview_rows: int = 5
    summary_chars: int = 300

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


class AuthConfig(BaseModel):
    """Session verification configuration"""
    algorithm: str = "HS256"
    secret: str = ""
    issuer: Optional[str] = None
    jwks_url: Optional[str] = None
    cookie_name: str = "__session"
    token_expiry_hours: int = 24

    @classmethod
    def from_loader(cls, config: ConfigLoader) -> "AuthConfig":
        values = dict(config.get_section('auth'))
        values['secret'] = os.getenv('SESSION_SECRET', values.get('secret', ''))
        return cls(**values)


class CDNConfig(BaseModel):
    """S3-compatible image CDN configuration"""
    endpoint: str = ""
    access_key: str = ""
    secret_key: str = ""
    bucket: str = "chat-clone-images"
    public_url: str = ""

    @property
    def configured(self) -> bool:
        return bool(self.endpoint and self.access_key and self.secret_key)

    @classmethod
    def from_env(cls, config: ConfigLoader) -> "CDNConfig":
        values = dict(config.get_section('cdn'))
        env_map = {
            'endpoint': 'CDN_ENDPOINT',
            'access_key': 'CDN_ACCESS_KEY',
            'secret_key': 'CDN_SECRET_KEY',
            'bucket': 'CDN_BUCKET',
            'public_url': 'CDN_PUBLIC_URL',
        }
        for field, env_var in env_map.items():
            if os.getenv(env_var):
                values[field] = os.getenv(env_var)
        return cls(**values)
