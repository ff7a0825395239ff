from __future__ import annotations
from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    # DB (stands in for the ledger's state)
    database_url: str = Field(..., alias="DATABASE_URL")

    # Auth: bearer JWT whose `sub` is the caller's wallet identity
    auth_jwks_url: str = Field("http://localhost:8000/.well-known/jwks.json", alias="AUTH_JWKS_URL")
    token_issuer: str = Field("authentication-svc", alias="TOKEN_ISSUER")
    admin_identity: str | None = Field(default=None, alias="ADMIN_IDENTITY")

    # Professor signing key (either a path OR an inline PEM; without one, signing is unavailable)
    professor_private_key_path: Optional[str] = Field(default=None, alias="PROFESSOR_PRIVATE_KEY_PATH")
    professor_private_key_inline: Optional[str] = Field(default=None, alias="PROFESSOR_PRIVATE_KEY")

    # QR rotation
    qr_rotation_seconds: int = Field(default=15, alias="QR_ROTATION_SECONDS")
    qr_initial_delay_ms: int = Field(default=100, alias="QR_INITIAL_DELAY_MS")
    qr_countdown_tick_ms: int = Field(default=100, alias="QR_COUNTDOWN_TICK_MS")

    # 0 keeps the observed behaviour: only the event window is enforced
    max_token_age_seconds: int = Field(default=0, alias="MAX_TOKEN_AGE_SECONDS")

    # Redis (profile key-value store)
    redis_url: str = Field("redis://127.0.0.1:6379/0", alias="REDIS_URL")

    # NATS
    nats_urls: str = Field("nats://127.0.0.1:4222", alias="NATS_URLS")
    nats_subject_attendance: str = Field("attendance.marked", alias="NATS_SUBJECT_ATTENDANCE")
    enable_nats: bool = Field(default=True, alias="ENABLE_NATS")

    class Config:
        env_file = ".env"
        env_prefix = ""
        case_sensitive = False

    @property
    def professor_private_key_pem(self) -> Optional[str]:
        inline = self.professor_private_key_inline
        if inline and "BEGIN" in inline:
            return inline
        if self.professor_private_key_path:
            p = Path(self.professor_private_key_path)
            if p.exists():
                return p.read_text(encoding="utf-8")
        return None


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
