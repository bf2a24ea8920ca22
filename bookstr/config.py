from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Sources
    source_urls: str = ""  # comma separated base URLs of HTTP sources
    source_timeout_s: float = 5.0
    blocked_sources: str = ""
    muted_authors: str = ""  # comma separated author keys dropped from results
    track_deletions: bool = True

    # Search behaviour
    default_book_type: str = "bible"
    book_types_file: str = ""  # optional JSON file with extra book types
    book_kinds: list[int] = [30041]
    debounce_ms: int = 500

    # Identity verification
    verify_timeout_s: float = 10.0

    # Local cache
    cache_enabled: bool = True
    cache_persist: bool = False
    cache_dir: str = ".cache/bookstr"

    # App
    cors_origins: str = "http://localhost:3000"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = "logs"
    log_to_file: bool = True

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def source_url_list(self) -> list[str]:
        return [u.strip() for u in self.source_urls.split(",") if u.strip()]

    @property
    def blocked_source_list(self) -> list[str]:
        return [s.strip() for s in self.blocked_sources.split(",") if s.strip()]

    @property
    def muted_author_list(self) -> list[str]:
        return [a.strip() for a in self.muted_authors.split(",") if a.strip()]

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]


settings = Settings()
