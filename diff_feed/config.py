from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    APP_NAME: str = "github-diff-feed"
    DEBUG: bool = False

    # PORT is required at startup, see diff_feed.__main__
    HOST: str = "0.0.0.0"
    PORT: int | None = None

    # Upstream GitHub activity feed (private Atom feed URL with token)
    SOURCE_FEED_URL: str = Field(
        default="", validation_alias=AliasChoices("SOURCE_FEED_URL", "GITHUB_FEED_URL")
    )
    # Self link of the published feed, also the idle-ping target
    PUBLIC_BASE_URL: str = Field(
        default="", validation_alias=AliasChoices("PUBLIC_BASE_URL", "HEROKU_URL")
    )

    FEED_ITEM_MAX: int = Field(default=50, ge=1)
    FEED_SIZE_THRESHOLD: int = 1 * 1024 * 1024  # 1 MiB
    POLL_INTERVAL_MINUTES: int = 5
    PING_INTERVAL_MINUTES: int = 15
    HTTP_TIMEOUT_SECONDS: float = 30.0

    FETCH_DIFF: bool = True
    ANNOTATE_DIFF: bool = True
    EXCLUDED_TITLE_MARKERS: list[str] = ["pushed to gh-pages at"]

    FEED_TITLE: str = "github-diff-feed"
    FEED_DESCRIPTION: str = "feed generated from github feed"
    FEED_AUTHOR_NAME: str = "take-cheeze"
    FEED_AUTHOR_EMAIL: str = "takechi101010@gmail.com"


settings = Settings()
