from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    NoDecode,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from rxdeck.domain.constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_EASY_BONUS,
    DEFAULT_INITIAL_EASE_FACTOR,
    DEFAULT_LEARNING_STEPS,
    DEFAULT_MAX_SESSIONS,
    DEFAULT_NEW_CARDS_PER_DAY,
    DEFAULT_PROMOTION_THRESHOLD,
    DEFAULT_REINFORCEMENT_INTERVAL,
    DEFAULT_REVIEWS_PER_DAY,
    MIN_EASE_FACTOR,
)
from rxdeck.domain.models import StudyMode

CONFIG_DIR = Path.home() / ".config/rxdeck"


def _toml_candidates() -> list[Path]:
    home = Path.home()
    return [home / ".config/rxdeck/config.toml", home / ".rxdeck.toml"]


class AppConfig(BaseSettings):
    """
    Configuration model for rxdeck.
    Supports loading from:
    1. Config file (~/.config/rxdeck/config.toml or ~/.rxdeck.toml)
    2. Environment variables (RXDECK_*)
    3. Manual overrides (CLI)

    Treated as immutable for the duration of a study session.
    """

    model_config = SettingsConfigDict(
        env_prefix="RXDECK_",
        extra="ignore",
    )

    # Paths
    db_path: Path = Field(default_factory=lambda: CONFIG_DIR / "rxdeck.sqlite3")

    # Admission caps
    new_cards_per_day: int = Field(default=DEFAULT_NEW_CARDS_PER_DAY, ge=0)
    reviews_per_day: int = Field(default=DEFAULT_REVIEWS_PER_DAY, ge=0)

    # Interval scheduler
    learning_steps: Annotated[list[float], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_LEARNING_STEPS)
    )
    initial_ease_factor: float = DEFAULT_INITIAL_EASE_FACTOR
    easy_bonus: float = Field(default=DEFAULT_EASY_BONUS, gt=0)

    # Session queue
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, ge=1)
    reinforcement_interval: int = Field(default=DEFAULT_REINFORCEMENT_INTERVAL, ge=1)
    promotion_threshold: int = Field(default=DEFAULT_PROMOTION_THRESHOLD, ge=0)
    reschedule_policy: Literal["first", "every", "never"] = "first"

    # Server
    max_sessions: int = Field(default=DEFAULT_MAX_SESSIONS, ge=1)

    # Presentation
    study_mode: StudyMode = StudyMode.MIXED
    verbose: int = 1

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from pydantic_settings import TomlConfigSettingsSource

        # First existing file wins
        toml_file = None
        for f in _toml_candidates():
            if f.exists():
                toml_file = f
                break

        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (init_settings, env_settings)

    @field_validator("learning_steps", mode="before")
    @classmethod
    def sanitize_learning_steps(cls, v: Any) -> list[float]:
        """Drop non-numeric and non-positive entries instead of failing."""
        if v is None:
            return []
        if isinstance(v, str):
            v = v.strip().strip("[]").split(",")
        if not isinstance(v, list | tuple):
            v = [v]

        steps: list[float] = []
        for raw in v:
            if isinstance(raw, bool):
                continue
            try:
                step = float(str(raw).strip())
            except ValueError:
                continue
            if step > 0 and step != float("inf"):
                steps.append(step)
        return steps

    @field_validator("initial_ease_factor")
    @classmethod
    def check_ease_floor(cls, v: float) -> float:
        if v < MIN_EASE_FACTOR:
            raise ValueError(f"initial_ease_factor must be >= {MIN_EASE_FACTOR}")
        return v

    @field_validator("db_path", mode="before")
    @classmethod
    def expand_path(cls, v: Any) -> Any:
        if isinstance(v, str) and v != ":memory:":
            return Path(v).expanduser()
        return v


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/rxdeck/config.toml (if exists)
    3. Environment variables (RXDECK_*)
    4. cli_overrides (passed from Typer); None values are ignored
    """
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return AppConfig(**overrides)
