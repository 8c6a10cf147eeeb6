# Copyright 2025 iGenius S.p.A
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

from functools import lru_cache
import os
from pathlib import Path

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_config_base() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME", "").strip()
    if xdg:
        return Path(xdg)
    return Path.home() / ".config"


class Settings(BaseSettings):
    """
    Centralized environment configuration for sol-cloud.

    Env var naming: SOL_CLOUD_<FIELD_NAME>, plus the provider-native aliases
    below (FLY_ACCESS_TOKEN, RAILWAY_TOKEN, ...).
    A .env file in CWD is read automatically.
    """

    model_config = SettingsConfigDict(
        env_prefix="SOL_CLOUD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    # --- General -------------------------------------------------------------
    log_level: str = "INFO"
    config_dir: Path = Field(
        default_factory=_default_config_base,
        description="Base config directory; credentials live in <config_dir>/sol-cloud",
    )  # SOL_CLOUD_CONFIG_DIR
    defaults_file: Path | None = Field(
        default=None,
        description="Path to YAML with overridable defaults",
    )  # SOL_CLOUD_DEFAULTS_FILE

    # --- Fly.io --------------------------------------------------------------
    fly_api_token: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "SOL_CLOUD_FLY_API_TOKEN", "FLY_ACCESS_TOKEN", "FLY_API_TOKEN"
        ),
    )
    fly_org: str | None = None  # SOL_CLOUD_FLY_ORG
    fly_machines_url: str = "https://api.machines.dev/v1"
    fly_graphql_url: str = "https://api.fly.io/graphql"
    flyctl_bin: str = "flyctl"

    # --- Railway -------------------------------------------------------------
    railway_token: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("SOL_CLOUD_RAILWAY_TOKEN", "RAILWAY_TOKEN"),
    )
    railway_graphql_url: str = "https://backboard.railway.app/graphql/v2"
    railway_bin: str = "railway"

    # --- HTTP ----------------------------------------------------------------
    http_timeout_s: float = Field(default=30.0, gt=0)

    # --- CLI / TUI -----------------------------------------------------------
    ascii: bool = Field(
        default=False,
        description="Use ASCII glyphs instead of Unicode symbols in CLI output",
    )  # SOL_CLOUD_ASCII

    @property
    def home(self) -> Path:
        """Directory holding credentials.json and user-level defaults.yaml."""
        return self.config_dir / "sol-cloud"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Cached accessor. Call this wherever you need settings.
    Tests can `reload_settings_cache()` before reading to pick up monkeypatched env.
    """
    return Settings()


def reload_settings_cache() -> None:
    get_settings.cache_clear()  # type: ignore[attr-defined]
