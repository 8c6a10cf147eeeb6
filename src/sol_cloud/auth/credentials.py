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

from datetime import datetime, timezone
import os
from pathlib import Path
import tempfile

from pydantic import BaseModel, Field, ValidationError, field_validator

from sol_cloud.config.settings import Settings, get_settings
from sol_cloud.exceptions import AuthError, ConfigError
from sol_cloud.helpers.logger import setup_logger

logger = setup_logger(__name__)

CREDENTIALS_FILE_NAME = "credentials.json"
DEFAULT_FLY_ORG = "personal"


class _ProviderCredentials(BaseModel):
    access_token: str = ""
    verified_at: datetime | None = None

    @field_validator("access_token", mode="before")
    @classmethod
    def _strip(cls, v: str | None) -> str:
        return (v or "").strip()


class FlyCredentials(_ProviderCredentials):
    org_slug: str = ""


class RailwayCredentials(_ProviderCredentials):
    workspace_id: str = ""


class Credentials(BaseModel):
    fly: FlyCredentials = Field(default_factory=FlyCredentials)
    railway: RailwayCredentials = Field(default_factory=RailwayCredentials)


class CredentialsStore:
    """JSON credentials file in the user config dir, written atomically (0600)."""

    def __init__(self, path: Path | None = None):
        self.path = path or get_settings().home / CREDENTIALS_FILE_NAME

    def load(self) -> Credentials:
        try:
            content = self.path.read_text()
        except FileNotFoundError:
            return Credentials()
        if not content.strip():
            return Credentials()
        try:
            return Credentials.model_validate_json(content)
        except ValidationError as e:
            raise ConfigError("credentials", f"unable to decode {self.path}: {e}") from e

    def save(self, creds: Credentials) -> Path:
        self.path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
        payload = creds.model_dump_json(indent=2, exclude_none=True) + "\n"
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".credentials.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as fh:
                fh.write(payload)
            os.chmod(tmp, 0o600)
            os.replace(tmp, self.path)
        except OSError:
            Path(tmp).unlink(missing_ok=True)
            raise
        logger.debug(f"Credentials saved to {self.path}")
        return self.path


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def resolve_token(
    provider: str,
    explicit: str | None = None,
    *,
    settings: Settings | None = None,
    store: CredentialsStore | None = None,
) -> str:
    """Pick a bearer token: explicit override, then environment, then saved credentials.

    Raises:
        AuthError: when none of the sources yields a non-blank token.
    """
    if explicit and explicit.strip():
        return explicit.strip()

    settings = settings or get_settings()
    env_secret = settings.fly_api_token if provider == "fly" else settings.railway_token
    if env_secret is not None and env_secret.get_secret_value().strip():
        return env_secret.get_secret_value().strip()

    creds = (store or CredentialsStore()).load()
    saved = creds.fly.access_token if provider == "fly" else creds.railway.access_token
    if saved:
        return saved
    raise AuthError(provider, f"no {provider} access token configured")


def resolve_fly_org(
    explicit: str | None = None,
    *,
    settings: Settings | None = None,
    store: CredentialsStore | None = None,
) -> str:
    if explicit and explicit.strip():
        return explicit.strip()
    env_org = ((settings or get_settings()).fly_org or "").strip()
    if env_org:
        return env_org
    saved = (store or CredentialsStore()).load().fly.org_slug.strip()
    return saved or DEFAULT_FLY_ORG
