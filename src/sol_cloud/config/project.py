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

from pathlib import Path
from typing import Any

from pydantic import Field
import yaml

from sol_cloud.config.base import ValidatedModel
from sol_cloud.config.deployment import ProviderName, ResourceConfig, ValidatorConfig
from sol_cloud.config.settings import get_settings
from sol_cloud.exceptions import ConfigError
from sol_cloud.helpers.logger import setup_logger

logger = setup_logger(__name__)

PROJECT_FILE_NAME = ".sol-cloud.yml"


class ProjectConfig(ValidatedModel):
    """Contents of ``.sol-cloud.yml``. Every field is optional; CLI flags win."""

    provider: ProviderName = "fly"
    app_name: str | None = None
    region: str | None = None
    org: str | None = None
    validator: ValidatorConfig = Field(default_factory=ValidatorConfig)
    resources: ResourceConfig = Field(default_factory=ResourceConfig)

    @classmethod
    def find(cls, project_dir: Path | None = None) -> Path | None:
        for candidate in (
            (project_dir or Path.cwd()) / PROJECT_FILE_NAME,
            get_settings().home / PROJECT_FILE_NAME,
        ):
            if candidate.is_file():
                return candidate
        return None

    @classmethod
    def load(cls, path: Path | None = None, *, project_dir: Path | None = None) -> "ProjectConfig":
        """Load and validate the project file; a missing file yields defaults."""
        if path is None:
            path = cls.find(project_dir)
            if path is None:
                return cls.build()
        elif not path.is_file():
            raise ConfigError("config", f"config file {path} does not exist")

        try:
            data: Any = yaml.safe_load(path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigError("config", f"unable to parse {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError("config", f"{path} must contain a YAML mapping")
        logger.debug(f"Loaded project config from {path}")
        return cls.build(data)

    def save(self, path: Path) -> None:
        payload = self.model_dump(mode="json", exclude_none=True)
        path.write_text(yaml.safe_dump(payload, sort_keys=False))
