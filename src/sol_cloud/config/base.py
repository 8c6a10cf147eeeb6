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

from typing import Any

from pydantic import BaseModel, ValidationError
from typing_extensions import Self

from sol_cloud.exceptions import ConfigError


class ValidatedModel(BaseModel):
    """Base for user-facing config models.

    ``build`` turns pydantic's ``ValidationError`` into a ``ConfigError`` that
    names the first offending field, which is what the CLI reports.
    """

    @classmethod
    def build(cls, data: dict[str, Any] | None = None, **kwargs: Any) -> Self:
        payload = {**(data or {}), **kwargs}
        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(p) for p in first.get("loc", ())) or cls.__name__
            msg = str(first.get("msg", "invalid value"))
            msg = msg.removeprefix("Value error, ")
            raise ConfigError(field, msg) from e
