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

from pydantic import ConfigDict, Field

from sol_cloud.config.base import ValidatedModel


class WatchConfig(ValidatedModel):
    """Knobs for ``sol-cloud watch``. Durations are seconds."""

    model_config = ConfigDict(frozen=True)

    check_interval_s: float = Field(default=30.0, gt=0)
    stuck_threshold_s: float = Field(default=180.0, gt=0)
    max_restarts: int = Field(default=0, ge=0, description="0 = unlimited")
    restart_cooldown_s: float = Field(default=120.0, ge=0)
    auto_restart: bool = False
    rpc_timeout_s: float = Field(default=10.0, gt=0)
    restart_timeout_s: float = Field(default=60.0, gt=0)
