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

from .list_view import render_deployment_list
from .status import ValidatorStatusView, render_validator_status
from .watch_view import render_watch_banner

__all__ = [
    "ValidatorStatusView",
    "render_deployment_list",
    "render_validator_status",
    "render_watch_banner",
]
