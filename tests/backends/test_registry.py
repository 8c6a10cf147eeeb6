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

import pytest

from sol_cloud.backends.fly import FlyProvider
from sol_cloud.backends.railway import RailwayProvider
from sol_cloud.backends.registry import available_providers, create_provider
from sol_cloud.exceptions import ConfigError
from sol_cloud.platform.protocols import Provider


def test_available_providers():
    assert available_providers() == ["fly", "railway"]


@pytest.mark.parametrize("name, cls", [("fly", FlyProvider), (" Railway ", RailwayProvider)])
def test_create_provider(name, cls, tmp_path):
    p = create_provider(name, project_dir=tmp_path)
    assert isinstance(p, cls)
    assert isinstance(p, Provider)
    assert p.project_dir == tmp_path


def test_unknown_provider():
    with pytest.raises(ConfigError, match="unsupported provider 'heroku'"):
        create_provider("heroku")
