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

import re
import secrets
import string

NAME_PREFIX = "sol-cloud-"
NAME_SUFFIX_LEN = 8
_ALPHABET = string.ascii_lowercase + string.digits

# DNS-label safe: both providers derive hostnames from the deployment name.
NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]{1,61}[a-z0-9]$")

# Fly volume names: lowercase alphanumerics and underscores, at most 30 chars.
VOLUME_NAME_MAX = 30


def generate_deployment_name() -> str:
    """Return a fresh ``sol-cloud-<8 chars>`` name."""
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(NAME_SUFFIX_LEN))
    return NAME_PREFIX + suffix


def normalize_name(name: str | None) -> str:
    return (name or "").strip().lower()


def is_valid_deployment_name(name: str) -> bool:
    return bool(NAME_PATTERN.match(name))


def volume_name_for(deployment_name: str) -> str:
    """Deterministic ledger volume name for a deployment.

    >>> volume_name_for("sol-cloud-1a2b3c4d")
    'ledger_sol_cloud_1a2b3c4d'
    """
    return f"ledger_{deployment_name.replace('-', '_')}"[:VOLUME_NAME_MAX]
