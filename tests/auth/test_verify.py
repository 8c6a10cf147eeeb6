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

from sol_cloud.auth.verify import is_authenticated_not_found, verify_fly_token, verify_railway_token
from sol_cloud.backends.http import APIClient
from sol_cloud.exceptions import AuthError, HTTPStatusError

MACHINES = "https://api.machines.dev/v1"
FLY_GQL = "https://api.fly.io/graphql"
RAILWAY_GQL = "https://backboard.railway.app/graphql/v2"


def _fly_clients(session):
    return (
        APIClient("tok", base_url=MACHINES, session=session),
        APIClient("tok", graphql_url=FLY_GQL, session=session),
    )


def _fly_handler(fake_response, gql, machines_status, machines_body="", viewer=None):
    def handler(method, url, payload):
        if url.startswith(MACHINES):
            return fake_response(machines_status, text=machines_body)
        if viewer is None:
            return gql["error"]("Unauthorized")
        return gql["ok"]({"viewer": viewer})

    return handler


def test_fly_machines_2xx_accepts(fake_session, fake_response, gql):
    session = fake_session(_fly_handler(fake_response, gql, 200))
    v = verify_fly_token(*_fly_clients(session))
    assert v.via == "machines"
    assert len(session.calls) == 1
    assert "/apps/sol-cloud-token-probe-" in session.calls[0]["url"]


def test_fly_app_not_found_404_accepts(fake_session, fake_response, gql):
    session = fake_session(_fly_handler(fake_response, gql, 404, '{"error":"app not found"}'))
    assert verify_fly_token(*_fly_clients(session)).via == "machines"
    assert len(session.calls) == 1


def test_fly_401_is_final(fake_session, fake_response, gql):
    session = fake_session(_fly_handler(fake_response, gql, 401, "unauthorized", viewer={"id": "u"}))
    with pytest.raises(AuthError, match="401"):
        verify_fly_token(*_fly_clients(session))
    assert session.urls("POST") == []


def test_fly_403_falls_back_exactly_once(fake_session, fake_response, gql):
    session = fake_session(_fly_handler(fake_response, gql, 403, "forbidden", viewer={"id": "u"}))
    v = verify_fly_token(*_fly_clients(session))
    assert v.via == "graphql"
    assert len(session.calls) == 2
    assert session.urls("POST") == [FLY_GQL]


def test_fly_routing_404_falls_back(fake_session, fake_response, gql):
    session = fake_session(_fly_handler(fake_response, gql, 404, "404 page not found", viewer={"id": "u"}))
    assert verify_fly_token(*_fly_clients(session)).via == "graphql"


def test_fly_fallback_rejection(fake_session, fake_response, gql):
    session = fake_session(_fly_handler(fake_response, gql, 403, "forbidden"))
    with pytest.raises(AuthError, match="Unauthorized"):
        verify_fly_token(*_fly_clients(session))


def test_fly_fallback_without_identity(fake_session, fake_response, gql):
    session = fake_session(_fly_handler(fake_response, gql, 500, "oops", viewer={}))
    with pytest.raises(AuthError, match="no identity"):
        verify_fly_token(*_fly_clients(session))


def test_auth_error_names_remedial_command(fake_session, fake_response, gql):
    session = fake_session(_fly_handler(fake_response, gql, 401, "unauthorized"))
    with pytest.raises(AuthError) as ei:
        verify_fly_token(*_fly_clients(session))
    assert "sol-cloud auth fly" in str(ei.value)


def _railway_handler(gql, fake_response, me, projects):
    def handler(method, url, payload):
        answer = me if "me" in payload["query"] else projects
        return answer

    return handler


def test_railway_me_accepts(fake_session, fake_response, gql):
    session = fake_session(_railway_handler(gql, fake_response, gql["ok"]({"me": {"id": "u"}}), None))
    v = verify_railway_token(APIClient("t", graphql_url=RAILWAY_GQL, session=session))
    assert v.via == "me"
    assert len(session.calls) == 1


def test_railway_project_token_falls_back_to_projects(fake_session, fake_response, gql):
    session = fake_session(
        _railway_handler(
            gql,
            fake_response,
            gql["error"]("Not Authorized"),
            gql["ok"]({"projects": {"edges": []}}),
        )
    )
    v = verify_railway_token(APIClient("t", graphql_url=RAILWAY_GQL, session=session))
    assert v.via == "projects"
    assert len(session.calls) == 2


def test_railway_both_rejected(fake_session, fake_response, gql):
    session = fake_session(
        _railway_handler(gql, fake_response, gql["error"]("Not Authorized"), gql["error"]("Invalid token"))
    )
    with pytest.raises(AuthError, match="Invalid token"):
        verify_railway_token(APIClient("t", graphql_url=RAILWAY_GQL, session=session))


def test_railway_fallback_unreachable_reports_me_error(fake_session, fake_response, gql):
    session = fake_session(
        _railway_handler(gql, fake_response, gql["error"]("Not Authorized"), fake_response(502, text="bad gateway"))
    )
    with pytest.raises(AuthError, match="Not Authorized"):
        verify_railway_token(APIClient("t", graphql_url=RAILWAY_GQL, session=session))


@pytest.mark.parametrize("status", [401, 403])
def test_railway_http_rejection(fake_session, fake_response, gql, status):
    session = fake_session(_railway_handler(gql, fake_response, fake_response(status, text="no"), None))
    with pytest.raises(AuthError, match=str(status)):
        verify_railway_token(APIClient("t", graphql_url=RAILWAY_GQL, session=session))


def test_railway_server_error_propagates(fake_session, fake_response, gql):
    session = fake_session(_railway_handler(gql, fake_response, fake_response(500, text="oops"), None))
    with pytest.raises(HTTPStatusError):
        verify_railway_token(APIClient("t", graphql_url=RAILWAY_GQL, session=session))


@pytest.mark.parametrize(
    "body, expected",
    [('{"error":"App not found"}', True), ("Could not find App", True), ("404 page not found", False)],
)
def test_is_authenticated_not_found(body, expected):
    assert is_authenticated_not_found(body) is expected
