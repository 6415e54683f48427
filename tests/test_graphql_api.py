"""
tests/test_graphql_api.py -- Integration tests for POST /query.

Runs real operations through FastAPI + strawberry with isolated stores.

Coverage:
  - signup/login set the auth_token cookie on the HTTP response
  - me/users/user queries, including NOT_AUTHENTICATED and VALIDATION_ERROR codes
  - duplicate signup -> CONFLICT, bad password -> INVALID_CREDENTIALS
  - logout clears the cookie and the session, and always returns true
  - internal failures are masked to a generic message
  - getQuestions and the problem/match placeholders
  - GraphiQL on GET /query and the / redirect
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from core.errors import StoreError
from training.models import Question

SIGNUP = """
mutation Signup($email: String!, $password: String!, $firstName: String) {
  signup(email: $email, password: $password, firstName: $firstName) {
    token
    expiresAt
    user { id email emailVerified firstName lastName createdAt }
  }
}
"""

LOGIN = """
mutation Login($email: String!, $password: String!) {
  login(email: $email, password: $password) { token user { id email } }
}
"""

ME = "query { me { id email firstName } }"


def _gql(client: TestClient, query: str, **variables):
    resp = client.post("/query", json={"query": query, "variables": variables})
    assert resp.status_code == 200, resp.text
    return resp


def _error_code(resp) -> str:
    return resp.json()["errors"][0]["extensions"]["code"]


# ---------------------------------------------------------------------------
# Signup / login / me
# ---------------------------------------------------------------------------


class TestAuthFlow:
    def test_signup_returns_payload_and_sets_cookie(self, client: TestClient, app_harness) -> None:
        resp = _gql(client, SIGNUP, email="gql@x.com", password="pw1", firstName="Graph")
        payload = resp.json()["data"]["signup"]

        assert payload["user"]["email"] == "gql@x.com"
        assert payload["user"]["firstName"] == "Graph"
        assert payload["user"]["emailVerified"] is False
        assert payload["token"]
        assert "T" in payload["expiresAt"]

        cookie = next(h for h in resp.headers.get_list("set-cookie") if h.startswith("auth_token="))
        assert f"auth_token={payload['token']}" in cookie
        assert "HttpOnly" in cookie
        assert app_harness.user_store.get_session_by_token(payload["token"]) is not None

    def test_me_uses_the_session_cookie(self, client: TestClient) -> None:
        _gql(client, SIGNUP, email="me.gql@x.com", password="pw1", firstName="Me")
        data = _gql(client, ME).json()["data"]["me"]
        assert data["email"] == "me.gql@x.com"
        assert data["firstName"] == "Me"

    def test_me_without_cookie_is_not_authenticated(self, client: TestClient) -> None:
        resp = _gql(client, ME)
        assert resp.json()["data"] is None
        assert _error_code(resp) == "NOT_AUTHENTICATED"

    def test_me_with_garbage_cookie_is_not_authenticated(self, client: TestClient) -> None:
        client.cookies.set("auth_token", "garbage")
        assert _error_code(_gql(client, ME)) == "NOT_AUTHENTICATED"

    def test_duplicate_signup_is_conflict(self, client: TestClient, app_harness) -> None:
        _gql(client, SIGNUP, email="twice@x.com", password="pw1")
        users_before = len(app_harness.user_store.list_users())

        resp = _gql(client, SIGNUP, email="twice@x.com", password="pw2")

        assert _error_code(resp) == "CONFLICT"
        assert resp.json()["errors"][0]["message"] == "user with this email already exists"
        assert len(app_harness.user_store.list_users()) == users_before

    def test_login_with_wrong_password(self, client: TestClient) -> None:
        _gql(client, SIGNUP, email="wrong@x.com", password="pw1")
        client.cookies.clear()
        resp = _gql(client, LOGIN, email="wrong@x.com", password="pw2")
        assert _error_code(resp) == "INVALID_CREDENTIALS"
        assert resp.json()["errors"][0]["message"] == "invalid email or password"
        assert "auth_token" not in client.cookies

    def test_login_sets_cookie(self, client: TestClient) -> None:
        _gql(client, SIGNUP, email="login@x.com", password="pw1")
        client.cookies.clear()
        resp = _gql(client, LOGIN, email="login@x.com", password="pw1")
        token = resp.json()["data"]["login"]["token"]
        assert client.cookies.get("auth_token") == token
        assert _gql(client, ME).json()["data"]["me"]["email"] == "login@x.com"


class TestLogout:
    def test_logout_clears_cookie_and_session(self, client: TestClient, app_harness) -> None:
        token = _gql(client, SIGNUP, email="out@x.com", password="pw").json()["data"]["signup"]["token"]

        resp = _gql(client, "mutation { logout }")
        assert resp.json()["data"]["logout"] is True
        cleared = next(h for h in resp.headers.get_list("set-cookie") if h.startswith("auth_token="))
        assert "max-age=0" in cleared.lower()
        assert app_harness.user_store.get_session_by_token(token) is None
        assert _error_code(_gql(client, ME)) == "NOT_AUTHENTICATED"

    def test_logout_without_session_still_true(self, client: TestClient) -> None:
        assert _gql(client, "mutation { logout }").json()["data"]["logout"] is True


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class TestUsers:
    def test_users_and_user_lookup(self, client: TestClient) -> None:
        created = _gql(client, SIGNUP, email="listed@x.com", password="pw").json()["data"]["signup"]["user"]

        emails = [u["email"] for u in _gql(client, "query { users { email } }").json()["data"]["users"]]
        assert "listed@x.com" in emails

        found = _gql(client, 'query($id: String!) { user(id: $id) { email } }', id=created["id"]).json()
        assert found["data"]["user"]["email"] == "listed@x.com"

        missing = _gql(client, 'query { user(id: "6f1c3a52-8f0e-4d5a-9a7b-2c1d0e9f8a7b") { email } }')
        assert missing.json()["data"]["user"] is None

    def test_malformed_user_id(self, client: TestClient) -> None:
        resp = _gql(client, 'query { user(id: "42") { email } }')
        assert _error_code(resp) == "VALIDATION_ERROR"

    def test_internal_errors_are_masked(self, client: TestClient, monkeypatch) -> None:
        def store_down():
            raise StoreError("failed to list users")

        monkeypatch.setattr(client.app.state.auth_service, "list_users", store_down)
        resp = _gql(client, "query { users { email } }")
        error = resp.json()["errors"][0]
        assert error["message"] == "Unexpected error."
        assert "failed to list users" not in resp.text

    def test_unexpected_exceptions_are_masked(self, client: TestClient, monkeypatch) -> None:
        def bug():
            raise RuntimeError("secret internals")

        monkeypatch.setattr(client.app.state.auth_service, "list_users", bug)
        resp = _gql(client, "query { users { email } }")
        assert resp.json()["errors"][0]["message"] == "Unexpected error."
        assert "secret internals" not in resp.text


# ---------------------------------------------------------------------------
# Questions and placeholders
# ---------------------------------------------------------------------------

QUESTIONS = """
query($input: GetQuestionsRequest!) {
  getQuestions(input: $input) {
    totalCount
    hasMore
    questions { id title slug difficulty topics testCaseCount }
  }
}
"""


class TestQuestions:
    def test_get_questions_pages(self, client: TestClient, app_harness) -> None:
        app_harness.question_store.add_questions(
            Question(id=i, title=f"Graph Question {i}", slug=f"gq-{i}", description="", difficulty="Easy", topics=["graphs"])
            for i in range(1, 4)
        )
        data = _gql(client, QUESTIONS, input={"limit": 2}).json()["data"]["getQuestions"]
        assert data["totalCount"] == 2
        assert data["hasMore"] is True
        assert [q["id"] for q in data["questions"]] == ["1", "2"]
        assert data["questions"][0]["topics"] == ["graphs"]

        rest = _gql(client, QUESTIONS, input={"limit": 2, "offset": 2}).json()["data"]["getQuestions"]
        assert rest["hasMore"] is False
        assert [q["id"] for q in rest["questions"]] == ["3"]

    def test_invalid_sort_falls_back(self, client: TestClient) -> None:
        data = _gql(client, QUESTIONS, input={"sortBy": "dangerous", "sortOrder": "sideways"}).json()
        ids = [int(q["id"]) for q in data["data"]["getQuestions"]["questions"]]
        assert ids == sorted(ids)


class TestPlaceholders:
    def test_lists_are_empty(self, client: TestClient) -> None:
        data = _gql(client, 'query { problems { id } matches { id } problem(id: "1") { id } match(id: "1") { id } }')
        assert data.json()["data"] == {"problems": [], "matches": [], "problem": None, "match": None}

    def test_create_problem_and_match(self, client: TestClient) -> None:
        resp = _gql(
            client,
            'mutation { createProblem(title: "T", description: "D", difficulty: "Hard") { id title difficulty createdAt }'
            ' createMatch(problemId: "p1") { id status createdAt } }',
        )
        data = resp.json()["data"]
        assert data["createProblem"]["title"] == "T"
        assert data["createProblem"]["difficulty"] == "Hard"
        assert data["createProblem"]["createdAt"]
        assert data["createMatch"]["status"] == "waiting"


# ---------------------------------------------------------------------------
# HTTP surface
# ---------------------------------------------------------------------------


def test_graphiql_served_on_get(client: TestClient) -> None:
    resp = client.get("/query", headers={"Accept": "text/html"})
    assert resp.status_code == 200
    assert "graphiql" in resp.text.lower()


def test_root_redirects_to_graphql(client: TestClient) -> None:
    resp = client.get("/")
    assert resp.status_code == 307
    assert resp.headers["location"] == "/query"
