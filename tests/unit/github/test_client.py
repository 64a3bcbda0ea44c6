"""Tests for the GitHub REST API client."""

from unittest.mock import MagicMock, patch

import pytest
from requests.exceptions import ConnectionError as RequestsConnectionError
from requests.exceptions import Timeout

from iisdeploy.github.client import GitHubClient
from iisdeploy.lib.errors import GitHubAPIError, GitHubConnectionError
from iisdeploy.models.config import RepoRef

REPO = RepoRef(owner="Org", repo="Proj")


def _response(status: int = 200, payload: object = None) -> MagicMock:
    response = MagicMock()
    response.status_code = status
    response.ok = 200 <= status < 300
    response.json.return_value = payload if payload is not None else {}
    return response


@pytest.mark.unit
class TestGitHubClient:
    """Tests for GitHubClient requests."""

    def test_headers(self) -> None:
        client = GitHubClient("ghp_secret")
        headers = client._session.headers

        assert headers["Authorization"] == "Bearer ghp_secret"
        assert headers["Accept"] == "application/vnd.github+json"
        assert headers["X-GitHub-Api-Version"] == "2022-11-28"

    def test_repr_hides_token(self) -> None:
        assert "ghp_secret" not in repr(GitHubClient("ghp_secret"))

    def test_create_registration_token_url(self) -> None:
        client = GitHubClient("t", base_url="https://ghe.example.com/api/v3/")
        payload = {"token": "AAA", "expires_at": "2024-01-01T00:00:00Z"}
        with patch.object(
            client._session, "request", return_value=_response(201, payload)
        ) as mock_request:
            data = client.create_registration_token(REPO)

        assert data["token"] == "AAA"
        kwargs = mock_request.call_args.kwargs
        assert kwargs["method"] == "POST"
        assert kwargs["url"] == (
            "https://ghe.example.com/api/v3/repos/Org/Proj/actions/runners/registration-token"
        )

    def test_remove_token_url(self) -> None:
        client = GitHubClient("t")
        with patch.object(
            client._session, "request", return_value=_response(201, {"token": "R"})
        ) as mock_request:
            client.create_registration_token(REPO, kind="remove")

        assert mock_request.call_args.kwargs["url"].endswith("/actions/runners/remove-token")

    def test_list_runners_paginates(self) -> None:
        client = GitHubClient("t")
        client.PAGE_SIZE = 2
        pages = [
            _response(200, {"total_count": 3, "runners": [{"name": "a"}, {"name": "b"}]}),
            _response(200, {"total_count": 3, "runners": [{"name": "c"}]}),
        ]
        with patch.object(client._session, "request", side_effect=pages) as mock_request:
            runners = client.list_runners(REPO)

        assert [r["name"] for r in runners] == ["a", "b", "c"]
        assert mock_request.call_args_list[1].kwargs["params"]["page"] == 2

    def test_error_status_raises_api_error(self) -> None:
        client = GitHubClient("t")
        response = _response(403, {"message": "Resource not accessible"})
        with patch.object(client._session, "request", return_value=response):
            with pytest.raises(GitHubAPIError) as exc_info:
                client.get_user()

        assert exc_info.value.status_code == 403
        assert exc_info.value.detail == "Resource not accessible"

    @pytest.mark.parametrize("error", [Timeout("slow"), RequestsConnectionError("down")])
    def test_network_failures(self, error: Exception) -> None:
        client = GitHubClient("t")
        with patch.object(client._session, "request", side_effect=error):
            with pytest.raises(GitHubConnectionError):
                client.get_user()
