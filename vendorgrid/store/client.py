"""HTTP client for the portal's scorecard, comment and template API.

Pass a custom ``session`` in tests to intercept HTTP calls without making
real network requests.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from ..config.models import StoreSettings
from ..errors import AuthError, NetworkError, NotFoundError, StoreError, ValidationError
from ..models import (
    Column,
    Comment,
    CurrentUser,
    MasterScorecard,
    ScorecardRecord,
    Template,
    is_local_id,
)

logger = logging.getLogger(__name__)


class ScorecardStore:
    """Remote store client."""

    def __init__(
        self,
        base_url: str,
        access_token: str | None = None,
        session_cookie: str = "access-token",
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: Portal base URL, e.g. "https://portal.example.com".
            access_token: Session token sent as a cookie.
            session_cookie: Name of the session cookie.
            timeout: Request timeout in seconds.
            session: Optional requests.Session (injected in tests).
        """
        self._base_url = base_url.rstrip("/")
        self._access_token = access_token
        self._session_cookie = session_cookie
        self._timeout = timeout
        self._session = session

    @classmethod
    def from_settings(cls, settings: StoreSettings) -> ScorecardStore:
        return cls(
            settings.base_url,
            access_token=settings.access_token,
            session_cookie=settings.session_cookie,
            timeout=settings.timeout,
        )

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def set_access_token(self, token: str | None) -> None:
        self._access_token = token

    def _request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Send a request and map failures onto the error taxonomy.

        Returns:
            Parsed JSON body, or None for empty responses.

        Raises:
            NetworkError: Connection failure or timeout.
            ValidationError: 400 response.
            AuthError: 401/403 response.
            NotFoundError: 404 response.
            StoreError: Any other error status.
        """
        url = f"{self._base_url}{path}"
        cookies = {self._session_cookie: self._access_token} if self._access_token else None
        try:
            response = self.session.request(
                method,
                url,
                json=json,
                params=params,
                cookies=cookies,
                timeout=self._timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            logger.debug(f"{method} {path} failed: {e}")
            raise NetworkError(f"Cannot reach {self._base_url}: {e}") from e

        status = response.status_code
        if status >= 400:
            message = self._error_message(response)
            logger.debug(f"{method} {path} -> {status}: {message}")
            if status == 400:
                raise ValidationError(message)
            if status in (401, 403):
                raise AuthError(message)
            if status == 404:
                raise NotFoundError(message)
            raise StoreError(message, status_code=status)

        if status == 204 or not response.content:
            return None
        return response.json()

    def _error_message(self, response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("error"):
            return str(body["error"])
        return f"HTTP {response.status_code}"

    # Scorecards

    def list_scorecards(self) -> list[ScorecardRecord]:
        data = self._request("GET", "/api/scorecards") or []
        return [ScorecardRecord.model_validate(item) for item in data]

    def get_scorecard(self, scorecard_id: str) -> ScorecardRecord:
        data = self._request("GET", f"/api/scorecards/{scorecard_id}")
        return ScorecardRecord.model_validate(data)

    def create_scorecard(
        self, title: str, payload: dict[str, Any], is_draft: bool = True
    ) -> ScorecardRecord:
        """Create a scorecard record.

        Args:
            title: Scorecard title.
            payload: ``{"columns": [...], "rows": [...]}``.
            is_draft: Draft flag.

        Returns:
            The stored record with its remote identifier.
        """
        data = self._request(
            "POST",
            "/api/scorecards",
            json={"title": title, "data": payload, "is_draft": is_draft},
        )
        record = ScorecardRecord.model_validate(data)
        logger.info(f"Created scorecard {record.id} ({title})")
        return record

    def update_scorecard(
        self, scorecard_id: str, title: str, payload: dict[str, Any], is_draft: bool = True
    ) -> ScorecardRecord:
        """Update a scorecard record.

        Raises:
            NotFoundError: If the record does not belong to the caller.
        """
        data = self._request(
            "PUT",
            f"/api/scorecards/{scorecard_id}",
            json={"title": title, "data": payload, "is_draft": is_draft},
        )
        return ScorecardRecord.model_validate(data)

    def delete_scorecard(self, scorecard_id: str) -> None:
        self._request("DELETE", f"/api/scorecards/{scorecard_id}")

    # Comments

    def list_comments(self, scorecard_id: str) -> list[Comment]:
        """List comments of a scorecard. Local-only scorecards have none."""
        if is_local_id(scorecard_id):
            return []
        data = self._request("GET", "/api/comments", params={"scorecard_id": scorecard_id}) or []
        return [Comment.model_validate(self._comment_fields(item)) for item in data]

    def create_comment(
        self,
        scorecard_id: str,
        row_id: Any,
        text: str,
        scorecard_data: dict[str, Any] | None = None,
    ) -> Comment:
        """Create a comment on a row.

        Args:
            scorecard_id: Scorecard identifier.
            row_id: Row identifier.
            text: Comment text.
            scorecard_data: Scorecard payload allowing the portal to migrate a
                local-only scorecard first.

        Raises:
            ValidationError: If the text is empty, or the scorecard is local-only
                and no payload was supplied. No request is sent.
        """
        if not text or not text.strip():
            raise ValidationError("Comment text is required")
        if is_local_id(scorecard_id) and scorecard_data is None:
            raise ValidationError(
                f"Scorecard {scorecard_id} is not saved yet; its data is required"
            )
        body: dict[str, Any] = {
            "scorecard_id": scorecard_id,
            "row_id": str(row_id),
            "text": text.strip(),
        }
        if scorecard_data is not None:
            body["scorecard_data"] = scorecard_data
        data = self._request("POST", "/api/comments", json=body)
        fields = self._comment_fields(data)
        fields.setdefault("row_id", str(row_id))
        return Comment.model_validate(fields)

    def update_comment(self, comment_id: str, text: str) -> Comment:
        if not text or not text.strip():
            raise ValidationError("Comment text is required")
        data = self._request("PUT", f"/api/comments/{comment_id}", json={"text": text.strip()})
        return Comment.model_validate(self._comment_fields(data))

    def delete_comment(self, comment_id: str) -> None:
        self._request("DELETE", f"/api/comments/{comment_id}")

    def _comment_fields(self, item: dict[str, Any]) -> dict[str, Any]:
        fields = dict(item)
        # Older portal builds send the row identifier as user_id
        if fields.get("row_id") is None and fields.get("user_id") is not None:
            fields["row_id"] = fields["user_id"]
        if fields.get("row_id") is None:
            fields.pop("row_id", None)
        return fields

    # Templates

    def list_templates(self) -> list[Template]:
        data = self._request("GET", "/api/templates") or []
        return [Template.model_validate(item) for item in data]

    def create_template(
        self,
        name: str,
        columns: list[Column],
        rows: list[dict[str, Any]] | None = None,
    ) -> Template:
        body: dict[str, Any] = {
            "name": name,
            "columns": [c.model_dump(mode="json", by_alias=True) for c in columns],
        }
        if rows is not None:
            body["rows"] = rows
        data = self._request("POST", "/api/templates", json=body)
        return Template.model_validate(data)

    def delete_template(self, template_id: str) -> None:
        self._request("DELETE", f"/api/templates/{template_id}")

    # Aggregates and identity

    def get_master_scorecard(self) -> MasterScorecard:
        data = self._request("GET", "/api/master-scorecard")
        return MasterScorecard.model_validate(data)

    def get_current_user(self) -> CurrentUser | None:
        """Get the signed-in user, or None without a valid session."""
        try:
            data = self._request("GET", "/api/auth/me")
        except AuthError:
            return None
        if not data:
            return None
        user = data.get("user", data) if isinstance(data, dict) else None
        if not user:
            return None
        return CurrentUser.model_validate(user)

    def ping(self) -> bool:
        """Check whether the portal is reachable."""
        try:
            self.session.request("HEAD", self._base_url, timeout=min(self._timeout, 5.0))
        except requests.RequestException:
            return False
        return True
