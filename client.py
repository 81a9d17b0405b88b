# backend/client.py
"""
HTTP client for the portal API, the same contract the browser app uses.

The bearer token returned by ``register``/``login`` is kept on the client and
sent with every request. A 401 from any endpoint drops the token (the
browser's forced logout) and raises ``AuthenticationExpired``.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8000/api"


class PortalError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


class AuthenticationExpired(PortalError):
    pass


class PortalClient:
    def __init__(self, base_url: str = DEFAULT_BASE_URL, token: Optional[str] = None, session=None):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.user: Optional[Dict] = None
        self.session = session or requests.Session()

    @property
    def is_authenticated(self) -> bool:
        return self.token is not None

    def _request(self, method: str, path: str, **kwargs) -> Any:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        r = self.session.request(method, f"{self.base_url}{path}", headers=headers, **kwargs)
        try:
            body = r.json()
        except ValueError:
            body = {}

        if r.status_code == 401:
            logger.info("Token rejected, logging out")
            self.logout()
            raise AuthenticationExpired(401, body.get("message", "Unauthorized"))
        if r.status_code >= 400 or not body.get("success", False):
            raise PortalError(r.status_code, body.get("message") or "Request failed")
        return body.get("data")

    # ─── Auth ──────────────────────────────────────────────────────────────────
    def register(self, username: str, email: str, password: str) -> Dict:
        data = self._request("POST", "/auth/register", json={
            "username": username, "email": email, "password": password,
        })
        self._remember(data)
        return data

    def login(self, email: str, password: str) -> Dict:
        data = self._request("POST", "/auth/login", json={"email": email, "password": password})
        self._remember(data)
        return data

    def logout(self) -> None:
        self.token = None
        self.user = None

    def me(self) -> Dict:
        return self._request("GET", "/auth/me")["user"]

    def update_preferences(self, default_ai_provider: str = None, theme: str = None) -> Dict:
        payload = {}
        if default_ai_provider:
            payload["default_ai_provider"] = default_ai_provider
        if theme:
            payload["theme"] = theme
        self.user = self._request("PUT", "/auth/preferences", json=payload)["user"]
        return self.user

    def _remember(self, data: Dict) -> None:
        self.token = data["token"]
        self.user = data["user"]

    # ─── Chat ──────────────────────────────────────────────────────────────────
    def send_message(self, message: str, conversation_id: int = None,
                     provider: str = None, model: str = None) -> Dict:
        payload = {"message": message}
        if conversation_id is not None:
            payload["conversation_id"] = conversation_id
        if provider:
            payload["provider"] = provider
        if model:
            payload["model"] = model
        return self._request("POST", "/chat", json=payload)

    def list_conversations(self, page: int = 1, limit: int = 20,
                           search: str = None, archived: bool = None) -> Dict:
        params = {"page": page, "limit": limit}
        if search:
            params["search"] = search
        if archived is not None:
            params["archived"] = "true" if archived else "false"
        return self._request("GET", "/chat/conversations", params=params)

    def get_conversation(self, conv_id: int) -> Dict:
        return self._request("GET", f"/chat/conversations/{conv_id}")["conversation"]

    def update_conversation(self, conv_id: int, title: str = None,
                            tags: List[str] = None, is_archived: bool = None) -> Dict:
        payload = {}
        if title is not None:
            payload["title"] = title
        if tags is not None:
            payload["tags"] = tags
        if is_archived is not None:
            payload["is_archived"] = is_archived
        return self._request("PUT", f"/chat/conversations/{conv_id}", json=payload)["conversation"]

    def delete_conversation(self, conv_id: int) -> None:
        self._request("DELETE", f"/chat/conversations/{conv_id}")

    # ─── Analysis ──────────────────────────────────────────────────────────────
    def summarize(self, conv_id: int) -> str:
        return self._request("POST", f"/analysis/summarize/{conv_id}")["summary"]

    def analyze(self, conv_id: int) -> Dict:
        return self._request("POST", f"/analysis/analyze/{conv_id}")["analysis"]

    def query_history(self, query: str, provider: str = None, limit: int = 10) -> Dict:
        payload = {"query": query, "limit": limit}
        if provider:
            payload["provider"] = provider
        return self._request("POST", "/analysis/query", json=payload)

    def insights(self) -> Dict:
        return self._request("GET", "/analysis/insights")
