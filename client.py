"""
Python client for the MedTrap API.

Every path is resolved against one base URL (``MEDTRAP_API_BASE``) and every
response is parsed through the single ``Envelope`` model. The login state
lives in a ``Session`` persisted to a small JSON file by ``SessionStore``.
"""
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "http://localhost:8000"
DEFAULT_SESSION_FILE = Path.home() / ".medtrap" / "session.json"


class ApiError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None, errors: Optional[List[dict]] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.errors = errors or []


class Envelope(BaseModel):
    model_config = ConfigDict(extra="allow")

    success: bool
    message: Optional[str] = None
    data: Any = None
    errors: Optional[List[Dict[str, Any]]] = None
    pagination: Optional[Dict[str, Any]] = None
    count: Optional[int] = None


class SessionStore:
    """JSON key-value file holding the token, the user snapshot and the selected role."""

    def __init__(self, path: Union[str, Path, None] = None):
        self.path = Path(path or os.getenv("MEDTRAP_SESSION_FILE") or DEFAULT_SESSION_FILE)

    def load(self) -> Dict[str, Any]:
        try:
            return json.loads(self.path.read_text())
        except FileNotFoundError:
            return {}
        except ValueError:
            logger.warning("Session file %s is corrupt, starting logged out", self.path)
            return {}

    def _write(self, values: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(values))

    def get(self, key: str, default=None):
        return self.load().get(key, default)

    def set(self, **values) -> None:
        current = self.load()
        current.update(values)
        self._write(current)

    def remove(self, *keys: str) -> None:
        current = self.load()
        for key in keys:
            current.pop(key, None)
        self._write(current)


class LoggedOut(BaseModel):
    pass


class LoggedIn(BaseModel):
    token: str
    user: Dict[str, Any]


class Session:
    """Login state: LoggedOut until a login or register succeeds, back on logout or a 401 refresh."""

    def __init__(self, store: Optional[SessionStore] = None):
        self.store = store or SessionStore()
        saved = self.store.load()
        if saved.get("token") and isinstance(saved.get("user"), dict):
            self.state: Union[LoggedIn, LoggedOut] = LoggedIn(token=saved["token"], user=saved["user"])
        else:
            self.state = LoggedOut()

    @property
    def logged_in(self) -> bool:
        return isinstance(self.state, LoggedIn)

    @property
    def token(self) -> Optional[str]:
        return self.state.token if isinstance(self.state, LoggedIn) else None

    @property
    def user(self) -> Optional[Dict[str, Any]]:
        return self.state.user if isinstance(self.state, LoggedIn) else None

    @property
    def selected_role(self) -> Optional[str]:
        return self.store.get("selectedRole")

    def select_role(self, role: str) -> None:
        self.store.set(selectedRole=role)

    def login(self, token: str, user: Dict[str, Any]) -> None:
        self.state = LoggedIn(token=token, user=user)
        self.store.set(token=token, user=user)

    def update_user(self, user: Dict[str, Any]) -> None:
        if not isinstance(self.state, LoggedIn):
            raise ApiError("Not logged in")
        self.state = LoggedIn(token=self.state.token, user=user)
        self.store.set(user=user)

    def logout(self) -> None:
        self.state = LoggedOut()
        self.store.remove("token", "user")


class MedTrapClient:
    def __init__(self, base_url: Optional[str] = None, session: Optional[Session] = None,
                 transport: Optional[httpx.BaseTransport] = None, timeout: float = 10.0):
        self.base_url = (base_url or os.getenv("MEDTRAP_API_BASE") or DEFAULT_API_BASE).rstrip("/")
        self.session = session or Session()
        self._http = httpx.Client(base_url=self.base_url, transport=transport, timeout=timeout)

    def close(self) -> None:
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def url(self, path: str = "/") -> str:
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self.base_url}{path}"

    def request(self, method: str, path: str, auth: bool = True, **kwargs) -> Envelope:
        headers = kwargs.pop("headers", {})
        if auth and self.session.token:
            headers["Authorization"] = f"Bearer {self.session.token}"
        response = self._http.request(method, self.url(path), headers=headers, **kwargs)
        try:
            envelope = Envelope.model_validate(response.json())
        except (ValueError, ValidationError):
            raise ApiError(f"Unexpected response from {path}", status_code=response.status_code)
        if response.is_error or not envelope.success:
            raise ApiError(envelope.message or "Request failed", status_code=response.status_code,
                           errors=envelope.errors)
        return envelope

    # Auth

    def register(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        envelope = self.request("POST", "/api/auth/register", auth=False, json=payload)
        self.session.login(envelope.data["token"], envelope.data["user"])
        return envelope.data["user"]

    def login(self, email: str, password: str) -> Dict[str, Any]:
        envelope = self.request("POST", "/api/auth/login", auth=False, json={"email": email, "password": password})
        self.session.login(envelope.data["token"], envelope.data["user"])
        return envelope.data["user"]

    def refresh_profile(self) -> Dict[str, Any]:
        """Re-fetch the current user and overwrite the cached snapshot. A 401 logs the session out."""
        try:
            envelope = self.request("GET", "/api/auth/me")
        except ApiError as e:
            if e.status_code == 401:
                logger.info("Profile refresh rejected, logging out")
                self.session.logout()
            raise
        self.session.update_user(envelope.data)
        return envelope.data

    def update_profile(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        envelope = self.request("PUT", "/api/auth/profile", json=fields)
        self.session.update_user(envelope.data)
        return envelope.data

    def change_password(self, current_password: str, new_password: str) -> None:
        self.request("PUT", "/api/auth/change-password",
                     json={"currentPassword": current_password, "newPassword": new_password})

    def logout(self) -> None:
        if self.session.logged_in:
            try:
                self.request("POST", "/api/auth/logout")
            except (ApiError, httpx.HTTPError) as e:
                logger.warning("Server logout failed, clearing local session anyway: %s", e)
        self.session.logout()

    # Resources

    def list(self, resource: str, **params) -> Envelope:
        return self.request("GET", f"/api/{resource}", params=params)

    def list_all(self, resource: str, limit: int = 100) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        page = 1
        while True:
            envelope = self.list(resource, page=page, limit=limit)
            items.extend(envelope.data or [])
            if not envelope.pagination or not envelope.pagination.get("hasNext"):
                return items
            page += 1

    def get(self, resource: str, item_id: str) -> Dict[str, Any]:
        return self.request("GET", f"/api/{resource}/{item_id}").data
