"""
sonar_api.py — the slice of the SonarQube Web API that onboarding uses.

All write calls are form-encoded POSTs authenticated with HTTP basic auth.
"""

import logging

import requests

from onboarding_errors import AccountProvisioningError, PermissionGrantError, TokenGenerationError

logger = logging.getLogger()

ALREADY_EXISTS = "already exists"


class SonarClient:
    def __init__(self, base_url, timeout=10.0, session=None):
        self.base_url = base_url.rstrip("/")
        self.timeout  = timeout
        self.session  = session or requests.Session()

    def url(self, path):
        return f"{self.base_url}{path}"

    # ── health ───────────────────────────────────────────────────────
    def system_status(self):
        """GET /api/system/status. Returns the response; raises on transport errors."""
        return self.session.get(self.url("/api/system/status"), timeout=self.timeout)

    def is_up(self):
        response = self.system_status()
        if not response.ok:
            return False
        try:
            body = response.json()
        except ValueError:
            return False
        return isinstance(body, dict) and body.get("status") == "UP"

    def is_responding(self):
        return self.system_status().status_code < 400

    # ── users ────────────────────────────────────────────────────────
    def create_user(self, admin_auth, login, name, password):
        """Create ``login``. Returns False when SonarQube says it already exists."""
        response = self._post(
            "/api/users/create",
            {"login": login, "name": name, "password": password},
            admin_auth,
            AccountProvisioningError,
            login,
        )
        if response.ok:
            return True
        if response.status_code == 400 and _mentions(response, ALREADY_EXISTS):
            return False
        raise _http_error(AccountProvisioningError, "user creation rejected", login, response)

    def add_user_permission(self, admin_auth, login, permission):
        response = self._post(
            "/api/permissions/add_user",
            {"login": login, "permission": permission},
            admin_auth,
            PermissionGrantError,
            login,
        )
        if not response.ok:
            raise _http_error(PermissionGrantError, f"could not grant {permission!r}", login, response)

    # ── tokens ───────────────────────────────────────────────────────
    def revoke_token(self, auth, name, login=None):
        """Revoke token ``name``. A token that does not exist is not an error."""
        response = self._post("/api/user_tokens/revoke", _token_form(name, login), auth, TokenGenerationError, login or auth[0])
        if response.ok or response.status_code == 404:
            return
        raise _http_error(TokenGenerationError, f"could not revoke token {name!r}", login or auth[0], response)

    def generate_token(self, auth, name, login=None):
        target   = login or auth[0]
        response = self._post("/api/user_tokens/generate", _token_form(name, login), auth, TokenGenerationError, target)
        if not response.ok:
            raise _http_error(TokenGenerationError, f"could not generate token {name!r}", target, response)
        try:
            body = response.json()
        except ValueError:
            body = None
        token = body.get("token") if isinstance(body, dict) else None
        if not token:
            raise TokenGenerationError("response carried no token", target=target, status_code=response.status_code)
        return token

    def _post(self, path, data, auth, error_cls, target):
        logger.debug(f"POST {path} as {auth[0]}")
        try:
            return self.session.post(self.url(path), data=data, auth=auth, timeout=self.timeout)
        except requests.RequestException as exc:
            raise error_cls(f"request to {path} failed", target=target, detail=f"{exc.__class__.__name__}: {exc}") from exc


def _token_form(name, login):
    form = {"name": name}
    if login:
        form["login"] = login
    return form


def error_messages(response):
    """Pull ``errors[].msg`` out of a SonarQube error body, falling back to the raw text."""
    try:
        body = response.json()
    except ValueError:
        return [response.text] if response.text else []
    errors = body.get("errors") if isinstance(body, dict) else None
    if not isinstance(errors, list):
        return [response.text] if response.text else []
    return [str(item.get("msg", "")) for item in errors if isinstance(item, dict)]


def _mentions(response, needle):
    return any(needle in message.lower() for message in error_messages(response))


def _http_error(error_cls, message, target, response):
    return error_cls(message, target=target, status_code=response.status_code, detail="; ".join(error_messages(response)) or None)
