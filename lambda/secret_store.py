"""
secret_store.py — credential records kept as JSON in AWS Secrets Manager.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict

from botocore.exceptions import BotoCoreError, ClientError

from onboarding_errors import SecretPersistenceError, SecretRetrievalError

logger = logging.getLogger()


@dataclass(frozen=True)
class AdminCredentials:
    username: str
    password: str

    @property
    def auth(self):
        return (self.username, self.password)

    @classmethod
    def from_secret(cls, reference, fields):
        _require(reference, fields, "username", "password")
        return cls(username=fields["username"], password=fields["password"])


@dataclass(frozen=True)
class ServiceAccountRecord:
    """A service account secret. ``fields`` holds the whole stored mapping."""

    reference: str
    fields:    Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_secret(cls, reference, fields):
        _require(reference, fields, "username", "password")
        return cls(reference=reference, fields=dict(fields))

    @property
    def username(self):
        return self.fields["username"]

    @property
    def password(self):
        return self.fields["password"]

    @property
    def name(self):
        return self.fields.get("name") or self.username

    @property
    def token(self):
        return self.fields.get("token")

    @property
    def auth(self):
        return (self.username, self.password)

    def with_token(self, token):
        return ServiceAccountRecord(reference=self.reference, fields={**self.fields, "token": token})


def _require(reference, fields, *keys):
    missing = [key for key in keys if not fields.get(key)]
    if missing:
        raise SecretRetrievalError(f"secret is missing {', '.join(missing)}", target=reference)


class SecretStore:
    """Read/replace access to JSON secrets through a boto3 ``secretsmanager`` client."""

    def __init__(self, client):
        self.client = client

    def get(self, reference):
        try:
            response = self.client.get_secret_value(SecretId=reference)
        except (ClientError, BotoCoreError) as exc:
            raise SecretRetrievalError("could not read secret", target=reference, detail=_aws_reason(exc)) from exc

        raw = response.get("SecretString") or "{}"
        try:
            fields = json.loads(raw)
        except ValueError as exc:
            raise SecretRetrievalError("secret is not valid JSON", target=reference) from exc
        if not isinstance(fields, dict):
            raise SecretRetrievalError("secret is not a JSON object", target=reference)
        return fields

    def put(self, reference, fields):
        """Replace the secret with ``fields`` in a single write."""
        try:
            response = self.client.put_secret_value(SecretId=reference, SecretString=json.dumps(fields))
        except (ClientError, BotoCoreError) as exc:
            raise SecretPersistenceError("could not write secret", target=reference, detail=_aws_reason(exc)) from exc
        logger.info(f"Secret {reference} updated (version {response.get('VersionId', 'unknown')})")
        return response

    def get_admin(self, reference):
        return AdminCredentials.from_secret(reference, self.get(reference))

    def get_service_account(self, reference):
        return ServiceAccountRecord.from_secret(reference, self.get(reference))

    def save_service_account(self, record):
        return self.put(record.reference, record.fields)


def _aws_reason(exc):
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        return f"{error.get('Code', 'ClientError')}: {error.get('Message', '')}".rstrip(": ")
    return f"{exc.__class__.__name__}: {exc}"
