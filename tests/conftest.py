import json
import os

import pytest
import requests
from botocore.exceptions import ClientError

# sonarqube_onboarding creates its boto3 client at import time
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")

SONAR_URL = "http://sonar.local"


def make_response(status_code, body=None, text=None, url=SONAR_URL):
    response = requests.Response()
    response.status_code = status_code
    response.url = url
    response.encoding = "utf-8"
    if body is not None:
        response._content = json.dumps(body).encode("utf-8")
        response.headers["Content-Type"] = "application/json"
    else:
        response._content = (text or "").encode("utf-8")
    return response


class FakeSonarSession:
    """In-memory stand-in for the SonarQube Web API behind a requests.Session."""

    def __init__(self, admin=("admin", "p1"), statuses=None):
        self.admin = admin
        self.passwords = {admin[0]: admin[1]}
        self.permissions = {}
        self.tokens = {}
        self.calls = []
        # list of responses or exceptions returned by successive status checks
        self.statuses = list(statuses) if statuses is not None else [{"status": "UP"}]
        self.fail = {}
        self.issued = 0

    def paths(self):
        return [path for _, path, _, _ in self.calls]

    def get(self, url, timeout=None):
        path = url[len(SONAR_URL):]
        self.calls.append(("GET", path, None, None))
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if isinstance(status, Exception):
            raise status
        if isinstance(status, requests.Response):
            return status
        return make_response(200, status, url=url)

    def post(self, url, data=None, auth=None, timeout=None):
        path = url[len(SONAR_URL):]
        self.calls.append(("POST", path, dict(data or {}), auth))

        failure = self.fail.get((path, (data or {}).get("login") or (data or {}).get("name")))
        if failure is not None:
            if isinstance(failure, Exception):
                raise failure
            return failure

        if not auth or self.passwords.get(auth[0]) != auth[1]:
            return make_response(401, text="", url=url)

        if path == "/api/users/create":
            login = data["login"]
            if login in self.passwords:
                return make_response(400, {"errors": [{"msg": f"An active user with login '{login}' already exists"}]}, url=url)
            self.passwords[login] = data["password"]
            return make_response(200, {"user": {"login": login, "name": data["name"], "active": True}}, url=url)

        if path == "/api/permissions/add_user":
            self.permissions.setdefault(data["login"], set()).add(data["permission"])
            return make_response(204, text="", url=url)

        if path == "/api/user_tokens/revoke":
            login = data.get("login") or auth[0]
            self.tokens.pop((login, data["name"]), None)
            return make_response(204, text="", url=url)

        if path == "/api/user_tokens/generate":
            login = data.get("login") or auth[0]
            key = (login, data["name"])
            if key in self.tokens:
                return make_response(
                    400,
                    {"errors": [{"msg": f"A user token for login '{login}' and name '{data['name']}' already exists"}]},
                    url=url,
                )
            self.issued += 1
            self.tokens[key] = f"squ_{self.issued:04d}"
            return make_response(200, {"login": login, "name": data["name"], "token": self.tokens[key]}, url=url)

        return make_response(404, {"errors": [{"msg": "Unknown url"}]}, url=url)


class FakeSecretsManager:
    """Dict-backed stand-in for a boto3 secretsmanager client."""

    def __init__(self, secrets=None):
        self.secrets = {ref: json.dumps(value) for ref, value in (secrets or {}).items()}
        self.writes = []
        self.fail_put = set()
        self.fail_get = set()

    def value(self, reference):
        return json.loads(self.secrets[reference])

    def get_secret_value(self, SecretId):
        if SecretId in self.fail_get or SecretId not in self.secrets:
            raise ClientError(
                {"Error": {"Code": "ResourceNotFoundException", "Message": "Secrets Manager can't find the specified secret."}},
                "GetSecretValue",
            )
        return {"ARN": SecretId, "Name": SecretId, "SecretString": self.secrets[SecretId]}

    def put_secret_value(self, SecretId, SecretString):
        if SecretId in self.fail_put:
            raise ClientError(
                {"Error": {"Code": "AccessDeniedException", "Message": "not authorized to perform PutSecretValue"}},
                "PutSecretValue",
            )
        self.writes.append(SecretId)
        self.secrets[SecretId] = SecretString
        return {"ARN": SecretId, "Name": SecretId, "VersionId": f"v{len(self.writes)}"}


ADMIN_ARN     = "arn:aws:secretsmanager:us-east-1:123456789012:secret:sonar-admin"
JENKINS_ARN   = "arn:aws:secretsmanager:us-east-1:123456789012:secret:sonar-jenkins"
CODEBUILD_ARN = "arn:aws:secretsmanager:us-east-1:123456789012:secret:sonar-codebuild"


@pytest.fixture
def sonar_session():
    return FakeSonarSession()


@pytest.fixture
def secretsmanager():
    return FakeSecretsManager({
        ADMIN_ARN:     {"username": "admin", "password": "p1"},
        JENKINS_ARN:   {"username": "jenkins", "password": "p2", "name": "Jenkins Service Account"},
        CODEBUILD_ARN: {"username": "codebuild", "password": "p3"},
    })
