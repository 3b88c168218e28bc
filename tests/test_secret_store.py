import json

import boto3
import pytest
from botocore.stub import Stubber

from onboarding_errors import SecretPersistenceError, SecretRetrievalError
from secret_store import AdminCredentials, SecretStore, ServiceAccountRecord

ARN = "arn:aws:secretsmanager:us-east-1:123456789012:secret:sonar-jenkins-AbCdEf"


@pytest.fixture
def client():
    return boto3.client(
        "secretsmanager",
        region_name           = "us-east-1",
        aws_access_key_id     = "testing",
        aws_secret_access_key = "testing",
    )


@pytest.fixture
def stubber(client):
    with Stubber(client) as stub:
        yield stub
        stub.assert_no_pending_responses()


def test_get_parses_json_secret(client, stubber):
    stubber.add_response(
        "get_secret_value",
        {"ARN": ARN, "Name": "sonar-jenkins", "SecretString": json.dumps({"username": "jenkins", "password": "p2"})},
        {"SecretId": ARN},
    )

    assert SecretStore(client).get(ARN) == {"username": "jenkins", "password": "p2"}


def test_get_failure_is_a_retrieval_error(client, stubber):
    stubber.add_client_error("get_secret_value", service_error_code="ResourceNotFoundException", service_message="nope")

    with pytest.raises(SecretRetrievalError) as excinfo:
        SecretStore(client).get(ARN)
    assert excinfo.value.target == ARN
    assert "ResourceNotFoundException" in str(excinfo.value)


def test_get_rejects_non_json(client, stubber):
    stubber.add_response("get_secret_value", {"ARN": ARN, "Name": "sonar-jenkins", "SecretString": "hunter2"}, {"SecretId": ARN})

    with pytest.raises(SecretRetrievalError, match="not valid JSON"):
        SecretStore(client).get(ARN)


def test_put_writes_whole_record_once(client, stubber):
    fields = {"username": "jenkins", "password": "p2", "name": "Jenkins", "token": "abc123"}
    stubber.add_response(
        "put_secret_value",
        {"ARN": ARN, "Name": "sonar-jenkins", "VersionId": "EXAMPLE1-90ab-cdef-fedc-ba987EXAMPLE"},
        {"SecretId": ARN, "SecretString": json.dumps(fields)},
    )

    SecretStore(client).put(ARN, fields)


def test_put_failure_is_a_persistence_error(client, stubber):
    stubber.add_client_error("put_secret_value", service_error_code="AccessDeniedException", service_message="denied")

    with pytest.raises(SecretPersistenceError) as excinfo:
        SecretStore(client).put(ARN, {"username": "jenkins", "password": "p2", "token": "abc123"})
    assert "AccessDeniedException" in str(excinfo.value)


def test_admin_credentials_require_username_and_password():
    assert AdminCredentials.from_secret("arn:admin", {"username": "admin", "password": "p1"}).auth == ("admin", "p1")

    with pytest.raises(SecretRetrievalError, match="password"):
        AdminCredentials.from_secret("arn:admin", {"username": "admin"})


def test_with_token_keeps_every_other_field():
    record = ServiceAccountRecord.from_secret(ARN, {"username": "jenkins", "password": "p2", "name": "Jenkins", "token": "old"})

    updated = record.with_token("new")

    assert updated.fields == {"username": "jenkins", "password": "p2", "name": "Jenkins", "token": "new"}
    assert record.token == "old"
    assert updated.reference == ARN


def test_name_defaults_to_username():
    record = ServiceAccountRecord.from_secret(ARN, {"username": "jenkins", "password": "p2"})
    assert record.name == "jenkins"
    assert record.token is None
