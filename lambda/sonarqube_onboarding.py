"""
sonarqube_onboarding.py — Lambda function that onboards SonarQube service accounts.
Deployed by the Pulumi program; invoked once per deployment (or on a schedule).

For every configured service-account secret it:
  1. creates the user (an existing user counts as created)
  2. grants the scan permission
  3. rotates the user's token
  4. writes the new token back into the same secret

Configuration comes from the environment, see onboarding_config.py.
"""

import logging
import sys
import time

import boto3
import requests

from onboarding_config import OnboardingConfig
from onboarding_errors import OnboardingError, OnboardingFailed, ServiceUnavailable
from polling import poll_until
from secret_store import SecretStore
from sonar_api import SonarClient

logger = logging.getLogger()
logger.setLevel(logging.INFO)

secretsmanager = boto3.client("secretsmanager")


# ─────────────────────────────────────────────
# TOKEN PRINCIPALS
# Each returns (basic auth, login param) for the token calls.
# ─────────────────────────────────────────────
def service_account_principal(admin, account):
    return account.auth, None


def admin_principal(admin, account):
    return admin.auth, account.username


TOKEN_PRINCIPALS = {
    "service_account": service_account_principal,
    "admin":           admin_principal,
}


def token_name(username):
    return f"{username}-token"


def wait_for_service(sonar, attempts, delay, mode="strict", sleep=time.sleep):
    logger.info(f"Waiting for SonarQube at {sonar.base_url} ({attempts} attempts, {delay}s apart)")
    probe = sonar.is_up if mode == "strict" else sonar.is_responding
    if not poll_until(probe, attempts, delay, retry_on=(requests.RequestException,), sleep=sleep, label="SonarQube health"):
        raise ServiceUnavailable(f"SonarQube did not become available after {attempts} attempts", target=sonar.base_url)
    logger.info("SonarQube is available")


class OnboardingOrchestrator:
    def __init__(self, config, sonar, secrets, sleep=time.sleep):
        self.config    = config
        self.sonar     = sonar
        self.secrets   = secrets
        self.sleep     = sleep
        self.principal = TOKEN_PRINCIPALS[config.token_principal]

    def run(self):
        admin = self.secrets.get_admin(self.config.admin_secret_id)

        wait_for_service(
            self.sonar,
            self.config.health_check_attempts,
            self.config.health_check_delay,
            mode  = self.config.health_check_mode,
            sleep = self.sleep,
        )

        onboarded = []
        failures  = []
        for reference in self.config.service_account_secret_ids:
            try:
                onboarded.append(self.onboard(admin, reference))
            except OnboardingError as exc:
                logger.error(f"Onboarding failed for {reference}: {exc}")
                if self.config.fail_fast:
                    raise
                failures.append((reference, exc))

        if failures:
            raise OnboardingFailed(failures)

        logger.info(f"Service accounts processed successfully: {', '.join(onboarded)}")
        return onboarded

    def onboard(self, admin, reference):
        account = self.secrets.get_service_account(reference)
        login   = account.username

        logger.info(f"Creating user {login}...")
        if self.sonar.create_user(admin.auth, login, account.name, account.password):
            logger.info(f"User {login} created")
        else:
            logger.info(f"User {login} already exists")

        if self.config.permission:
            self.sonar.add_user_permission(admin.auth, login, self.config.permission)
            logger.info(f"Permission {self.config.permission!r} granted to user {login}")

        auth, on_behalf_of = self.principal(admin, account)
        name = token_name(login)
        if self.config.rotate_tokens:
            # The stored token stops working here; if generate or persist fails
            # below, the secret keeps a revoked token until the next run.
            self.sonar.revoke_token(auth, name, login=on_behalf_of)
            logger.info(f"Token {name} revoked for user {login}; the stored token is invalid until the new one is saved")
        token = self.sonar.generate_token(auth, name, login=on_behalf_of)
        logger.info(f"Token {name} generated for user {login}")

        self.secrets.save_service_account(account.with_token(token))
        return login


def handler(event, context):
    config = OnboardingConfig.from_env()
    logger.setLevel(config.log_level)
    orchestrator = OnboardingOrchestrator(
        config,
        SonarClient(config.sonar_url, timeout=config.request_timeout),
        SecretStore(secretsmanager),
    )
    accounts = orchestrator.run()
    return {"status": "ok", "accounts": accounts}


def main():
    logging.basicConfig(format="%(asctime)s %(levelname)s %(message)s")
    try:
        handler({}, None)
    except OnboardingError as exc:
        logger.error(str(exc))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
