"""
onboarding_config.py — environment-driven settings for the onboarding Lambda.

Environment variables:
  SONAR_URL                          — SonarQube base URL (required)
  SONAR_ADMIN_SECRET_ARN             — admin credential secret (required)
  SONAR_SERVICE_ACCOUNT_SECRET_ARNS  — comma-separated service-account secrets
  SONAR_JENKINS_SECRET_ARN           — single-account forms, appended after the
  SONAR_CODEBUILD_SECRET_ARN           list above in this order
  SONAR_SERVICE_ACCOUNT_SECRET_ARN
  SONAR_SERVICE_ACCOUNT_PERMISSION   — permission to grant, "" to skip (default scan)
  SONAR_TOKEN_PRINCIPAL              — service_account | admin
  SONAR_ROTATE_TOKENS                — revoke the previous token before generating
  SONAR_HEALTH_CHECK_MODE            — strict | permissive
  SONAR_HEALTH_CHECK_ATTEMPTS        — default 30
  SONAR_HEALTH_CHECK_DELAY_SECONDS   — default 10
  SONAR_REQUEST_TIMEOUT_SECONDS      — default 10
  SONAR_FAIL_FAST                    — stop at the first failed account
  LOG_LEVEL                          — DEBUG | INFO | WARNING | ERROR | CRITICAL
"""

import math
import os
from dataclasses import dataclass
from typing import Optional, Tuple

from onboarding_errors import ConfigurationError

TOKEN_PRINCIPALS    = ("service_account", "admin")
HEALTH_CHECK_MODES  = ("strict", "permissive")
LOG_LEVELS          = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

SINGLE_ACCOUNT_VARS = (
    "SONAR_JENKINS_SECRET_ARN",
    "SONAR_CODEBUILD_SECRET_ARN",
    "SONAR_SERVICE_ACCOUNT_SECRET_ARN",
)

_TRUE  = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


@dataclass(frozen=True)
class OnboardingConfig:
    sonar_url:                  str
    admin_secret_id:            str
    service_account_secret_ids: Tuple[str, ...]
    permission:                 Optional[str] = "scan"
    token_principal:            str   = "service_account"
    rotate_tokens:              bool  = True
    health_check_mode:          str   = "strict"
    health_check_attempts:      int   = 30
    health_check_delay:         float = 10.0
    request_timeout:            float = 10.0
    fail_fast:                  bool  = False
    log_level:                  str   = "INFO"

    @classmethod
    def from_env(cls, environ=None):
        """Build a config from ``environ`` (default ``os.environ``), reporting every problem at once."""
        env = os.environ if environ is None else environ
        problems = []

        sonar_url = env.get("SONAR_URL", "").strip().rstrip("/")
        if not sonar_url:
            problems.append("SONAR_URL must be set")

        admin_secret_id = env.get("SONAR_ADMIN_SECRET_ARN", "").strip()
        if not admin_secret_id:
            problems.append("SONAR_ADMIN_SECRET_ARN must be set")

        account_ids = _service_account_ids(env)
        if not account_ids:
            names = ", ".join(("SONAR_SERVICE_ACCOUNT_SECRET_ARNS",) + SINGLE_ACCOUNT_VARS)
            problems.append(f"at least one of {names} must be set")

        permission = env.get("SONAR_SERVICE_ACCOUNT_PERMISSION", "scan").strip() or None

        token_principal = env.get("SONAR_TOKEN_PRINCIPAL", "service_account").strip().lower()
        if token_principal not in TOKEN_PRINCIPALS:
            problems.append(f"SONAR_TOKEN_PRINCIPAL must be one of {', '.join(TOKEN_PRINCIPALS)}, got {token_principal!r}")

        health_check_mode = env.get("SONAR_HEALTH_CHECK_MODE", "strict").strip().lower()
        if health_check_mode not in HEALTH_CHECK_MODES:
            problems.append(f"SONAR_HEALTH_CHECK_MODE must be one of {', '.join(HEALTH_CHECK_MODES)}, got {health_check_mode!r}")

        attempts        = _number(env, "SONAR_HEALTH_CHECK_ATTEMPTS", 30, int, problems, minimum=1)
        delay           = _number(env, "SONAR_HEALTH_CHECK_DELAY_SECONDS", 10.0, float, problems)
        request_timeout = _number(env, "SONAR_REQUEST_TIMEOUT_SECONDS", 10.0, float, problems, minimum=0.001)
        rotate_tokens   = _flag(env, "SONAR_ROTATE_TOKENS", True, problems)
        fail_fast       = _flag(env, "SONAR_FAIL_FAST", False, problems)

        log_level = env.get("LOG_LEVEL", "INFO").strip().upper() or "INFO"
        if log_level not in LOG_LEVELS:
            problems.append(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {log_level!r}")

        if problems:
            raise ConfigurationError(problems)

        return cls(
            sonar_url                  = sonar_url,
            admin_secret_id            = admin_secret_id,
            service_account_secret_ids = account_ids,
            permission                 = permission,
            token_principal            = token_principal,
            rotate_tokens              = rotate_tokens,
            health_check_mode          = health_check_mode,
            health_check_attempts      = attempts,
            health_check_delay         = delay,
            request_timeout            = request_timeout,
            fail_fast                  = fail_fast,
            log_level                  = log_level,
        )


def _service_account_ids(env):
    ids = [item.strip() for item in env.get("SONAR_SERVICE_ACCOUNT_SECRET_ARNS", "").split(",")]
    ids += [env.get(name, "").strip() for name in SINGLE_ACCOUNT_VARS]

    ordered = []
    for secret_id in ids:
        if secret_id and secret_id not in ordered:
            ordered.append(secret_id)
    return tuple(ordered)


def _number(env, name, default, kind, problems, minimum=0):
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = kind(raw)
    except ValueError:
        problems.append(f"{name} must be a number, got {raw!r}")
        return default
    if not math.isfinite(value):
        problems.append(f"{name} must be a finite number, got {raw!r}")
        return default
    if value < minimum:
        problems.append(f"{name} must be >= {minimum}, got {raw!r}")
        return default
    return value


def _flag(env, name, default, problems):
    raw = env.get(name, "").strip().lower()
    if not raw:
        return default
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    problems.append(f"{name} must be true or false, got {raw!r}")
    return default
