"""
onboarding_errors.py — failure taxonomy for SonarQube onboarding.

Every error carries the operation that failed, the target it failed against
(a secret reference, a login, a URL) and, where there is one, the upstream
HTTP status and message.
"""


class OnboardingError(Exception):
    operation = "onboarding"

    def __init__(self, message, target=None, status_code=None, detail=None):
        self.message     = message
        self.target      = target
        self.status_code = status_code
        self.detail      = detail
        super().__init__(self._format())

    def _format(self):
        parts = [f"{self.operation}: {self.message}"]
        if self.target:
            parts.append(f"target={self.target}")
        if self.status_code is not None:
            parts.append(f"status={self.status_code}")
        if self.detail:
            parts.append(f"detail={self.detail}")
        return " | ".join(parts)


class ConfigurationError(OnboardingError):
    operation = "configuration"

    def __init__(self, problems):
        self.problems = list(problems)
        super().__init__("; ".join(self.problems))


class ServiceUnavailable(OnboardingError):
    operation = "health_check"


class SecretRetrievalError(OnboardingError):
    operation = "read_secret"


class AccountProvisioningError(OnboardingError):
    operation = "create_user"


class PermissionGrantError(OnboardingError):
    operation = "grant_permission"


class TokenGenerationError(OnboardingError):
    operation = "generate_token"


class SecretPersistenceError(OnboardingError):
    operation = "persist_secret"


class OnboardingFailed(OnboardingError):
    """Raised once all accounts were attempted and at least one failed."""

    operation = "onboard_accounts"

    def __init__(self, failures):
        # failures: list of (secret reference, OnboardingError)
        self.failures = list(failures)
        refs = ", ".join(ref for ref, _ in self.failures)
        super().__init__(
            f"{len(self.failures)} service account(s) failed: {refs}",
            detail="; ".join(str(exc) for _, exc in self.failures),
        )
