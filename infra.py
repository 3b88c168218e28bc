"""
Pulumi resources for the SonarQube onboarding Lambda.

Only the onboarding function's own resources live here: the credential secrets,
the function role, the function, and the one-shot invocation that runs it after
every deployment of the stack.
"""

import json

import pulumi
import pulumi_aws as aws

LAMBDA_HANDLER = "sonarqube_onboarding.handler"
LAMBDA_RUNTIME = "python3.12"
LAMBDA_TIMEOUT = 900   # 15 min, the wall-clock ceiling for one onboarding run
PASSWORD_LENGTH = 12


def secret_access_policy(admin_arn, account_arns):
    """Read access to the admin secret, read/write access to every service account secret."""
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect":   "Allow",
                "Action":   ["secretsmanager:GetSecretValue"],
                "Resource": [admin_arn] + list(account_arns),
            },
            {
                "Effect":   "Allow",
                "Action":   ["secretsmanager:PutSecretValue"],
                "Resource": list(account_arns),
            },
        ],
    })


def onboarding_environment(sonar_url, admin_arn, account_arns, permission="scan", token_principal="service_account"):
    return {
        "SONAR_URL":                         sonar_url.rstrip("/"),
        "SONAR_ADMIN_SECRET_ARN":            admin_arn,
        "SONAR_SERVICE_ACCOUNT_SECRET_ARNS": ",".join(account_arns),
        "SONAR_SERVICE_ACCOUNT_PERMISSION":  permission,
        "SONAR_TOKEN_PRINCIPAL":             token_principal,
    }


def permission_setting(value, default="scan"):
    """Unset falls back to ``default``; an empty string is kept and disables the grant."""
    return default if value is None else value


def service_account_template(username, display_name, password):
    return json.dumps({"username": username, "name": display_name, "password": password})


def generated_password(length=PASSWORD_LENGTH):
    """A fresh alphanumeric password from Secrets Manager, regenerated on every `pulumi up`."""
    return aws.secretsmanager.get_random_password_output(
        password_length     = length,
        exclude_punctuation = True,
    ).random_password


class SonarOnboarding:
    """
    Declares the onboarding stack.

    ``service_accounts`` maps a short key (e.g. ``jenkins``) to a dict with
    ``username``, ``name`` and optionally ``password`` (a plain string or a secret
    Output). Missing passwords, including ``admin_password``, are generated; their
    secret versions then ignore later changes so the stored password stays put.
    """

    def __init__(
        self,
        prefix,
        sonar_url,
        admin_username,
        service_accounts,
        bundle_path,
        admin_password=None,
        tags=None,
        permission="scan",
        token_principal="service_account",
        subnet_ids=None,
        security_group_ids=None,
    ):
        tags = tags or {}

        # ── secrets ──────────────────────────────────────────────────
        self.admin_secret = aws.secretsmanager.Secret(
            f"{prefix}-admin",
            name        = f"{prefix}/admin",
            description = "SonarQube admin credentials",
            tags        = tags,
        )
        admin_opts = None
        if admin_password is None:
            admin_password = generated_password()
            admin_opts = pulumi.ResourceOptions(ignore_changes=["secret_string"])
        self.admin_version = aws.secretsmanager.SecretVersion(
            f"{prefix}-admin-version",
            secret_id     = self.admin_secret.id,
            secret_string = pulumi.Output.secret(
                pulumi.Output.all(admin_username, admin_password).apply(
                    lambda a: json.dumps({"username": a[0], "password": a[1]})
                )
            ),
            opts = admin_opts,
        )

        self.account_secrets  = {}
        self.account_versions = {}
        for key, account in service_accounts.items():
            secret = aws.secretsmanager.Secret(
                f"{prefix}-{key}",
                name        = f"{prefix}/{key}",
                description = f"SonarQube service account: {account['username']}",
                tags        = tags,
            )
            password = account.get("password")
            if password is None:
                password = generated_password()
            self.account_versions[key] = aws.secretsmanager.SecretVersion(
                f"{prefix}-{key}-version",
                secret_id     = secret.id,
                secret_string = pulumi.Output.secret(
                    pulumi.Output.from_input(password).apply(
                        lambda password, a=account: service_account_template(a["username"], a["name"], password)
                    )
                ),
                # the onboarding run adds "token"; don't reset it on every update
                opts = pulumi.ResourceOptions(ignore_changes=["secret_string"]),
            )
            self.account_secrets[key] = secret

        account_arns = [secret.arn for secret in self.account_secrets.values()]

        # ── IAM ──────────────────────────────────────────────────────
        self.role = aws.iam.Role(
            f"{prefix}-role",
            assume_role_policy = json.dumps({
                "Version": "2012-10-17",
                "Statement": [{"Effect": "Allow", "Principal": {"Service": "lambda.amazonaws.com"}, "Action": "sts:AssumeRole"}],
            }),
            tags = tags,
        )
        aws.iam.RolePolicyAttachment(
            f"{prefix}-basic-exec",
            role       = self.role.name,
            policy_arn = "arn:aws:iam::aws:policy/service-role/AWSLambdaBasicExecutionRole",
        )
        if subnet_ids:
            aws.iam.RolePolicyAttachment(
                f"{prefix}-vpc-exec",
                role       = self.role.name,
                policy_arn = "arn:aws:iam::aws:policy/service-role/AWSLambdaVPCAccessExecutionRole",
            )
        self.policy = aws.iam.RolePolicy(
            f"{prefix}-secrets-policy",
            role   = self.role.id,
            policy = pulumi.Output.all(self.admin_secret.arn, *account_arns).apply(
                lambda arns: secret_access_policy(arns[0], arns[1:])
            ),
        )

        # ── function ─────────────────────────────────────────────────
        vpc_config = None
        if subnet_ids:
            vpc_config = {"subnet_ids": subnet_ids, "security_group_ids": security_group_ids or []}

        self.function = aws.lambda_.Function(
            f"{prefix}-function",
            name        = f"{prefix}-onboarding",
            role        = self.role.arn,
            runtime     = LAMBDA_RUNTIME,
            handler     = LAMBDA_HANDLER,
            timeout     = LAMBDA_TIMEOUT,
            memory_size = 256,
            code        = pulumi.FileArchive(bundle_path),
            vpc_config  = vpc_config,
            environment = {
                "variables": pulumi.Output.all(self.admin_secret.arn, *account_arns).apply(
                    lambda arns: onboarding_environment(sonar_url, arns[0], arns[1:], permission, token_principal)
                ),
            },
            tags = tags,
        )

        # Runs the function synchronously once per create/trigger change.
        self.invocation = aws.lambda_.Invocation(
            f"{prefix}-run",
            function_name = self.function.name,
            input         = json.dumps({"source": "pulumi"}),
            triggers      = {"sonar_url": sonar_url, "accounts": ",".join(sorted(service_accounts))},
            opts          = pulumi.ResourceOptions(depends_on=[self.function, self.policy]),
        )
