"""
SonarQube Onboarding - Jenkins + CodeBuild service accounts
Pulumi program that deploys the onboarding Lambda and runs it once per deployment.

The SonarQube service itself is provisioned elsewhere; this stack only needs its URL.
Build the function bundle before `pulumi up`:

    pip install -r lambda/requirements.txt -t build/onboarding
    cp lambda/*.py build/onboarding/
"""

import pulumi

from infra import SonarOnboarding, permission_setting

# ─────────────────────────────────────────────
# CONFIG
# ─────────────────────────────────────────────
cfg = pulumi.Config()
env             = cfg.get("env")             or "dev"
project         = cfg.get("project")         or "sonarqube"
sonar_url       = cfg.require("sonarUrl")
bundle_path     = cfg.get("lambdaBundle")    or "./build/onboarding"
permission      = permission_setting(cfg.get("permission"))
token_principal = cfg.get("tokenPrincipal")  or "service_account"
admin_username  = cfg.get("adminUsername")   or "admin"
admin_password  = cfg.get_secret("adminPassword")    # generated when unset
subnet_ids      = cfg.get_object("subnetIds")        or []
security_groups = cfg.get_object("securityGroupIds") or []

tags = {
    "Project":     project,
    "Environment": env,
    "ManagedBy":   "pulumi",
    "Component":   "sonarqube-onboarding",
}

service_accounts = {
    "jenkins": {
        "username": cfg.get("jenkinsUsername") or "jenkins",
        "name":     "Jenkins Service Account",
    },
    "codebuild": {
        "username": cfg.get("codebuildUsername") or "codebuild",
        "name":     "CodeBuild Service Account",
    },
}

# ─────────────────────────────────────────────
# ONBOARDING
# ─────────────────────────────────────────────
onboarding = SonarOnboarding(
    f"{project}-{env}",
    sonar_url          = sonar_url,
    admin_username     = admin_username,
    admin_password     = admin_password,
    service_accounts   = service_accounts,
    bundle_path        = bundle_path,
    tags               = tags,
    permission         = permission,
    token_principal    = token_principal,
    subnet_ids         = subnet_ids,
    security_group_ids = security_groups,
)

# ─────────────────────────────────────────────
# OUTPUTS
# ─────────────────────────────────────────────
pulumi.export("onboarding_function",  onboarding.function.name)
pulumi.export("admin_secret_arn",     onboarding.admin_secret.arn)
pulumi.export("jenkins_secret_arn",   onboarding.account_secrets["jenkins"].arn)
pulumi.export("codebuild_secret_arn", onboarding.account_secrets["codebuild"].arn)
pulumi.export("onboarding_result",    onboarding.invocation.result)
