"""
Script: promote_tools/registry_login.py
What: Logs in to Artifact Registry, ECR, and Docker Hub for later `skopeo copy` calls.
Doing: Exchanges the GitHub OIDC token for a GCP access token, fetches an ECR token with boto3, and runs `skopeo login` per registry.
Why: The push step writes to all three registries and needs credentials for each.
Goal: Store short-lived registry credentials without long-lived cloud keys where the platform allows it.
"""

from __future__ import annotations

import base64
from typing import Mapping

import boto3
import requests
from botocore.exceptions import BotoCoreError, ClientError

from promote_tools.common import PromoteToolError, optional_env, require_env, skopeo_login
from promote_tools.push_image_tags import DEFAULT_AWS_REGION, ecr_registry_host


STS_TOKEN_URL = "https://sts.googleapis.com/v1/token"
IAM_CREDENTIALS_URL = "https://iamcredentials.googleapis.com/v1"
CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"
IAM_AUDIENCE_PREFIX = "//iam.googleapis.com/"
# Artifact Registry accepts an OAuth access token as the password for this user.
GAR_TOKEN_USERNAME = "oauth2accesstoken"
DOCKERHUB_REGISTRY = "docker.io"
REQUEST_TIMEOUT = 30


def _request_json(
    session: requests.Session,
    method: str,
    url: str,
    *,
    what: str,
    **kwargs,
) -> dict:
    # Error messages name the step (`what`) and status only, never tokens.
    try:
        response = session.request(method, url, timeout=REQUEST_TIMEOUT, **kwargs)
        response.raise_for_status()
        return response.json()
    except requests.exceptions.JSONDecodeError as exc:
        raise PromoteToolError(f"{what}: expected JSON response from {url}") from exc
    except requests.exceptions.HTTPError as exc:
        status = exc.response.status_code if exc.response is not None else "HTTPError"
        raise PromoteToolError(f"{what} failed ({status}): {url}") from exc
    except requests.exceptions.RequestException as exc:
        raise PromoteToolError(f"{what} request error: {exc}") from exc


def provider_resource_name(workload_identity_provider: str) -> str:
    """
    Return the provider as `projects/.../providers/<id>`.

    Accepts both the bare resource name and the `//iam.googleapis.com/` form.
    """
    name = workload_identity_provider.strip()
    if name.startswith(IAM_AUDIENCE_PREFIX):
        name = name[len(IAM_AUDIENCE_PREFIX):]
    if not name.startswith("projects/") or "/providers/" not in name:
        raise PromoteToolError(
            f"Unexpected workload identity provider format: {workload_identity_provider}"
        )
    return name


def github_oidc_token(
    session: requests.Session,
    *,
    request_url: str,
    request_token: str,
    audience: str,
) -> str:
    """
    Ask the Actions runner for an OIDC token.

    The runner only sets the request URL/token when the workflow grants
    `id-token: write`.
    """
    payload = _request_json(
        session,
        "GET",
        request_url,
        what="GitHub OIDC token request",
        params={"audience": audience},
        headers={"Authorization": f"bearer {request_token}"},
    )
    token = str(payload.get("value") or "")
    if not token:
        raise PromoteToolError("GitHub OIDC token response did not contain a token")
    return token


def exchange_federated_token(session: requests.Session, *, provider: str, subject_token: str) -> str:
    """Trade the GitHub OIDC token for a federated GCP access token at Google STS."""
    payload = _request_json(
        session,
        "POST",
        STS_TOKEN_URL,
        what="GCP STS token exchange",
        json={
            "audience": f"{IAM_AUDIENCE_PREFIX}{provider}",
            "grantType": "urn:ietf:params:oauth:grant-type:token-exchange",
            "requestedTokenType": "urn:ietf:params:oauth:token-type:access_token",
            "scope": CLOUD_PLATFORM_SCOPE,
            "subjectTokenType": "urn:ietf:params:oauth:token-type:jwt",
            "subjectToken": subject_token,
        },
    )
    token = str(payload.get("access_token") or "")
    if not token:
        raise PromoteToolError("GCP STS response did not contain an access token")
    return token


def impersonate_service_account(
    session: requests.Session,
    *,
    federated_token: str,
    service_account_email: str,
    lifetime_seconds: int = 3600,
) -> str:
    """Use the federated token to mint a short-lived service-account access token."""
    url = (
        f"{IAM_CREDENTIALS_URL}/projects/-/serviceAccounts/"
        f"{service_account_email}:generateAccessToken"
    )
    payload = _request_json(
        session,
        "POST",
        url,
        what="Service account impersonation",
        headers={"Authorization": f"Bearer {federated_token}"},
        json={"scope": [CLOUD_PLATFORM_SCOPE], "lifetime": f"{lifetime_seconds}s"},
    )
    token = str(payload.get("accessToken") or "")
    if not token:
        raise PromoteToolError(
            f"Impersonation response for {service_account_email} did not contain an access token"
        )
    return token


def gar_access_token(
    session: requests.Session,
    *,
    workload_identity_provider: str,
    service_account_email: str,
    oidc_request_url: str,
    oidc_request_token: str,
) -> str:
    """Run the full workload identity federation flow and return a GCP access token."""
    provider = provider_resource_name(workload_identity_provider)
    oidc_token = github_oidc_token(
        session,
        request_url=oidc_request_url,
        request_token=oidc_request_token,
        audience=f"https://iam.googleapis.com/{provider}",
    )
    federated_token = exchange_federated_token(session, provider=provider, subject_token=oidc_token)
    return impersonate_service_account(
        session,
        federated_token=federated_token,
        service_account_email=service_account_email,
    )


def registry_host(repository: str) -> str:
    """Return the host part of `host/path/...`."""
    host = repository.strip().split("/", 1)[0]
    if not host:
        raise PromoteToolError(f"Cannot read registry host from {repository!r}")
    return host


def ecr_credentials(ecr_client, account_num: str) -> tuple[str, str]:
    """
    Return `(username, password)` for one ECR registry.

    ECR hands out a base64 `AWS:<password>` pair valid for twelve hours.
    """
    try:
        response = ecr_client.get_authorization_token(registryIds=[account_num])
    except (BotoCoreError, ClientError) as exc:
        raise PromoteToolError(f"Failed to get ECR authorization token for {account_num}: {exc}") from exc

    auth_data: list[Mapping] = response.get("authorizationData") or []
    if not auth_data:
        raise PromoteToolError(f"ECR returned no authorization data for {account_num}")
    encoded = str(auth_data[0].get("authorizationToken") or "")
    try:
        decoded = base64.b64decode(encoded).decode("utf-8")
    except ValueError as exc:
        raise PromoteToolError("ECR authorization token is not valid base64") from exc
    username, sep, password = decoded.partition(":")
    if not sep or not password:
        raise PromoteToolError("ECR authorization token is not a user:password pair")
    return username, password


def login_gar() -> None:
    # `gar-auth` equivalent: no stored GCP key, only the runner's OIDC token.
    workload_identity_provider = require_env("GCP_WORKLOAD_IDENTITY_PROVIDER")
    service_account_email = require_env("GCP_SERVICE_ACCOUNT_EMAIL")
    gar_host = registry_host(require_env("GCP_DOCKER_ARTIFACT_REPO"))
    oidc_request_url = require_env("ACTIONS_ID_TOKEN_REQUEST_URL")
    oidc_request_token = require_env("ACTIONS_ID_TOKEN_REQUEST_TOKEN")

    with requests.Session() as session:
        access_token = gar_access_token(
            session,
            workload_identity_provider=workload_identity_provider,
            service_account_email=service_account_email,
            oidc_request_url=oidc_request_url,
            oidc_request_token=oidc_request_token,
        )

    skopeo_login(gar_host, username=GAR_TOKEN_USERNAME, password=access_token)
    print(f"Logged in to {gar_host} as {service_account_email}")


def login_ecr() -> None:
    account_num = require_env("AWS_ECR_ACCOUNT_NUM")
    region = optional_env("AWS_REGION", DEFAULT_AWS_REGION)
    # boto3 reads these from the environment; require them here for a clear error.
    access_key_id = require_env("AWS_ACCESS_KEY_ID")
    secret_access_key = require_env("AWS_SECRET_ACCESS_KEY")

    ecr_client = boto3.client(
        "ecr",
        region_name=region,
        aws_access_key_id=access_key_id,
        aws_secret_access_key=secret_access_key,
    )
    username, password = ecr_credentials(ecr_client, account_num)

    registry = ecr_registry_host(account_num, region)
    skopeo_login(registry, username=username, password=password)
    print(f"Logged in to {registry}")


def login_dockerhub() -> None:
    username = require_env("DOCKERHUB_USERNAME")
    password = require_env("DOCKERHUB_PASSWORD")
    skopeo_login(DOCKERHUB_REGISTRY, username=username, password=password)
    print(f"Logged in to {DOCKERHUB_REGISTRY} as {username}")


if __name__ == "__main__":
    login_gar()
    login_ecr()
    login_dockerhub()
