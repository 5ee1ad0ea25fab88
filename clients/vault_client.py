"""
HashiCorp Vault client for billing secret management.

Uses AppRole authentication. Fails fast on missing configuration.
All paths scoped to 'billing/' prefix - no escape to other secrets.
"""

import os
import logging
from typing import Dict

import hvac
from hvac.exceptions import InvalidPath, Unauthorized, Forbidden

logger = logging.getLogger(__name__)

# Project scope - all secrets under this path
_SECRET_PREFIX = "billing"

# Singleton instance and cache
_vault_client_instance: "VaultClient | None" = None
_secret_cache: Dict[str, str] = {}


def _ensure_vault_client() -> "VaultClient":
    global _vault_client_instance
    if _vault_client_instance is None:
        _vault_client_instance = VaultClient()
    return _vault_client_instance


def reset_vault_cache() -> None:
    """Forget the singleton client and cached secrets."""
    global _vault_client_instance
    _vault_client_instance = None
    _secret_cache.clear()


class VaultClient:
    """Vault client with AppRole auth and env-based config."""

    def __init__(
        self,
        vault_addr: str | None = None,
        vault_namespace: str | None = None,
    ):
        self.vault_addr = vault_addr or os.getenv("VAULT_ADDR")
        self.vault_namespace = vault_namespace or os.getenv("VAULT_NAMESPACE")
        self.vault_role_id = os.getenv("VAULT_ROLE_ID")
        self.vault_secret_id = os.getenv("VAULT_SECRET_ID")

        if not self.vault_addr:
            raise ValueError("VAULT_ADDR environment variable is required")

        if not self.vault_role_id or not self.vault_secret_id:
            raise ValueError(
                "VAULT_ROLE_ID and VAULT_SECRET_ID environment variables are required"
            )

        client_kwargs = {"url": self.vault_addr}
        if self.vault_namespace:
            client_kwargs["namespace"] = self.vault_namespace

        self.client = hvac.Client(**client_kwargs)
        self._login()

        if not self.client.is_authenticated():
            raise PermissionError("Vault authentication failed")

        logger.info("Vault client initialized: %s", self.vault_addr)

    def _login(self) -> None:
        try:
            auth_response = self.client.auth.approle.login(
                role_id=self.vault_role_id,
                secret_id=self.vault_secret_id,
            )
        except (Unauthorized, Forbidden) as e:
            logger.error("AppRole login rejected: %s", e)
            raise PermissionError(f"AppRole login rejected: {e}") from e
        self.client.token = auth_response["auth"]["client_token"]

    def get_secret(self, path: str, field: str) -> str:
        """
        Retrieve single field from KV v2 secret.

        Path is scoped to the 'billing/' prefix: 'database' reads
        'billing/database'.

        Args:
            path: Secret path relative to billing/ (e.g., 'database')
            field: Field name within secret (e.g., 'url')

        Returns:
            Field value as string.

        Raises:
            PermissionError: Path not accessible or doesn't exist.
            KeyError: Field not found in secret.
        """
        full_path = f"{_SECRET_PREFIX}/{path}"

        try:
            response = self.client.secrets.kv.v2.read_secret_version(
                path=full_path, raise_on_deleted_version=True
            )
        except InvalidPath as e:
            logger.error("Secret path not found: %s", full_path)
            raise PermissionError(f"Secret path '{full_path}' not found in Vault") from e
        except (Unauthorized, Forbidden) as e:
            logger.error("Access denied to secret %s: %s", full_path, e)
            raise PermissionError(f"Access denied to secret '{full_path}': {e}") from e

        secret_data = response["data"]["data"]
        if field not in secret_data:
            raise KeyError(
                f"Field '{field}' not found in secret '{full_path}'. "
                f"Available: {', '.join(sorted(secret_data))}"
            )
        return secret_data[field]


def get_database_url() -> str:
    """
    PostgreSQL connection URL.

    DATABASE_URL in the environment wins; otherwise the value is read from
    Vault once and cached.
    """
    env_url = os.getenv("DATABASE_URL")
    if env_url:
        return env_url

    cache_key = f"{_SECRET_PREFIX}/database/url"
    if cache_key not in _secret_cache:
        _secret_cache[cache_key] = _ensure_vault_client().get_secret("database", "url")
    return _secret_cache[cache_key]
