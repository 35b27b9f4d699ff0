"""GCP Secret Manager client wrapper, used as an optional source catalog."""
import os
import logging
from typing import Optional, Dict, Any

from google.api_core import exceptions as gcp_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import secretmanager

from .errors import CatalogError

logger = logging.getLogger(__name__)


class GCPSecretClient:
    """Wrapper around GCP Secret Manager client."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self._client = None

    @property
    def client(self) -> secretmanager.SecretManagerServiceClient:
        """Lazy-initialize client."""
        if self._client is None:
            auth = self.config.get("authentication") or {}
            service_account_path = auth.get("service_account_path")
            if service_account_path:
                os.environ['GOOGLE_APPLICATION_CREDENTIALS'] = service_account_path
                logger.info(f"Set GOOGLE_APPLICATION_CREDENTIALS from config: {service_account_path}")
            self._client = secretmanager.SecretManagerServiceClient()
        return self._client

    def get_project_id(self) -> Optional[str]:
        """
        Get GCP project ID from environment variable or config.

        Priority order:
        1. GCP_PROJECT environment variable (allows override)
        2. Config file ``gcp.project_id``

        Returns:
            Project ID string, or None if not found
        """
        gcp_project_env = os.getenv("GCP_PROJECT")
        if gcp_project_env:
            logger.debug(f"Using GCP_PROJECT from environment: {gcp_project_env}")
            return gcp_project_env

        project_id = (self.config.get("gcp") or {}).get("project_id")
        if project_id:
            logger.debug(f"Using project_id from config: {project_id}")
            return project_id

        logger.error("Project ID not found. Please set GCP_PROJECT environment variable or configure gcp.project_id in config file")
        return None

    def fetch_secret(self, secret_name: str, project_id: str) -> Optional[bytes]:
        """
        Fetch the latest version of a secret from GCP Secret Manager.

        Args:
            secret_name: Name of the secret
            project_id: GCP project ID

        Returns:
            Raw payload bytes (not decoded), or None if the secret does not exist

        Raises:
            CatalogError: For any failure other than the secret not existing
        """
        name = f"projects/{project_id}/secrets/{secret_name}/versions/latest"
        try:
            response = self.client.access_secret_version(request={"name": name})
        except gcp_exceptions.NotFound:
            logger.debug(f"GCP secret {secret_name} not found in project {project_id}")
            return None
        except gcp_exceptions.GoogleAPICallError as e:
            raise CatalogError(f"GCP fetch failed for {secret_name}: {e.message}")
        except auth_exceptions.DefaultCredentialsError as e:
            raise CatalogError(f"GCP credentials not configured: {e}")
        return response.payload.data
