# Loads provider API keys from Google Secret Manager at startup.
# Usage:
#   import cinematch.secret_helper as secret_helper; secret_helper.inject_api_keys()
#   (before cinematch.tools is imported, since the tools read keys at import)
#
# For each key:
#  - an existing environment variable wins (local development)
#  - otherwise the secret named by <KEY>_SECRET_NAME in GCP_PROJECT is read
#  - the value is written to os.environ so the rest of the app reads env vars only
#  - failures are logged, not raised, so the app can start in degraded mode

from google.cloud import secretmanager
import os
import logging
from typing import Dict, Optional

_logger = logging.getLogger(__name__)

# env var -> default secret name
API_KEY_SECRETS = {
    "TMDB_API_KEY": "tmdb-api-key",
    "OMDB_API_KEY": "omdb-api-key",
    "GEMINI_API_KEY": "gemini-api-key",
}


def get_secret_from_manager(project_id: str, secret_name: str) -> str:
    client = secretmanager.SecretManagerServiceClient()
    name = f"projects/{project_id}/secrets/{secret_name}/versions/latest"
    response = client.access_secret_version(request={"name": name})
    return response.payload.data.decode("utf-8")


def _secrets_enabled() -> bool:
    # Avoid hanging on credential discovery on machines outside GCP
    is_gcp = os.environ.get("GAE_ENV") or os.environ.get("CLOUD_RUN_SERVICE") or os.environ.get("GOOGLE_CLOUD_PROJECT")
    return bool(is_gcp or os.environ.get("ENABLE_GCP_SECRETS"))


def load_api_key(env_name: str, project_id: Optional[str] = None, secret_name: Optional[str] = None) -> Optional[str]:
    """
    Return the key for ``env_name``. Priority:
      1) the environment variable itself
      2) Secret Manager secret (project_id, secret_name)
    Returns None (and logs) when neither is available.
    """
    env_val = os.environ.get(env_name)
    if env_val:
        _logger.debug("Using %s from environment.", env_name)
        return env_val

    project_id = project_id or os.environ.get("GCP_PROJECT")
    secret_name = secret_name or os.environ.get(f"{env_name[:-len('_API_KEY')]}_SECRET_NAME", API_KEY_SECRETS.get(env_name))

    if not project_id or not secret_name:
        _logger.warning("GCP_PROJECT or secret name not set and no %s env var found.", env_name)
        return None

    if not _secrets_enabled():
        _logger.warning("Not running in GCP and ENABLE_GCP_SECRETS not set. Skipping Secret Manager lookup for %s.", env_name)
        return None

    try:
        key = get_secret_from_manager(project_id, secret_name)
        _logger.info("Loaded %s from Secret Manager.", env_name)
        return key
    except Exception as e:
        _logger.exception("Failed to load %s from Secret Manager: %s", env_name, e)
        return None


def inject_api_keys(project_id: Optional[str] = None) -> Dict[str, bool]:
    """
    Ensure each provider key is in os.environ.

    Returns:
        env var name -> whether the key is now set
    """
    status = {}
    for env_name in API_KEY_SECRETS:
        if os.environ.get(env_name):
            status[env_name] = True
            continue
        key = load_api_key(env_name, project_id=project_id)
        if key:
            os.environ[env_name] = key
        status[env_name] = bool(key)
    return status
