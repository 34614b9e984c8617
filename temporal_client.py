"""Temporal client factory.

Creates connections to Temporal Cloud (API key or mTLS) or to a local
development server, using credentials from the environment.
"""

import os
from pathlib import Path
from typing import Union

# Load .env file if it exists
from dotenv import load_dotenv
env_path = Path(__file__).resolve().parent / ".env"
if env_path.exists():
    load_dotenv(env_path)

from temporalio.client import Client
from temporalio.service import TLSConfig


def _tls_config() -> Union[bool, TLSConfig]:
    """mTLS when a client certificate and key are configured, plain TLS otherwise."""
    cert_path = os.getenv("TEMPORAL_CERT_PATH")
    key_path = os.getenv("TEMPORAL_KEY_PATH")
    if not cert_path:
        return True
    if not key_path:
        raise ValueError("TEMPORAL_KEY_PATH must be set together with TEMPORAL_CERT_PATH")
    return TLSConfig(
        client_cert=Path(cert_path).read_bytes(),
        client_private_key=Path(key_path).read_bytes(),
    )


async def get_temporal_client() -> Client:
    """Create and return a Temporal client.

    Reads configuration from environment variables:
    - TEMPORAL_ENDPOINT: Temporal endpoint (e.g., "temporal.example.com:7233" or "localhost:7233")
    - TEMPORAL_NAMESPACE: Namespace (default "default")
    - TEMPORAL_API_KEY: Cloud API key
    - TEMPORAL_CERT_PATH / TEMPORAL_KEY_PATH: Client certificate and key (mTLS)

    Without an API key or certificate the client connects without TLS
    (local development server).

    Raises:
        ValueError: If TEMPORAL_ENDPOINT is missing
    """
    endpoint = os.getenv("TEMPORAL_ENDPOINT")
    namespace = os.getenv("TEMPORAL_NAMESPACE", "default")
    api_key = os.getenv("TEMPORAL_API_KEY")

    if not endpoint:
        raise ValueError(
            "TEMPORAL_ENDPOINT environment variable not set. "
            "Set to your Temporal endpoint (e.g., 'temporal.example.com:7233' or 'localhost:7233')"
        )

    if not api_key and not os.getenv("TEMPORAL_CERT_PATH"):
        return await Client.connect(endpoint, namespace=namespace)

    return await Client.connect(
        endpoint,
        namespace=namespace,
        tls=_tls_config(),
        api_key=api_key,
    )
