"""
EC2 instance metadata lookup.

The instance id becomes the "Instance" dimension of every CloudWatch record.
Off EC2 (or with the metadata service unreachable) the sentinel "NA" is used.
"""

import logging
from typing import Optional
from urllib.error import URLError
from urllib.request import Request, urlopen

logger = logging.getLogger("nvidia_cloudwatch.http_client")

METADATA_BASE = "http://169.254.169.254/latest"
UNKNOWN_INSTANCE = "NA"


class MetadataClient:
    """Minimal client for the EC2 instance metadata service (IMDSv2 with v1 fallback)."""

    def __init__(self, base_url: str = METADATA_BASE, timeout: float = 2):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _fetch_token(self) -> str:
        req = Request(
            f"{self.base_url}/api/token",
            headers={"X-aws-ec2-metadata-token-ttl-seconds": "60"},
            method="PUT",
        )
        try:
            with urlopen(req, timeout=self.timeout) as resp:
                return resp.read().decode("utf-8").strip()
        except (URLError, OSError) as e:
            logger.debug("IMDSv2 token unavailable: %s", e)
            return ""

    def get(self, path: str) -> str:
        """GET a metadata path, raising URLError/OSError on failure"""
        token = self._fetch_token()
        headers = {"X-aws-ec2-metadata-token": token} if token else {}
        req = Request(f"{self.base_url}/{path.lstrip('/')}", headers=headers, method="GET")
        with urlopen(req, timeout=self.timeout) as resp:
            return resp.read().decode("utf-8").strip()


def get_instance_id(client: Optional[MetadataClient] = None, timeout: float = 2) -> str:
    """Return the EC2 instance id, or "NA" when not running on EC2.

    timeout bounds each metadata request of the default client.
    """
    client = client or MetadataClient(timeout=timeout)
    try:
        instance_id = client.get("meta-data/instance-id")
    except (URLError, OSError) as e:
        logger.info("instance metadata unavailable (%s), using %s", e, UNKNOWN_INSTANCE)
        return UNKNOWN_INSTANCE
    return instance_id or UNKNOWN_INSTANCE
