"""boto3 session wrapper shared by the EC2 and S3 adapters."""

import threading
from typing import Any, Optional

import boto3
from botocore.config import Config

from pyclouds.config.schemas import HttpConfig
from pyclouds.domain.base.ports.logging_port import LoggingPort
from pyclouds.infrastructure.adapters.logging_adapter import LoggingAdapter

DEFAULT_REGION = "us-east-1"


class AWSClient:
    """Wrapper for AWS service clients, created on first use."""

    def __init__(
        self,
        region_name: Optional[str] = None,
        identity: Optional[str] = None,
        credential: Optional[str] = None,
        profile_name: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        http_config: Optional[HttpConfig] = None,
        logger: Optional[LoggingPort] = None,
    ) -> None:
        """
        Initialize the client wrapper.

        Args:
            region_name: AWS region; defaults to us-east-1
            identity: Access key id; the default credential chain is used when unset
            credential: Secret access key
            profile_name: Named profile from the shared credentials file
            endpoint_url: Alternative endpoint, e.g. a local emulator
            http_config: Timeouts and retry limits applied to botocore
            logger: Logger for logging messages
        """
        self._logger = logger or LoggingAdapter(__name__)
        http_config = http_config or HttpConfig()
        self.region_name = region_name or DEFAULT_REGION
        self.endpoint_url = endpoint_url
        self.profile_name = profile_name

        self.boto_config = Config(
            region_name=self.region_name,
            retries={"max_attempts": http_config.max_retries, "mode": "adaptive"},
            connect_timeout=http_config.connect_timeout,
            read_timeout=http_config.read_timeout,
            user_agent_extra=http_config.user_agent,
        )
        self.session = boto3.Session(
            aws_access_key_id=identity,
            aws_secret_access_key=credential,
            region_name=self.region_name,
            profile_name=profile_name,
        )

        self._clients: dict[str, Any] = {}
        self._lock = threading.Lock()

        self._logger.info(
            "AWS client initialized with region: %s, profile: %s, retries: %d, timeouts: connect=%ss, read=%ss",
            self.region_name,
            profile_name or "default",
            http_config.max_retries,
            http_config.connect_timeout,
            http_config.read_timeout,
        )

    def client(self, service_name: str) -> Any:
        with self._lock:
            client = self._clients.get(service_name)
            if client is None:
                self._logger.debug("Initializing %s client on first use", service_name)
                client = self.session.client(
                    service_name, config=self.boto_config, endpoint_url=self.endpoint_url
                )
                self._clients[service_name] = client
            return client

    @property
    def ec2_client(self) -> Any:
        """Lazy initialization of EC2 client."""
        return self.client("ec2")

    @property
    def s3_client(self) -> Any:
        """Lazy initialization of S3 client."""
        return self.client("s3")

    def close(self) -> None:
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            client.close()
