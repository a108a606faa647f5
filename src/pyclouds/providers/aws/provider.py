"""Registration of the EC2 and S3 providers."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pyclouds.application.blobstore.local_blob_store import LocalBlobStore
from pyclouds.application.compute.compute_service import ComputeService
from pyclouds.domain.provider.metadata import ApiMetadata, ContextView, ProviderMetadata
from pyclouds.providers.aws.aws_client import AWSClient
from pyclouds.providers.aws.ec2_compute_adapter import EC2ComputeServiceAdapter
from pyclouds.providers.aws.s3_storage_strategy import S3StorageStrategy

if TYPE_CHECKING:
    from pyclouds.context import CloudContext
    from pyclouds.infrastructure.registry.provider_registry import ProviderRegistry

EC2_API = ApiMetadata(
    id="ec2",
    name="Amazon Elastic Compute Cloud (EC2) API",
    version="2016-11-15",
    default_endpoint="https://ec2.us-east-1.amazonaws.com",
    identity_name="Access Key ID",
    credential_name="Secret Access Key",
    documentation="https://docs.aws.amazon.com/AWSEC2/latest/APIReference",
    default_properties={"aws.region": "us-east-1", "aws.image_owners": ["self"]},
    views=frozenset({ContextView.COMPUTE}),
)

S3_API = ApiMetadata(
    id="s3",
    name="Amazon Simple Storage Service (S3) API",
    version="2006-03-01",
    default_endpoint="https://s3.amazonaws.com",
    identity_name="Access Key ID",
    credential_name="Secret Access Key",
    documentation="https://docs.aws.amazon.com/AmazonS3/latest/API",
    default_properties={"aws.region": "us-east-1"},
    views=frozenset({ContextView.BLOBSTORE}),
)

_AWS_ISO3166 = ("US-VA", "US-OH", "US-CA", "US-OR", "IE", "DE-HE", "GB-LND", "JP-13", "SG", "AU-NSW", "BR-SP")

EC2_PROVIDER = ProviderMetadata(
    id="aws-ec2",
    name="Amazon Elastic Compute Cloud (EC2)",
    api=EC2_API,
    homepage="https://aws.amazon.com/ec2",
    console="https://console.aws.amazon.com/ec2/home",
    iso3166_codes=_AWS_ISO3166,
)

S3_PROVIDER = ProviderMetadata(
    id="aws-s3",
    name="Amazon Simple Storage Service (S3)",
    api=S3_API,
    homepage="https://aws.amazon.com/s3",
    console="https://s3.console.aws.amazon.com/s3/home",
    iso3166_codes=_AWS_ISO3166,
)


def create_aws_client(context: CloudContext) -> AWSClient:
    # an explicit endpoint targets an emulator; boto3 resolves the real ones
    client = AWSClient(
        region_name=context.get_property("aws.region"),
        identity=context.identity,
        credential=context.credential,
        profile_name=context.get_property("aws.profile"),
        endpoint_url=context.settings.endpoint,
        http_config=context.config.http,
    )
    context.add_to_close(client)
    return client


def create_ec2_compute(context: CloudContext) -> ComputeService:
    adapter = EC2ComputeServiceAdapter(
        create_aws_client(context),
        provider_id=context.provider_id,
        image_owners=context.get_property("aws.image_owners", ["self"]),
    )
    return ComputeService(
        adapter,
        executor=context.user_executor,
        config=context.config.compute,
        provisioning_manager=context.provisioning_manager,
    )


def create_s3_blobstore(context: CloudContext) -> LocalBlobStore:
    client = create_aws_client(context)
    return LocalBlobStore(
        S3StorageStrategy(client, default_location=context.get_property("blobstore.location")),
        executor=context.user_executor,
        config=context.config.blobstore,
    )


def register_aws_providers(registry: ProviderRegistry) -> None:
    registry.register(EC2_PROVIDER, compute_factory=create_ec2_compute)
    registry.register(S3_PROVIDER, blobstore_factory=create_s3_blobstore)
