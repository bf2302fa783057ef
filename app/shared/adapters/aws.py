"""
AWS Provider Adapter (Native Async)

Deploys Lambda functions, S3 static websites and EC2 web instances with
static access keys from the credential store. Leverages aioboto3 for
non-blocking I/O.
"""

import io
import json
import uuid
import zipfile
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import aioboto3
import structlog
from botocore.config import Config as BotoConfig
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from app.schemas.multi_cloud import (
    CloudResource,
    CodeType,
    DeploymentResult,
    ResourceStatus,
    UnifiedDeploymentRequest,
)
from app.shared.adapters.base import BaseProviderAdapter, parse_timestamp, unique_name
from app.shared.core.credentials import AWSCredentials
from app.shared.core.exceptions import ConfigurationError, CredentialsMissingError, UnsupportedServiceError
from app.shared.core.provider import CloudProvider
from app.shared.core.retry import sdk_retry

logger = structlog.get_logger()

# Socket timeouts for all AWS API calls
BOTO_CONFIG = BotoConfig(
    read_timeout=30,
    connect_timeout=10,
    retries={"max_attempts": 3, "mode": "adaptive"},
)

aws_retry = sdk_retry(ConnectTimeoutError, ReadTimeoutError, EndpointConnectionError)

LAMBDA_RUNTIMES = {CodeType.JAVASCRIPT: "nodejs18.x", CodeType.PYTHON: "python3.9"}
LAMBDA_HANDLERS = {CodeType.JAVASCRIPT: "index.handler", CodeType.PYTHON: "lambda_function.lambda_handler"}
LAMBDA_DESCRIPTION_MARKER = "Instantiate"

# Amazon Linux 2 in us-east-1; other regions must pass `image`
DEFAULT_EC2_AMI = "ami-0c02fb55956c7d316"
DEFAULT_EC2_INSTANCE_TYPE = "t2.micro"


def build_lambda_package(request: UnifiedDeploymentRequest) -> bytes:
    """Zip the request code as a Lambda deployment package, wrapping bare snippets in a handler."""
    if request.code_type == CodeType.PYTHON:
        filename = "lambda_function.py"
        if "def lambda_handler" in request.code:
            source = request.code
        else:
            body = "\n".join(f"    {line}" for line in request.code.splitlines())
            source = (
                "def lambda_handler(event, context):\n"
                f"{body}\n"
                f"    return {{'statusCode': 200, 'body': '{{\"message\": \"Success from {request.name}\"}}'}}\n"
            )
    else:
        filename = "index.js"
        if "exports.handler" in request.code:
            source = request.code
        else:
            source = (
                "exports.handler = async (event) => {\n"
                f"  {request.code}\n"
                f"  return {{ statusCode: 200, body: JSON.stringify({{ message: 'Success from {request.name}' }}) }};\n"
                "};\n"
            )

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(filename, source)
    return buffer.getvalue()


class AWSAdapter(BaseProviderAdapter):
    """
    AWS adapter using static IAM access keys and aioboto3.
    """

    provider = CloudProvider.AWS
    SERVICES = {"lambda": "deploy_lambda", "s3": "deploy_s3_website", "ec2": "deploy_ec2_instance"}
    REGIONS = [
        "us-east-1",
        "us-east-2",
        "us-west-1",
        "us-west-2",
        "eu-west-1",
        "eu-central-1",
        "ap-southeast-1",
        "ap-northeast-1",
    ]

    def _session(self, creds: AWSCredentials) -> aioboto3.Session:
        return aioboto3.Session(
            aws_access_key_id=creds.access_key_id,
            aws_secret_access_key=creds.secret_access_key.get_secret_value(),
            region_name=creds.region,
        )

    @asynccontextmanager
    async def _client(self, service: str, region: Optional[str] = None) -> AsyncIterator[Any]:
        creds: AWSCredentials = self._require_credentials()
        session = self._session(creds)
        async with session.client(
            service,
            region_name=region or creds.region,
            endpoint_url=creds.endpoint_url,
            config=BOTO_CONFIG,
        ) as client:
            yield client

    # ------------------------------------------------------------------
    # Deploy
    # ------------------------------------------------------------------

    async def deploy_lambda(self, request: UnifiedDeploymentRequest) -> DeploymentResult:
        creds: AWSCredentials = self._require_credentials()
        if not creds.lambda_execution_role:
            raise ConfigurationError(
                "AWS Lambda deployment requires AWS_LAMBDA_EXECUTION_ROLE",
                code="lambda_role_missing",
            )
        if request.code_type == CodeType.HTML:
            raise UnsupportedServiceError("AWS Lambda does not run html code; use the s3 service")

        function_name = unique_name(request.name, lowercase=False)
        try:
            async with self._client("lambda", request.region) as client:
                result = await client.create_function(
                    FunctionName=function_name,
                    Runtime=LAMBDA_RUNTIMES[request.code_type],
                    Role=creds.lambda_execution_role,
                    Handler=LAMBDA_HANDLERS[request.code_type],
                    Code={"ZipFile": build_lambda_package(request)},
                    Description=f"Deployed via {LAMBDA_DESCRIPTION_MARKER} - {request.name}",
                    Environment={"Variables": request.environment_variables or {}},
                    Tags=self.platform_tags(),
                )
        except ClientError as e:
            raise self._vendor_error("Lambda deployment", e) from e

        return DeploymentResult(
            id=result["FunctionArn"],
            name=function_name,
            type="lambda",
            region=request.region,
            status="deployed",
            url=(
                f"https://{request.region}.console.aws.amazon.com/lambda/home"
                f"?region={request.region}#/functions/{function_name}"
            ),
            logs=[f"AWS Lambda function {function_name} deployed successfully"],
        )

    async def deploy_s3_website(self, request: UnifiedDeploymentRequest) -> DeploymentResult:
        bucket = unique_name(request.name)
        create_args: Dict[str, Any] = {"Bucket": bucket}
        if request.region != "us-east-1":
            create_args["CreateBucketConfiguration"] = {"LocationConstraint": request.region}

        policy = {
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Sid": "PublicReadGetObject",
                    "Effect": "Allow",
                    "Principal": "*",
                    "Action": "s3:GetObject",
                    "Resource": f"arn:aws:s3:::{bucket}/*",
                }
            ],
        }
        try:
            async with self._client("s3", request.region) as s3:
                await s3.create_bucket(**create_args)
                await s3.put_bucket_tagging(
                    Bucket=bucket,
                    Tagging={"TagSet": [{"Key": k, "Value": v} for k, v in self.platform_tags().items()]},
                )
                await s3.put_bucket_website(
                    Bucket=bucket,
                    WebsiteConfiguration={
                        "IndexDocument": {"Suffix": "index.html"},
                        "ErrorDocument": {"Key": "error.html"},
                    },
                )
                await s3.delete_public_access_block(Bucket=bucket)
                await s3.put_bucket_policy(Bucket=bucket, Policy=json.dumps(policy))
                await s3.put_object(
                    Bucket=bucket,
                    Key="index.html",
                    Body=request.code.encode("utf-8"),
                    ContentType="text/html",
                    CacheControl="max-age=31536000",
                )
        except ClientError as e:
            raise self._vendor_error("S3 deployment", e) from e

        website_url = f"http://{bucket}.s3-website-{request.region}.amazonaws.com"
        return DeploymentResult(
            id=bucket,
            name=request.name,
            type="s3-website",
            region=request.region,
            status="deployed",
            url=website_url,
            logs=[f"S3 static website deployed to {website_url}"],
        )

    async def deploy_ec2_instance(self, request: UnifiedDeploymentRequest) -> DeploymentResult:
        instance_name = unique_name(request.name)
        # Idempotency token for botocore-level replays of the same launch
        client_token = uuid.uuid4().hex
        tags = [{"Key": "Name", "Value": instance_name}]
        tags.extend({"Key": k, "Value": v} for k, v in self.platform_tags().items())
        try:
            async with self._client("ec2", request.region) as ec2:
                result = await ec2.run_instances(
                    ClientToken=client_token,
                    ImageId=request.image or DEFAULT_EC2_AMI,
                    InstanceType=DEFAULT_EC2_INSTANCE_TYPE,
                    MinCount=1,
                    MaxCount=1,
                    UserData=self._user_data(request),
                    TagSpecifications=[{"ResourceType": "instance", "Tags": tags}],
                )
        except ClientError as e:
            raise self._vendor_error("EC2 deployment", e) from e

        instance = result["Instances"][0]
        return DeploymentResult(
            id=instance["InstanceId"],
            name=instance_name,
            type="ec2-instance",
            region=request.region,
            status=instance.get("State", {}).get("Name", "pending"),
            url=f"https://{request.region}.console.aws.amazon.com/ec2/home?region={request.region}#Instances:",
            logs=[f"EC2 instance {instance['InstanceId']} launch initiated"],
        )

    @staticmethod
    def _user_data(request: UnifiedDeploymentRequest) -> str:
        if request.code_type == CodeType.HTML:
            return (
                "#!/bin/bash\n"
                "yum install -y httpd\n"
                "systemctl enable --now httpd\n"
                "cat > /var/www/html/index.html <<'INSTANTIATE_EOF'\n"
                f"{request.code}\n"
                "INSTANTIATE_EOF\n"
            )
        return f"#!/bin/bash\ncat > /opt/app.src <<'INSTANTIATE_EOF'\n{request.code}\nINSTANTIATE_EOF\n"

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def list_resources(self) -> List[CloudResource]:
        creds: AWSCredentials = self._require_credentials()
        resources: List[CloudResource] = []
        for collect in (self._list_lambda_functions, self._list_s3_buckets, self._list_ec2_instances):
            try:
                resources.extend(await collect(creds.region))
            except (ClientError, BotoCoreError) as e:
                # Partial results: one failing service must not hide the others
                logger.warning(
                    "aws_list_partial_failure",
                    collector=collect.__name__,
                    region=creds.region,
                    error=str(e),
                )
        return resources

    @aws_retry
    async def _list_lambda_functions(self, region: str) -> List[CloudResource]:
        resources: List[CloudResource] = []
        async with self._client("lambda", region) as client:
            paginator = client.get_paginator("list_functions")
            async for page in paginator.paginate():
                for func in page.get("Functions", []):
                    if LAMBDA_DESCRIPTION_MARKER not in (func.get("Description") or ""):
                        continue
                    resources.append(
                        CloudResource(
                            id=func["FunctionArn"],
                            name=func["FunctionName"],
                            type="lambda",
                            provider=self.provider,
                            region=region,
                            status=func.get("State") or "unknown",
                            created_at=parse_timestamp(func.get("LastModified")),
                        )
                    )
        return resources

    @aws_retry
    async def _list_s3_buckets(self, region: str) -> List[CloudResource]:
        resources: List[CloudResource] = []
        async with self._client("s3", region) as s3:
            response = await s3.list_buckets()
            for bucket in response.get("Buckets", []):
                name = bucket["Name"]
                try:
                    tagging = await s3.get_bucket_tagging(Bucket=name)
                except ClientError:
                    # Untagged or foreign-region bucket
                    continue
                tags = {t["Key"]: t["Value"] for t in tagging.get("TagSet", [])}
                if not self.is_platform_resource(tags=tags):
                    continue
                bucket_region = await self._bucket_region(s3, name)
                resources.append(
                    CloudResource(
                        id=name,
                        name=name,
                        type="s3-bucket",
                        provider=self.provider,
                        region=bucket_region or "global",
                        status="active",
                        url=f"http://{name}.s3-website-{bucket_region}.amazonaws.com" if bucket_region else None,
                        created_at=parse_timestamp(bucket.get("CreationDate")),
                    )
                )
        return resources

    @staticmethod
    async def _bucket_region(s3: Any, bucket: str) -> Optional[str]:
        try:
            location = await s3.get_bucket_location(Bucket=bucket)
        except ClientError as e:
            logger.debug("aws_bucket_location_unavailable", bucket=bucket, error=str(e))
            return None
        constraint = location.get("LocationConstraint")
        # Legacy answers: null for us-east-1, "EU" for eu-west-1
        if not constraint:
            return "us-east-1"
        return "eu-west-1" if constraint == "EU" else constraint

    @aws_retry
    async def _list_ec2_instances(self, region: str) -> List[CloudResource]:
        resources: List[CloudResource] = []
        filters = [
            {"Name": f"tag:{self.settings.PLATFORM_TAG_KEY}", "Values": [self.settings.PLATFORM_TAG_VALUE]},
            {"Name": "instance-state-name", "Values": ["pending", "running", "stopping", "stopped"]},
        ]
        async with self._client("ec2", region) as ec2:
            paginator = ec2.get_paginator("describe_instances")
            async for page in paginator.paginate(Filters=filters):
                for reservation in page.get("Reservations", []):
                    for instance in reservation.get("Instances", []):
                        tags = {t["Key"]: t["Value"] for t in instance.get("Tags", [])}
                        public_ip = instance.get("PublicIpAddress")
                        resources.append(
                            CloudResource(
                                id=instance["InstanceId"],
                                name=tags.get("Name", instance["InstanceId"]),
                                type="ec2-instance",
                                provider=self.provider,
                                region=region,
                                status=instance.get("State", {}).get("Name", "unknown"),
                                url=f"http://{public_ip}" if public_ip else None,
                                created_at=parse_timestamp(instance.get("LaunchTime")),
                            )
                        )
        return resources

    # ------------------------------------------------------------------
    # Status / delete / verify
    # ------------------------------------------------------------------

    async def get_resource_status(self, resource_id: str, resource_type: str) -> ResourceStatus:
        try:
            if resource_type == "lambda":
                async with self._client("lambda") as client:
                    result = await client.get_function(FunctionName=resource_id)
                config = result.get("Configuration", {})
                return ResourceStatus(
                    status=config.get("State") or "unknown",
                    provider=self.provider,
                    details={
                        "lastModified": config.get("LastModified"),
                        "runtime": config.get("Runtime"),
                        "memorySize": config.get("MemorySize"),
                    },
                )
            if resource_type in ("s3-website", "s3-bucket"):
                async with self._client("s3") as s3:
                    result = await s3.head_bucket(Bucket=resource_id)
                headers = result.get("ResponseMetadata", {}).get("HTTPHeaders", {})
                return ResourceStatus(
                    status="active",
                    provider=self.provider,
                    details={"region": headers.get("x-amz-bucket-region")},
                )
            if resource_type == "ec2-instance":
                async with self._client("ec2") as ec2:
                    result = await ec2.describe_instances(InstanceIds=[resource_id])
                instance = result["Reservations"][0]["Instances"][0]
                return ResourceStatus(
                    status=instance.get("State", {}).get("Name", "unknown"),
                    provider=self.provider,
                    details={"publicIp": instance.get("PublicIpAddress")},
                )
        except ClientError as e:
            return ResourceStatus(status="error", provider=self.provider, details={"error": str(e)})
        return ResourceStatus(status="unknown", provider=self.provider, details={"type": resource_type})

    async def delete_resource(self, resource_id: str, resource_type: str) -> bool:
        try:
            if resource_type == "lambda":
                async with self._client("lambda") as client:
                    await client.delete_function(FunctionName=resource_id)
                return True
            if resource_type in ("s3-website", "s3-bucket"):
                async with self._client("s3") as s3:
                    listing = await s3.list_objects_v2(Bucket=resource_id)
                    objects = [{"Key": o["Key"]} for o in listing.get("Contents", [])]
                    if objects:
                        await s3.delete_objects(Bucket=resource_id, Delete={"Objects": objects})
                    await s3.delete_bucket(Bucket=resource_id)
                return True
            if resource_type == "ec2-instance":
                async with self._client("ec2") as ec2:
                    await ec2.terminate_instances(InstanceIds=[resource_id])
                return True
        except (ClientError, BotoCoreError) as e:
            raise self._vendor_error(f"delete of {resource_type} {resource_id}", e) from e
        return False

    async def verify_connection(self) -> bool:
        """Verify the stored access keys with sts:GetCallerIdentity."""
        self._clear_last_error()
        try:
            async with self._client("sts") as sts:
                identity = await sts.get_caller_identity()
            logger.info("aws_verify_success", account=identity.get("Account"))
            return True
        except (ClientError, BotoCoreError, CredentialsMissingError) as e:
            self._set_last_error_from_exception(e, prefix="AWS verification failed")
            logger.error("aws_verify_failed", error=str(e))
            return False
