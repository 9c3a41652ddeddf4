import logging
import threading
import time
import uuid
from functools import lru_cache
from typing import Any, ClassVar, Optional, Type

from attrs import define, field, fields_dict
from boto3.session import Session as BotoSession
from botocore.client import BaseClient
from botocore.config import Config as BotoConfig

from fixwaf.json import from_json as from_js
from fixwaf.types import Json

log = logging.getLogger("fix.waf")

# CLOUDFRONT scoped resources can only be managed via this region
CloudfrontRegion = "us-east-1"


@define(hash=True, slots=False)
class AwsSessionHolder:
    access_key_id: Optional[str]
    secret_access_key: Optional[str]
    profile: Optional[str] = None
    # Only here to override in tests
    session_class_factory: Type[BotoSession] = BotoSession
    kind: ClassVar[str] = "aws_session_holder"
    session_lock: threading.Lock = threading.Lock()

    # noinspection PyUnusedLocal
    @lru_cache(maxsize=128)
    def __direct_session(self, profile: Optional[str]) -> BotoSession:
        if profile:
            return self.session_class_factory(profile_name=profile, region_name=CloudfrontRegion)
        else:
            return self.session_class_factory(
                aws_access_key_id=self.access_key_id,
                aws_secret_access_key=self.secret_access_key,
                region_name=CloudfrontRegion,
            )

    # noinspection PyUnusedLocal
    @lru_cache(maxsize=128)
    def __sts_session(self, role_arn: str, profile: Optional[str], cache_key: int) -> BotoSession:
        sts = self.__direct_session(profile).client("sts")
        log.info(f"Create AWS session by assuming role: {role_arn}.")
        token = sts.assume_role(
            RoleArn=role_arn,
            RoleSessionName=f"fixwaf-{str(uuid.uuid4())}",
            DurationSeconds=3600,  # 1 hour
        )
        credentials = token["Credentials"]
        return self.session_class_factory(
            aws_access_key_id=credentials["AccessKeyId"],
            aws_secret_access_key=credentials["SecretAccessKey"],
            aws_session_token=credentials["SessionToken"],
            region_name=CloudfrontRegion,
        )

    def _session(self, role_arn: Optional[str] = None) -> BotoSession:
        """
        Note: the session is not thread safe - caller needs to synchronize access.
        Consider using the client() method instead.
        """
        if role_arn is None:
            return self.__direct_session(self.profile)
        else:
            # Sts session is at least valid for 900 seconds (default 1 hour)
            # let's renew the session after 10 minutes
            return self.__sts_session(role_arn, self.profile, int(time.time() / 600))

    def client(
        self,
        aws_service: str,
        role_arn: Optional[str] = None,
        region_name: Optional[str] = None,
        config: Optional[BotoConfig] = None,
    ) -> BaseClient:
        with self.session_lock:
            session = self._session(role_arn)
            return session.client(aws_service, region_name=region_name, config=config)


@define(slots=False)
class WafConfig:
    kind: ClassVar[str] = "waf"
    access_key_id: Optional[str] = field(
        default=None,
        metadata={"description": "AWS Access Key ID (null to load from env - recommended)"},
    )
    secret_access_key: Optional[str] = field(
        default=None,
        metadata={"description": "AWS Secret Access Key (null to load from env - recommended)"},
    )
    profile: Optional[str] = field(default=None, metadata={"description": "AWS profile to use"})
    role_arn: Optional[str] = field(default=None, metadata={"description": "ARN of the IAM role to assume"})
    region: Optional[str] = field(
        default=None,
        metadata={"description": "AWS Region of REGIONAL resources. CLOUDFRONT resources always use us-east-1."},
    )
    conflict_retries: int = field(
        default=1,
        metadata={
            "description": "How often a mutating call is reissued with a fresh lock token, "
            "after the remote side reported a stale lock token."
        },
    )
    max_rate_based_rules: int = field(
        default=10,
        metadata={"description": "Maximum number of rate based rules allowed in a web ACL."},
    )
    min_rate_limit: int = field(
        default=100,
        metadata={"description": "Smallest limit allowed for a rate based statement."},
    )

    @staticmethod
    def from_json(json: Json) -> "WafConfig":
        valid_fields = fields_dict(WafConfig).keys()
        for field_name in json.copy().keys():
            if field_name not in valid_fields:
                del json[field_name]
        return from_js(json, WafConfig)

    _lock: Any = field(factory=threading.RLock, init=False, eq=False, repr=False)
    _holder: Optional[AwsSessionHolder] = field(default=None, init=False, eq=False, repr=False)

    def sessions(self) -> AwsSessionHolder:
        if self._holder is None:
            with self._lock:
                if self._holder is None:
                    log.debug("Creating a new AWS session holder")
                    self._holder = AwsSessionHolder(
                        access_key_id=self.access_key_id,
                        secret_access_key=self.secret_access_key,
                        profile=self.profile,
                    )
        return self._holder
