from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

from botocore.config import Config
from botocore.exceptions import ClientError
from retrying import retry

from fixwaf.configuration import WafConfig, CloudfrontRegion
from fixwaf.errors import ConcurrencyConflict
from fixwaf.json import value_in_path
from fixwaf.types import Json, JsonElement
from fixwaf.utils import log_runtime

log = logging.getLogger("fix.waf")

ThrottlingErrors = {
    "RequestThrottled",
    "RequestThrottledException",
    "ThrottledException",
    "Throttling",
    "ThrottlingException",
}
RetryableErrors = ThrottlingErrors | {
    "RequestTimeout",
    "RequestTimeoutException",
    "TooManyRequestsException",
    "WAFInternalErrorException",
    "WAFUnavailableEntityException",
}
ConflictErrors = {"WAFOptimisticLockException"}


def is_retryable_exception(e: Exception) -> bool:
    if isinstance(e, ClientError) and e.response["Error"]["Code"] in RetryableErrors:
        log.debug("AWS API request limit exceeded or throttling, retrying with exponential backoff")
        return True
    return False


class AwsClient:
    def __init__(self, config: WafConfig, *, region: Optional[str] = None) -> None:
        self.config = config
        self.region = region or config.region

    def __to_json(self, node: Any) -> JsonElement:
        if node is None or isinstance(node, (str, int, float, bool)):
            return node
        elif isinstance(node, list):
            return [self.__to_json(item) for item in node]
        elif isinstance(node, dict):
            return {key: self.__to_json(value) for key, value in node.items()}
        elif isinstance(node, datetime):
            return node.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        elif isinstance(node, bytes):
            return node.decode("utf-8")
        else:
            raise AttributeError(f"Unsupported type: {type(node)}")

    def call_single(
        self, aws_service: str, action: str, result_name: Optional[str] = None, max_attempts: int = 1, **kwargs: Any
    ) -> JsonElement:
        arg_info = ""
        if kwargs:
            arg_info += " with args " + ", ".join([f"{key}={value}" for key, value in kwargs.items()])
        log.debug(f"[Waf] calling service={aws_service} action={action}{arg_info}")
        py_action = action.replace("-", "_")
        # adaptive mode allows automated client-side throttling
        config = Config(retries={"max_attempts": max_attempts, "mode": "adaptive"})
        client = self.config.sessions().client(
            aws_service, role_arn=self.config.role_arn, region_name=self.region, config=config
        )
        try:
            if client.can_paginate(py_action):
                paginator = client.get_paginator(py_action)
                result: List[Json] = []
                for page in paginator.paginate(**kwargs):
                    log.debug(f"[Waf] Next page for service={aws_service} action={action}{arg_info}")
                    next_page: Json = self.__to_json(page)  # type: ignore
                    if result_name is None:
                        # the whole object is appended
                        result.append(next_page)
                    else:
                        child = value_in_path(next_page, result_name)
                        if isinstance(child, list):
                            result.extend(child)
                        elif child is not None:
                            result.append(child)
                log.debug(f"[Waf] called service={aws_service} action={action}{arg_info}: {len(result)} results.")
                return result
            else:
                result = getattr(client, py_action)(**kwargs)
                single: Json = self.__to_json(result)  # type: ignore
                log.debug(f"[Waf] called service={aws_service} action={action}{arg_info}: single result")
                return value_in_path(single, result_name) if result_name else single
        finally:
            client.close()

    @retry(  # type: ignore
        stop_max_attempt_number=10,  # 10 attempts: 1000 max 60000: max wait time is 5 minutes
        wait_exponential_multiplier=1000,
        wait_exponential_max=60000,
        retry_on_exception=is_retryable_exception,
    )
    def call_with_retry(
        self,
        aws_service: str,
        action: str,
        result_name: Optional[str],
        expected_errors: Optional[List[str]] = None,
        **kwargs: Any,
    ) -> JsonElement:
        try:
            # 5 attempts is the default
            return self.call_single(aws_service, action, result_name, max_attempts=5, **kwargs)
        except ClientError as e:
            expected_errors = expected_errors or []
            code = e.response["Error"]["Code"] or "Unknown Code"
            if code in expected_errors:
                log.debug(f"Expected error: {code}")
                return None
            elif code in ConflictErrors:
                raise ConcurrencyConflict(action, str(e)) from e
            elif code in RetryableErrors:
                log.warning(f"Call to {aws_service} action {action} failed and will be retried. Error: {e}")
                raise
            else:
                log.warning(f"An AWS API error {code} occurred calling {aws_service} action {action}: {e}")
                raise

    @log_runtime
    def call(
        self,
        aws_service: str,
        action: str,
        result_name: Optional[str] = None,
        expected_errors: Optional[List[str]] = None,
        **kwargs: Any,
    ) -> JsonElement:
        """
        Call the given action. Throttled calls are retried with exponential backoff.
        Expected errors are turned into a None result, a stale lock token raises ConcurrencyConflict,
        every other error is raised to the caller.
        """
        return self.call_with_retry(aws_service, action, result_name, expected_errors, **kwargs)

    def list(
        self,
        aws_service: str,
        action: str,
        result_name: Optional[str] = None,
        expected_errors: Optional[List[str]] = None,
        **kwargs: Any,
    ) -> List[Any]:
        res = self.call_with_retry(aws_service, action, result_name, expected_errors, **kwargs)
        if res is None:
            return []
        elif isinstance(res, list):
            return res
        else:
            return [res]

    def get(
        self,
        aws_service: str,
        action: str,
        result_name: Optional[str] = None,
        expected_errors: Optional[List[str]] = None,
        **kwargs: Any,
    ) -> Optional[Json]:
        return self.call_with_retry(aws_service, action, result_name, expected_errors, **kwargs)  # type: ignore

    def for_region(self, region: str) -> AwsClient:
        return AwsClient(self.config, region=region)

    def for_scope(self, scope: str) -> AwsClient:
        """
        CLOUDFRONT scoped resources are only available in us-east-1.
        """
        return self.for_region(CloudfrontRegion) if scope == "CLOUDFRONT" else self
