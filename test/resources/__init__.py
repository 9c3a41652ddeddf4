import json
import os
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from boto3 import Session

from fixwaf.configuration import WafConfig
from fixwaf.types import Json, JsonElement


class BotoDummyStsClient:
    def __getattr__(self, action_name: str) -> Callable[[], Any]:
        def call(*args: Any, **kwargs: Any) -> Any:
            return {"Credentials": {"AccessKeyId": "xxx", "SecretAccessKey": "xxx", "SessionToken": "xxx"}}

        return call


class BotoFileClient:
    def __init__(self, service: str) -> None:
        self.service = service

    @staticmethod
    def can_paginate(_: str) -> bool:
        return False

    @staticmethod
    def path_from(service_name: str, action_name: str, **kwargs: Any) -> str:
        def arg_string(v: Any) -> str:
            if isinstance(v, list):
                return "_".join(arg_string(x) for x in v)
            elif isinstance(v, dict):
                return "_".join(arg_string(v) for k, v in v.items())
            else:
                return re.sub(r"[^a-zA-Z0-9]", "_", str(v))

        vals = "__" + ("_".join(arg_string(v) for _, v in sorted(kwargs.items()))) if kwargs else ""
        # cut the action string if it becomes too long
        vals = vals[0:220] if len(vals) > 220 else vals
        action = action_name.replace("_", "-")
        service = service_name.replace("-", "_")
        path = os.path.dirname(__file__) + f"/files/{service}/{action}{vals}.json"
        return os.path.abspath(path)

    def __getattr__(self, action_name: str) -> Callable[[], Any]:
        def call_action(*args: Any, **kwargs: Any) -> Any:
            assert not args, "No arguments allowed!"
            path = self.path_from(self.service, action_name, **kwargs)
            if os.path.exists(path):
                with open(path) as f:
                    return json.load(f)
            else:
                return {}

        return call_action


# use this factory in tests, to rely on API responses from file system
class BotoFileBasedSession(Session):  # type: ignore
    def client(self, service_name: str, **kwargs: Any) -> Any:
        return BotoDummyStsClient() if service_name == "sts" else BotoFileClient(service_name)


class BotoErrorClient:
    def __init__(self, exception: Exception):
        self.exception = exception

    def __getattr__(self, action_name: str) -> Callable[[], Any]:
        raise self.exception


# use this factory in tests, to check how the client behaves in terms of errors
class BotoErrorSession(Session):  # type: ignore
    def __init__(self, exception: Exception = Exception("Test exception"), **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.exception = exception

    def client(self, service_name: str, **kwargs: Any) -> Any:
        return BotoErrorClient(self.exception)

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self


def load_json(name: str) -> Json:
    path = os.path.abspath(os.path.dirname(__file__) + f"/files/wafv2/{name}")
    with open(path) as f:
        return json.load(f)  # type: ignore


class RecordingClient:
    """
    Stands in for an AwsClient: every call is recorded, results are looked up by action name.
    A result can be a callable, which is called with the arguments of the call.
    """

    def __init__(self, results: Optional[Dict[str, Any]] = None, config: Optional[WafConfig] = None) -> None:
        self.results = results or {}
        self.config = config or WafConfig()
        self.calls: List[Tuple[str, Dict[str, Any]]] = []

    def for_scope(self, scope: str) -> "RecordingClient":
        return self

    def for_region(self, region: str) -> "RecordingClient":
        return self

    def call(
        self,
        aws_service: str,
        action: str,
        result_name: Optional[str] = None,
        expected_errors: Optional[List[str]] = None,
        **kwargs: Any,
    ) -> JsonElement:
        assert aws_service == "wafv2"
        self.calls.append((action, kwargs))
        result = self.results.get(action)
        if callable(result):
            result = result(**kwargs)
        if result_name and isinstance(result, dict):
            return result.get(result_name)
        return result  # type: ignore

    get = call

    def list(
        self,
        aws_service: str,
        action: str,
        result_name: Optional[str] = None,
        expected_errors: Optional[List[str]] = None,
        **kwargs: Any,
    ) -> List[Any]:
        self.calls.append((action, kwargs))
        result = self.results.get(action, [])
        return result(**kwargs) if callable(result) else result  # type: ignore

    def actions(self) -> List[str]:
        return [action for action, _ in self.calls]
