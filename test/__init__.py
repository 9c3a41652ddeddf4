from pytest import fixture

from fixwaf.aws_client import AwsClient
from fixwaf.configuration import WafConfig
from test.resources import BotoFileBasedSession


@fixture
def waf_config() -> WafConfig:
    config = WafConfig(access_key_id="foo", secret_access_key="bar", region="us-east-1")
    config.sessions().session_class_factory = BotoFileBasedSession
    return config


@fixture
def aws_client(waf_config: WafConfig) -> AwsClient:
    return AwsClient(waf_config, region="us-east-1")
