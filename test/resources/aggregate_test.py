from itertools import count
from types import SimpleNamespace
from typing import Any, Dict, List, Tuple, cast

import pytest

from fixwaf.aws_client import AwsClient
from fixwaf.configuration import WafConfig
from fixwaf.errors import ConcurrencyConflict, UnknownVariantError, ValidationError, WafError
from fixwaf.resource.action import DefaultAction, OverrideAction, RuleAction
from fixwaf.resource.aggregate import LifecycleState, LoggingConfiguration, RuleGroup, WebACL, scope_from_arn, tag_diff
from fixwaf.resource.field import FieldToMatch, SingleHeader, UriPath
from fixwaf.resource.rule import Rule, VisibilityConfig
from fixwaf.resource.statement import (
    Statement,
    OrStatement,
    ByteMatchStatement,
    GeoMatchStatement,
    RateBasedStatement,
    ManagedRuleGroupStatement,
)
from fixwaf.utils import canonical_json
from test import aws_client, waf_config  # noqa: F401
from test.resources import RecordingClient, load_json

acl_id = "a1b2c3d4-5678-90ab-cdef-EXAMPLE11111"
acl_arn = f"arn:aws:wafv2:us-east-1:123456789012:regional/webacl/test-acl/{acl_id}"
lb_arn = "arn:aws:elasticloadbalancing:us-east-1:123456789012:loadbalancer/app/test-lb/50dc6c495c0c9188"
acl_file = f"get-web-acl__{acl_id.replace('-', '_')}_test_acl_REGIONAL.json"


def visibility(name: str) -> VisibilityConfig:
    return VisibilityConfig(sampled_requests_enabled=True, cloud_watch_metrics_enabled=True, metric_name=name)


def geo_rule(name: str, priority: int) -> Rule:
    return Rule(
        name=name,
        priority=priority,
        statement=Statement(GeoMatchStatement(country_codes=["CN"])),
        action=RuleAction(action="BLOCK"),
        visibility_config=visibility(name),
    )


def rate_rule(name: str, priority: int) -> Rule:
    return Rule(
        name=name,
        priority=priority,
        statement=Statement(RateBasedStatement(limit=100)),
        action=RuleAction(action="BLOCK"),
        visibility_config=visibility(name),
    )


def web_acl(*rules: Rule, scope: str = "REGIONAL") -> WebACL:
    return WebACL(
        name="test",
        scope=scope,
        rules=list(rules),
        visibility_config=visibility("test"),
        default_action=DefaultAction(action="ALLOW"),
    )


def rule_group(*rules: Rule) -> RuleGroup:
    return RuleGroup(name="group", scope="REGIONAL", rules=list(rules), visibility_config=visibility("group"))


def test_get_web_acl(aws_client: AwsClient) -> None:
    acl = WebACL.get(aws_client, "REGIONAL", "test-acl", acl_id)
    assert acl is not None
    assert acl.arn == acl_arn
    assert acl.scope == "REGIONAL"
    assert acl.lock_token == "lock-token-1"
    assert [r.name for r in acl.rules] == ["block-admin", "rate-limit", "aws-common"]
    assert acl.default_action == DefaultAction(action="ALLOW")
    assert acl.tags == {"owner": "security", "env": "test"}
    assert acl.load_balancers == [lb_arn]
    assert acl.custom_response_bodies["blocked"].content_type == "APPLICATION_JSON"
    assert acl.state is LifecycleState.CREATED
    assert acl.validate() == []
    # lists are sets: compare the canonical form of the wire representation
    assert canonical_json(acl.to_api()) == canonical_json(load_json(acl_file)["WebACL"])


def test_web_acl_tree(aws_client: AwsClient) -> None:
    acl = WebACL.get(aws_client, "REGIONAL", "test-acl", acl_id)
    assert acl is not None
    admin, rate, common = acl.rules
    assert admin.statement is not None and isinstance(admin.statement.payload, OrStatement)
    assert rate.is_rate_based
    assert rate.action is not None and rate.action.action == "CAPTCHA"
    assert rate.rule_labels == ["rate:limited"]
    assert common.references_rule_group
    assert common.override_action == OverrideAction(action="NONE")
    assert acl.primary_key() == acl_arn
    assert len([c for c in acl.children() if isinstance(c, Rule)]) == 3


def test_find_web_acls(aws_client: AwsClient) -> None:
    acls = WebACL.find(aws_client, "REGIONAL")
    assert [a.name for a in acls] == ["test-acl"]


def test_get_missing_web_acl(aws_client: AwsClient) -> None:
    assert WebACL.get(aws_client, "REGIONAL", "missing", "1234") is None


def test_refresh(aws_client: AwsClient) -> None:
    acl = WebACL.get(aws_client, "REGIONAL", "test-acl", acl_id)
    assert acl is not None
    acl.description = "changed"
    acl.tags["new"] = "tag"
    assert acl.state is LifecycleState.MODIFIED
    assert acl.refresh(aws_client)
    assert acl.description == "protect the admin area"
    assert "new" not in acl.tags
    assert acl.state is LifecycleState.CREATED


def test_decode_error_names_aggregate_and_rule() -> None:
    wire = {"Name": "acl", "Rules": [{"Name": "r", "Priority": 0, "Statement": {"FooStatement": {}}}]}
    with pytest.raises(UnknownVariantError) as ex:
        WebACL.from_api(wire)
    assert ex.value.aggregate == "WebACL acl"
    assert ex.value.rule == "r"
    assert ex.value.path_str == "rules[0].statement"


def test_scenario_a() -> None:
    byte_match = ByteMatchStatement(
        search_string="/admin", field_to_match=FieldToMatch(UriPath()), positional_constraint="CONTAINS"
    )
    geo_match = GeoMatchStatement(country_codes=["CN", "RU"])
    rule = Rule(
        name="admin",
        priority=0,
        statement=Statement(OrStatement(statements=[Statement(byte_match), Statement(geo_match)])),
        action=RuleAction(action="BLOCK"),
        visibility_config=visibility("admin"),
    )
    acl = web_acl(rule)
    acl.check()
    wire = acl.to_api()
    assert len(wire["Rules"][0]["Statement"]["OrStatement"]["Statements"]) == 2
    assert WebACL.from_api(wire).rules == acl.rules


def test_scenario_c() -> None:
    rule_group(geo_rule("a", 0), geo_rule("b", 1), geo_rule("c", 2)).check()
    with pytest.raises(ValidationError) as ex:
        rule_group(geo_rule("a", 0), geo_rule("b", 2), geo_rule("c", 3)).check()
    assert len(ex.value.issues) == 1
    assert ex.value.issues[0].path == "rules"


def test_rule_group_restrictions() -> None:
    managed = Rule(
        name="managed",
        priority=1,
        statement=Statement(ManagedRuleGroupStatement(vendor_name="AWS", name="AWSManagedRulesCommonRuleSet")),
        override_action=OverrideAction(action="NONE"),
        visibility_config=visibility("managed"),
    )
    messages = [i.message for i in rule_group(rate_rule("rate", 0), managed).validate()]
    assert messages == [
        "rate based rule cannot be configured as part of a rule group.",
        "managed rule group cannot be configured as part of a rule group.",
    ]


def test_web_acl_restrictions() -> None:
    rules = [rate_rule(f"rate-{i}", i) for i in range(11)]
    messages = [i.message for i in web_acl(*rules).validate()]
    assert messages == ["rate based rule limit reached. Maximum of 10 rate based rule can be configured."]
    assert web_acl(*rules).validate(config=WafConfig(max_rate_based_rules=11)) == []

    cloudfront = web_acl(geo_rule("a", 0), scope="CLOUDFRONT")
    cloudfront.load_balancers = [lb_arn]
    messages = [i.message for i in cloudfront.validate()]
    assert messages == ["'load-balancers' can only be set when 'scope' is set to 'REGIONAL'"]


def test_all_issues_are_collected() -> None:
    low_limit = rate_rule("a", 1)
    low_limit.statement = Statement(RateBasedStatement(limit=10))
    acl = WebACL(name="", scope="SOMEWHERE", rules=[low_limit, geo_rule("a", 1)])
    with pytest.raises(ValidationError) as ex:
        acl.check()
    paths = [i.path for i in ex.value.issues]
    assert paths == ["name", "scope", "visibility_config", "rules", "rules", "rules[0].statement.rate_based_statement.limit", "default_action"]  # fmt: skip  # noqa: E501
    assert "WebACL  is not valid" in str(ex.value)


def test_scope_from_arn() -> None:
    assert scope_from_arn("arn:aws:wafv2:us-east-1:123456789012:global/webacl/test/1234") == "CLOUDFRONT"
    assert scope_from_arn("arn:aws:wafv2:eu-central-1:123456789012:regional/webacl/test/1234") == "REGIONAL"
    with pytest.raises(WafError):
        scope_from_arn("not-an-arn")


def test_tag_diff() -> None:
    assert tag_diff({"a": "1", "b": "2"}, {"b": "3", "c": "4"}) == (["a"], {"b": "3", "c": "4"})
    assert tag_diff({"a": "1"}, {"a": "1"}) == ([], {})


def test_apply_tags() -> None:
    calls: List[Tuple[str, Dict[str, Any]]] = []

    def record(aws_service: str, action: str, result_name: Any = None, **kwargs: Any) -> None:
        assert aws_service == "wafv2"
        calls.append((action, kwargs))

    client = SimpleNamespace(call=record)
    client.for_scope = lambda _: client
    acl = web_acl(geo_rule("a", 0))
    acl.arn = acl_arn
    acl._remote_tags = {"a": "1", "b": "2"}
    acl.tags = {"b": "3"}
    acl.apply_tags(cast(AwsClient, client))
    assert calls == [
        ("untag-resource", {"ResourceARN": acl_arn, "TagKeys": ["a"]}),
        ("tag-resource", {"ResourceARN": acl_arn, "Tags": [{"Key": "b", "Value": "3"}]}),
    ]


# ------------------------------------------------------------------------------------------------
# lifecycle
# ------------------------------------------------------------------------------------------------


def remote_web_acl() -> Dict[str, Any]:
    tokens = count(1)

    def get_web_acl(**kwargs: Any) -> Any:
        assert kwargs == {"Name": "test-acl", "Scope": "REGIONAL", "Id": acl_id}
        return {**load_json(acl_file), "LockToken": f"t{next(tokens)}"}

    return {"get-web-acl": get_web_acl}


def test_create_rule_group_computes_capacity() -> None:
    client = RecordingClient(
        {
            "check-capacity": {"Capacity": 50},
            "create-rule-group": {"Summary": {"Id": "1234", "ARN": "arn:aws:wafv2:us-east-1:1:regional/rulegroup/group/1234", "LockToken": "t1"}},  # fmt: skip  # noqa: E501
        }
    )
    group = rule_group(geo_rule("a", 0))
    assert group.state is LifecycleState.UNCONFIGURED
    group.create(cast(AwsClient, client))
    assert client.actions() == ["check-capacity", "create-rule-group"]
    create_args = client.calls[1][1]
    assert create_args["Capacity"] == 50
    assert create_args["Scope"] == "REGIONAL"
    assert create_args["Rules"] == [geo_rule("a", 0).to_api()]
    assert group.id == "1234"
    assert group.lock_token == "t1"
    assert group.state is LifecycleState.CREATED
    with pytest.raises(WafError):
        group.create(cast(AwsClient, client))


def test_rule_group_capacity_is_immutable() -> None:
    client = RecordingClient({"create-rule-group": {"Summary": {"Id": "1234", "LockToken": "t1"}}})
    group = rule_group(geo_rule("a", 0))
    group.capacity = 10
    group.create(cast(AwsClient, client))
    assert client.actions() == ["create-rule-group"]
    group.capacity = 20
    with pytest.raises(WafError):
        group.update(cast(AwsClient, client))


def test_invalid_aggregate_is_not_created() -> None:
    client = RecordingClient()
    with pytest.raises(ValidationError):
        rule_group(geo_rule("a", 1)).create(cast(AwsClient, client))
    assert client.calls == []


def test_create_web_acl_associates_load_balancers() -> None:
    client = RecordingClient({"create-web-acl": {"Summary": {"Id": acl_id, "ARN": acl_arn, "LockToken": "t1"}}})
    acl = web_acl(geo_rule("a", 0))
    acl.tags = {"owner": "security"}
    acl.load_balancers = [lb_arn]
    acl.create(cast(AwsClient, client))
    assert client.actions() == ["create-web-acl", "associate-web-acl"]
    assert client.calls[0][1]["DefaultAction"] == {"Allow": {}}
    assert client.calls[0][1]["Tags"] == [{"Key": "owner", "Value": "security"}]
    assert client.calls[1][1] == {"WebACLArn": acl_arn, "ResourceArn": lb_arn}
    assert acl.state is LifecycleState.CREATED


def test_update_with_fresh_lock_token() -> None:
    client = RecordingClient({**remote_web_acl(), "update-web-acl": {"NextLockToken": "next"}})
    acl = WebACL.get(cast(AwsClient, client), "REGIONAL", "test-acl", acl_id)
    assert acl is not None
    assert acl.lock_token == "t1"
    acl.description = "changed"
    acl.update(cast(AwsClient, client))
    update_args = [kwargs for action, kwargs in client.calls if action == "update-web-acl"]
    # the lock token is read right before the update
    assert update_args[0]["LockToken"] == "t2"
    assert update_args[0]["Description"] == "changed"
    assert update_args[0]["Id"] == acl_id
    assert acl.lock_token == "next"
    assert acl.state is LifecycleState.CREATED


def test_update_retries_once_on_conflict() -> None:
    attempts = count()

    def update_web_acl(**kwargs: Any) -> Any:
        if next(attempts) == 0:
            raise ConcurrencyConflict("update-web-acl", "stale")
        return {"NextLockToken": "next"}

    client = RecordingClient({**remote_web_acl(), "update-web-acl": update_web_acl})
    acl = WebACL.get(cast(AwsClient, client), "REGIONAL", "test-acl", acl_id)
    assert acl is not None
    acl.description = "changed"
    acl.update(cast(AwsClient, client))
    tokens = [kwargs["LockToken"] for action, kwargs in client.calls if action == "update-web-acl"]
    assert tokens == ["t2", "t3"]
    assert acl.lock_token == "next"


def test_update_conflict_escalates() -> None:
    def update_web_acl(**kwargs: Any) -> Any:
        raise ConcurrencyConflict("update-web-acl", "stale")

    client = RecordingClient({**remote_web_acl(), "update-web-acl": update_web_acl})
    acl = WebACL.get(cast(AwsClient, client), "REGIONAL", "test-acl", acl_id)
    assert acl is not None
    acl.description = "changed"
    with pytest.raises(ConcurrencyConflict):
        acl.update(cast(AwsClient, client))
    assert client.actions().count("update-web-acl") == 2
    assert acl.state is LifecycleState.MODIFIED


def test_update_unconfigured_fails() -> None:
    with pytest.raises(WafError):
        web_acl(geo_rule("a", 0)).update(cast(AwsClient, RecordingClient()))


def test_delete_web_acl() -> None:
    client = RecordingClient(remote_web_acl())
    acl = WebACL.get(cast(AwsClient, client), "REGIONAL", "test-acl", acl_id)
    assert acl is not None
    acl.load_balancers = [lb_arn]
    acl._remote_load_balancers = [lb_arn]
    acl.delete(cast(AwsClient, client))
    assert client.actions()[-3:] == ["disassociate-web-acl", "get-web-acl", "delete-web-acl"]
    assert client.calls[-1][1] == {"Name": "test-acl", "Scope": "REGIONAL", "Id": acl_id, "LockToken": "t2"}
    assert acl.state is LifecycleState.DELETED


# ------------------------------------------------------------------------------------------------
# logging configuration
# ------------------------------------------------------------------------------------------------

firehose_arn = "arn:aws:firehose:us-east-1:123456789012:deliverystream/aws-waf-logs-test"
remote_logging = {
    "LoggingConfiguration": {
        "ResourceArn": acl_arn,
        "LogDestinationConfigs": [firehose_arn],
        "RedactedFields": [{"SingleHeader": {"Name": "authorization"}}],
    }
}


def test_get_web_acl_logging_configuration(aws_client: AwsClient) -> None:
    acl = WebACL.get(aws_client, "REGIONAL", "test-acl", acl_id)
    assert acl is not None
    logging_config = acl.logging_configuration
    assert logging_config is not None
    assert logging_config.resource_arn == acl_arn
    assert logging_config.log_destination_configs == [firehose_arn]
    assert [f.match_type for f in logging_config.redacted_fields] == ["SINGLE_HEADER", "QUERY_STRING"]
    # properties without a model are kept for the next put
    assert logging_config.unmapped == {"LogType": "WAF_LOGS", "LogScope": "CUSTOMER"}
    assert logging_config in acl.children()
    assert acl.state is LifecycleState.CREATED


def test_logging_configuration_validation() -> None:
    issues = LoggingConfiguration().validate("logging_configuration")
    assert [i.path for i in issues] == ["logging_configuration"]
    assert LoggingConfiguration(log_destination_configs=[firehose_arn]).validate() == []
    acl = web_acl(geo_rule("a", 0))
    acl.logging_configuration = LoggingConfiguration(redacted_fields=[FieldToMatch(SingleHeader(name=""))])
    assert [i.path for i in acl.validate()] == ["logging_configuration.redacted_fields[0].single_header.name"]


def test_create_web_acl_puts_logging_configuration() -> None:
    client = RecordingClient({"create-web-acl": {"Summary": {"Id": acl_id, "ARN": acl_arn, "LockToken": "t1"}}})
    acl = web_acl(geo_rule("a", 0))
    acl.logging_configuration = LoggingConfiguration(log_destination_configs=[firehose_arn])
    acl.create(cast(AwsClient, client))
    assert client.actions() == ["create-web-acl", "put-logging-configuration"]
    assert client.calls[1][1] == {
        "LoggingConfiguration": {"ResourceArn": acl_arn, "LogDestinationConfigs": [firehose_arn]}
    }
    assert acl.state is LifecycleState.CREATED


def test_update_logging_configuration() -> None:
    client = RecordingClient({**remote_web_acl(), "get-logging-configuration": remote_logging})
    acl = WebACL.get(cast(AwsClient, client), "REGIONAL", "test-acl", acl_id)
    assert acl is not None and acl.logging_configuration is not None
    assert acl.state is LifecycleState.CREATED

    # unchanged: no logging call is issued
    acl.description = "changed"
    acl.update(cast(AwsClient, client))
    assert "put-logging-configuration" not in client.actions()

    acl.logging_configuration.redacted_fields.append(FieldToMatch(UriPath()))
    assert acl.state is LifecycleState.MODIFIED
    acl.update(cast(AwsClient, client))
    assert client.actions()[-1] == "put-logging-configuration"
    put = client.calls[-1][1]["LoggingConfiguration"]
    assert put["ResourceArn"] == acl_arn
    assert put["RedactedFields"] == [{"SingleHeader": {"Name": "authorization"}}, {"UriPath": {}}]
    assert acl.state is LifecycleState.CREATED

    acl.logging_configuration = None
    assert acl.state is LifecycleState.MODIFIED
    acl.update(cast(AwsClient, client))
    assert client.calls[-1] == ("delete-logging-configuration", {"ResourceArn": acl_arn})
    assert acl.state is LifecycleState.CREATED


def test_delete_web_acl_deletes_logging_configuration() -> None:
    client = RecordingClient({**remote_web_acl(), "get-logging-configuration": remote_logging})
    acl = WebACL.get(cast(AwsClient, client), "REGIONAL", "test-acl", acl_id)
    assert acl is not None
    acl.delete(cast(AwsClient, client))
    assert client.actions()[-3:] == ["delete-logging-configuration", "get-web-acl", "delete-web-acl"]
    assert acl.state is LifecycleState.DELETED


def test_malformed_logging_configuration_names_aggregate() -> None:
    broken = {"LoggingConfiguration": {"LogDestinationConfigs": [firehose_arn], "RedactedFields": [{"Unknown": {}}]}}
    client = RecordingClient({**remote_web_acl(), "get-logging-configuration": broken})
    with pytest.raises(UnknownVariantError) as ex:
        WebACL.get(cast(AwsClient, client), "REGIONAL", "test-acl", acl_id)
    assert ex.value.aggregate == "WebACL test-acl"
    assert ex.value.path_str == "logging_configuration.redacted_fields[0]"
