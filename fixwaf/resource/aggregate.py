from __future__ import annotations

import logging
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Type, TypeVar

from attrs import define, field, fields

from fixwaf.aws_client import AwsClient
from fixwaf.configuration import WafConfig
from fixwaf.errors import ConcurrencyConflict, DecodeError, ValidationError, WafError
from fixwaf.json import strip_nones
from fixwaf.json_bender import Bender, S, F, ForallNode, MapDict, Node, ToDict
from fixwaf.logger import AggregateLogger, aggregate_logger
from fixwaf.resource.action import DefaultAction, ImmunityTimeConfig
from fixwaf.resource.base import WafNode, ValidationIssue, check_required, check_value, child_path, validate_all
from fixwaf.resource.field import FieldToMatch
from fixwaf.resource.rule import Rule, VisibilityConfig, rules_node, rules_validation
from fixwaf.resource.statement import ManagedRuleGroupStatement, RateBasedStatement
from fixwaf.types import Json

log = logging.getLogger("fix.waf")

service_name = "wafv2"
Scopes = ["CLOUDFRONT", "REGIONAL"]
NonexistentItem = "WAFNonexistentItemException"

AggregateT = TypeVar("AggregateT", bound="WafAggregate")


class LifecycleState(Enum):
    UNCONFIGURED = "unconfigured"
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"


def scope_from_arn(arn: str) -> str:
    """
    arn:aws:wafv2:us-east-1:123456789012:global/webacl/name/id -> CLOUDFRONT
    arn:aws:wafv2:eu-central-1:123456789012:regional/webacl/name/id -> REGIONAL
    """
    parts = arn.split(":", 5)
    if len(parts) < 6:
        raise WafError(f"Can not derive the scope from arn: {arn}")
    return "CLOUDFRONT" if parts[5].startswith("global/") else "REGIONAL"


def tag_diff(old: Dict[str, str], new: Dict[str, str]) -> Tuple[List[str], Dict[str, str]]:
    """
    Compute the changes to get from old to new tags.
    :return: the keys to remove and the tags to set.
    """
    to_remove = sorted(k for k in old if k not in new)
    to_set = {k: v for k, v in new.items() if old.get(k) != v}
    return to_remove, to_set


def label_names(labels: List[Json]) -> List[str]:
    return [label["Name"] for label in labels]


def tags_api(tags: Dict[str, str]) -> List[Json]:
    return [{"Key": k, "Value": v} for k, v in tags.items()]


@define(slots=False)
class CustomResponseBody(WafNode):
    kind: ClassVar[str] = "waf_custom_response_body"
    mapping: ClassVar[Dict[str, Bender]] = {"content_type": S("ContentType"), "content": S("Content")}
    content_type: Optional[str] = field(default=None, metadata={"description": "The type of content in the payload that you are defining in the Content string."})  # fmt: skip
    content: Optional[str] = field(default=None, metadata={"description": "The payload of the custom response."})  # fmt: skip

    def encode(self) -> Json:
        return strip_nones({"ContentType": self.content_type, "Content": self.content})

    def validate(self, path: str = "") -> List[ValidationIssue]:
        return (
            check_required(path, "content", self.content)
            + check_required(path, "content_type", self.content_type)
            + check_value(path, "content_type", self.content_type, ["TEXT_PLAIN", "TEXT_HTML", "APPLICATION_JSON"])
        )


@define(slots=False)
class LoggingConfiguration(WafNode):
    """
    Where the traffic logs of a web ACL are delivered, and which request parts are kept out of them.
    The configuration is stored next to the web ACL: it is read and written with its own api calls.
    """

    kind: ClassVar[str] = "waf_logging_configuration"
    mapping: ClassVar[Dict[str, Bender]] = {
        "resource_arn": S("ResourceArn"),
        "log_destination_configs": S("LogDestinationConfigs", default=[]),
        "redacted_fields": S("RedactedFields", default=[]) >> ForallNode(FieldToMatch),
        "managed_by_firewall_manager": S("ManagedByFirewallManager", default=False),
        "logging_filter": S("LoggingFilter"),
    }
    log_destination_configs: List[str] = field(factory=list, metadata={"description": "The ARNs of the logging destinations (Kinesis Data Firehose, CloudWatch Logs or S3) to associate with the web ACL."})  # fmt: skip
    redacted_fields: List[FieldToMatch] = field(factory=list, metadata={"description": "The parts of the request that you want to keep out of the logs."})  # fmt: skip
    logging_filter: Optional[Json] = field(default=None, metadata={"description": "Filtering that specifies which web requests are kept in the logs. Passed to the api as defined."})  # fmt: skip
    # read only: maintained by the remote side
    resource_arn: Optional[str] = field(default=None, eq=False, metadata={"description": "The ARN of the web ACL this configuration belongs to."})  # fmt: skip
    managed_by_firewall_manager: bool = field(default=False, eq=False, metadata={"description": "Indicates whether the logging configuration was created by Firewall Manager."})  # fmt: skip

    def encode(self) -> Json:
        return strip_nones(
            {
                "LogDestinationConfigs": self.log_destination_configs,
                "RedactedFields": [f.to_api() for f in self.redacted_fields],
                "LoggingFilter": self.logging_filter,
            }
        )

    def children(self) -> List[WafNode]:
        return list(self.redacted_fields)

    def validate(self, path: str = "") -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        if not self.log_destination_configs and not self.redacted_fields:
            issues.append(ValidationIssue(path, "At least one of 'redacted_fields' or 'log_destination_configs' must be set."))  # fmt: skip  # noqa: E501
        return issues + validate_all(path, "redacted_fields", self.redacted_fields)


@define(slots=False)
class WafAggregate(WafNode):
    """
    Common functionality of rule groups and web ACLs: the owners of a collection of rules.

    The aggregate keeps a snapshot of the wire form it has last seen on the remote side.
    The snapshot defines the lifecycle state of the aggregate.
    Every mutating call reads a fresh lock token right before the call is made.
    """

    kind: ClassVar[str] = "waf_aggregate"
    # name of the aggregate in the wire format and in the api actions
    wire_name: ClassVar[str] = ""
    action_name: ClassVar[str] = ""
    pass_through: ClassVar[bool] = False
    name: str = field(metadata={"description": "The name of the aggregate. You cannot change the name after you create it."})  # fmt: skip
    scope: Optional[str] = field(default=None, metadata={"description": "Specifies whether this is for an Amazon CloudFront distribution (CLOUDFRONT) or for a regional application (REGIONAL)."})  # fmt: skip
    id: Optional[str] = field(default=None, metadata={"description": "A unique identifier, assigned by the remote side on creation."})  # fmt: skip
    arn: Optional[str] = field(default=None, metadata={"description": "The Amazon Resource Name (ARN) of the entity."})  # fmt: skip
    description: Optional[str] = field(default=None, metadata={"description": "A description that helps with identification."})  # fmt: skip
    rules: List[Rule] = field(factory=list, metadata={"description": "The rule statements used to identify the web requests that you want to manage."})  # fmt: skip
    visibility_config: Optional[VisibilityConfig] = field(default=None, metadata={"description": "Defines and enables Amazon CloudWatch metrics and web request sample collection."})  # fmt: skip
    capacity: Optional[int] = field(default=None, metadata={"description": "The web ACL capacity units (WCUs) required or used by this entity."})  # fmt: skip
    label_namespace: Optional[str] = field(default=None, metadata={"description": "The label namespace prefix. All labels added by rules in this entity have this prefix."})  # fmt: skip
    custom_response_bodies: Dict[str, CustomResponseBody] = field(factory=dict, metadata={"description": "A map of custom response keys and content bodies."})  # fmt: skip
    tags: Dict[str, str] = field(factory=dict, metadata={"description": "Tags of this entity."})  # fmt: skip
    lock_token: Optional[str] = field(default=None, eq=False, metadata={"description": "The lock token as returned by the last read or write."})  # fmt: skip
    _snapshot: Optional[Json] = field(default=None, init=False, eq=False, repr=False)
    _remote_tags: Dict[str, str] = field(factory=dict, init=False, eq=False, repr=False)
    _deleted: bool = field(default=False, init=False, eq=False, repr=False)

    @classmethod
    def from_api(cls: Type[AggregateT], json: Json) -> AggregateT:
        try:
            node = super().from_api(json)  # type: ignore
        except DecodeError as e:
            e.aggregate = f"{cls.wire_name} {json.get('Name') if isinstance(json, dict) else None}"
            raise e
        if node.scope is None and node.arn:
            node.scope = scope_from_arn(node.arn)
        return node  # type: ignore

    def wire_properties(self) -> Json:
        return {
            "Name": self.name,
            "Id": self.id,
            "ARN": self.arn,
            "Description": self.description,
            "Rules": [r.to_api() for r in self.rules],
            "VisibilityConfig": self.visibility_config.to_api() if self.visibility_config else None,
            "Capacity": self.capacity,
            "LabelNamespace": self.label_namespace,
            "CustomResponseBodies": {k: v.to_api() for k, v in self.custom_response_bodies.items()} or None,
        }

    def encode(self) -> Json:
        return strip_nones(self.wire_properties())

    def primary_key(self) -> str:
        return self.arn or self.name

    def children(self) -> List[WafNode]:
        result: List[WafNode] = list(self.rules)
        if self.visibility_config:
            result.append(self.visibility_config)
        result.extend(self.custom_response_bodies.values())
        return result

    def owner(self) -> str:
        return f"{self.wire_name} {self.name}"

    @property
    def log(self) -> AggregateLogger:
        return aggregate_logger(log, self.owner(), self.scope)

    # ------------------------------------------------------------------------------------------------
    # validation
    # ------------------------------------------------------------------------------------------------

    def validate(self, path: str = "", *, config: Optional[WafConfig] = None) -> List[ValidationIssue]:
        config = config or WafConfig()
        issues = check_required(path, "name", self.name)
        issues.extend(check_required(path, "scope", self.scope))
        issues.extend(check_value(path, "scope", self.scope, Scopes))
        if self.visibility_config is None:
            issues.append(ValidationIssue(child_path(path, "visibility_config"), "'visibility_config' is required."))
        else:
            issues.extend(self.visibility_config.validate(child_path(path, "visibility_config")))
        for key, body in self.custom_response_bodies.items():
            issues.extend(body.validate(child_path(child_path(path, "custom_response_bodies"), f"[{key}]")))
        issues.extend(rules_validation(path, self.rules, min_rate_limit=config.min_rate_limit))
        return issues

    def check(self, config: Optional[WafConfig] = None) -> None:
        """
        Validate the aggregate and raise a ValidationError with all issues found.
        """
        issues = self.validate(config=config)
        if issues:
            raise ValidationError(self.owner(), issues)

    # ------------------------------------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------------------------------------

    @property
    def state(self) -> LifecycleState:
        if self._deleted:
            return LifecycleState.DELETED
        elif self.id is None or self._snapshot is None:
            return LifecycleState.UNCONFIGURED
        elif self._snapshot != self.to_api() or self._remote_tags != self.tags or self.has_remote_changes():
            return LifecycleState.MODIFIED
        else:
            return LifecycleState.CREATED

    def has_remote_changes(self) -> bool:
        return False

    def _mark_synced(self) -> None:
        self._snapshot = self.to_api()
        self._remote_tags = dict(self.tags)

    def _client(self, client: AwsClient) -> AwsClient:
        if self.scope is None:
            raise WafError(f"{self.owner()}: scope is not defined.")
        return client.for_scope(self.scope)

    def _identity(self) -> Json:
        if self.id is None:
            raise WafError(f"{self.owner()} has not been created.")
        return {"Name": self.name, "Scope": self.scope, "Id": self.id}

    @classmethod
    def get(cls: Type[AggregateT], client: AwsClient, scope: str, name: str, id: str) -> Optional[AggregateT]:
        """
        Read the aggregate from the remote side. Returns None if it does not exist.
        """
        result = client.for_scope(scope).get(
            service_name,
            f"get-{cls.action_name}",
            result_name=None,
            expected_errors=[NonexistentItem],
            Name=name,
            Scope=scope,
            Id=id,
        )
        if not result or not result.get(cls.wire_name):
            return None
        node = cls.from_api(result[cls.wire_name])
        node.scope = scope
        node.lock_token = result.get("LockToken")
        node.read_remote_state(client)
        node._mark_synced()
        return node

    def read_remote_state(self, client: AwsClient) -> None:
        if self.arn:
            tags = self._client(client).list(
                service_name,
                "list-tags-for-resource",
                result_name="TagInfoForResource.TagList",
                expected_errors=[NonexistentItem],
                ResourceARN=self.arn,
            )
            self.tags = ToDict()(tags)

    def refresh(self, client: AwsClient) -> bool:
        """
        Reload all properties from the remote side.
        Returns False, if the aggregate does not exist anymore.
        """
        identity = self._identity()
        fresh = self.get(client, identity["Scope"], identity["Name"], identity["Id"])
        if fresh is None:
            self.log.info("does not exist anymore.")
            self._deleted = True
            return False
        for attr in fields(type(self)):
            setattr(self, attr.name, getattr(fresh, attr.name))
        return True

    def fetch_lock_token(self, client: AwsClient) -> str:
        result = self._client(client).get(service_name, f"get-{self.action_name}", result_name=None, **self._identity())
        if not result or "LockToken" not in result:
            raise WafError(f"{self.owner()}: no lock token available.")
        token: str = result["LockToken"]
        self.lock_token = token
        return token

    def call_with_lock_token(self, client: AwsClient, action: str, **kwargs: Any) -> Optional[Json]:
        """
        Issue a mutating call with a lock token read right before the call.
        A stale lock token is retried with a fresh token (conflict_retries times), then raised.
        """
        retries = client.config.conflict_retries
        attempt = 0
        while True:
            token = self.fetch_lock_token(client)
            try:
                return self._client(client).call(  # type: ignore
                    service_name, action, None, **self._identity(), LockToken=token, **kwargs
                )
            except ConcurrencyConflict as e:
                if attempt >= retries:
                    self.log.error(f"{action} failed after {attempt + 1} attempts: {e}", extra={"action": action})
                    raise
                attempt += 1
                self.log.warning(
                    f"stale lock token for {action}. Retry with a fresh lock token.", extra={"action": action}
                )

    def create_args(self, client: AwsClient) -> Json:
        return strip_nones(
            {
                "Name": self.name,
                "Scope": self.scope,
                "Description": self.description,
                "Rules": [r.to_api() for r in self.rules],
                "VisibilityConfig": self.visibility_config.to_api() if self.visibility_config else None,
                "Tags": tags_api(self.tags),
                "CustomResponseBodies": {k: v.to_api() for k, v in self.custom_response_bodies.items()} or None,
            }
        )

    def update_args(self) -> Json:
        return strip_nones(
            {
                "Description": self.description,
                "Rules": [r.to_api() for r in self.rules],
                "VisibilityConfig": self.visibility_config.to_api() if self.visibility_config else None,
                "CustomResponseBodies": {k: v.to_api() for k, v in self.custom_response_bodies.items()} or None,
            }
        )

    def create(self, client: AwsClient) -> None:
        if self.state is not LifecycleState.UNCONFIGURED:
            raise WafError(f"{self.owner()} has already been created.")
        self.check(client.config)
        args = self.create_args(client)
        self.log.info("create")
        summary = self._client(client).call(service_name, f"create-{self.action_name}", "Summary", **args)
        if not isinstance(summary, dict):
            raise WafError(f"{self.owner()}: create returned no summary.")
        self.id = summary.get("Id")
        self.arn = summary.get("ARN")
        self.lock_token = summary.get("LockToken")
        self.after_create(client)
        self._mark_synced()

    def after_create(self, client: AwsClient) -> None:
        pass

    def update(self, client: AwsClient) -> None:
        if self.state in (LifecycleState.UNCONFIGURED, LifecycleState.DELETED):
            raise WafError(f"{self.owner()} can not be updated in state {self.state.value}.")
        self.check(client.config)
        self.log.info("update")
        result = self.call_with_lock_token(client, f"update-{self.action_name}", **self.update_args())
        if result and result.get("NextLockToken"):
            self.lock_token = result["NextLockToken"]
        self.apply_tags(client)
        self.after_update(client)
        self._mark_synced()

    def after_update(self, client: AwsClient) -> None:
        pass

    def apply_tags(self, client: AwsClient) -> None:
        if not self.arn:
            return
        to_remove, to_set = tag_diff(self._remote_tags, self.tags)
        if to_remove:
            self._client(client).call(service_name, "untag-resource", None, ResourceARN=self.arn, TagKeys=to_remove)
        if to_set:
            self._client(client).call(service_name, "tag-resource", None, ResourceARN=self.arn, Tags=tags_api(to_set))
        self._remote_tags = dict(self.tags)

    def delete(self, client: AwsClient) -> None:
        if self.state is LifecycleState.DELETED:
            return
        self.before_delete(client)
        self.log.info("delete")
        self.call_with_lock_token(client, f"delete-{self.action_name}")
        self._deleted = True

    def before_delete(self, client: AwsClient) -> None:
        pass

    @classmethod
    def find(cls: Type[AggregateT], client: AwsClient, scope: str) -> List[AggregateT]:
        """
        Read all aggregates of this type in the given scope.
        """
        scoped = client.for_scope(scope)
        result: List[AggregateT] = []
        marker: Optional[str] = None
        while True:
            args: Json = {"Scope": scope}
            if marker:
                args["NextMarker"] = marker
            page = scoped.get(service_name, f"list-{cls.action_name}s", result_name=None, **args) or {}
            summaries = page.get(f"{cls.wire_name}s", [])
            for summary in summaries:
                if node := cls.get(client, scope, summary["Name"], summary["Id"]):
                    result.append(node)
            marker = page.get("NextMarker")
            if not marker or not summaries:
                return result


@define(slots=False)
class RuleGroup(WafAggregate):
    kind: ClassVar[str] = "waf_rule_group"
    wire_name: ClassVar[str] = "RuleGroup"
    action_name: ClassVar[str] = "rule-group"
    mapping: ClassVar[Dict[str, Bender]] = {
        "name": S("Name"),
        "id": S("Id"),
        "arn": S("ARN"),
        "description": S("Description"),
        "rules": rules_node(),
        "visibility_config": S("VisibilityConfig") >> Node(VisibilityConfig),
        "capacity": S("Capacity"),
        "label_namespace": S("LabelNamespace"),
        "custom_response_bodies": S("CustomResponseBodies", default={}) >> MapDict(value_bender=Node(CustomResponseBody)),
        "available_labels": S("AvailableLabels", default=[]) >> F(label_names),
        "consumed_labels": S("ConsumedLabels", default=[]) >> F(label_names),
    }
    available_labels: List[str] = field(factory=list, metadata={"description": "The labels that one or more rules in this rule group add to matching web requests."})  # fmt: skip
    consumed_labels: List[str] = field(factory=list, metadata={"description": "The labels that one or more rules in this rule group match against in label match statements."})  # fmt: skip

    def wire_properties(self) -> Json:
        return {
            **super().wire_properties(),
            "AvailableLabels": [{"Name": n} for n in self.available_labels],
            "ConsumedLabels": [{"Name": n} for n in self.consumed_labels],
        }

    def validate(self, path: str = "", *, config: Optional[WafConfig] = None) -> List[ValidationIssue]:
        issues = super().validate(path, config=config)
        for idx, rule in enumerate(self.rules):
            if rule.statement is None:
                continue
            rule_path = child_path(child_path(path, "rules"), f"[{idx}]")
            if rule.statement.find(RateBasedStatement):
                issues.append(ValidationIssue(rule_path, "rate based rule cannot be configured as part of a rule group."))  # fmt: skip  # noqa: E501
            if rule.statement.find(ManagedRuleGroupStatement):
                issues.append(ValidationIssue(rule_path, "managed rule group cannot be configured as part of a rule group."))  # fmt: skip  # noqa: E501
        if self.capacity is not None and self.capacity <= 0:
            issues.append(ValidationIssue(child_path(path, "capacity"), "'capacity' has to be positive."))
        return issues

    def check_capacity(self, client: AwsClient) -> int:
        """
        Let the remote side compute the capacity required by the rules of this group.
        """
        result = self._client(client).get(
            service_name, "check-capacity", result_name="Capacity", Scope=self.scope, Rules=[r.to_api() for r in self.rules]  # noqa: E501
        )
        if not isinstance(result, int):
            raise WafError(f"{self.owner()}: capacity could not be computed.")
        return result

    def create_args(self, client: AwsClient) -> Json:
        if self.capacity is None:
            self.capacity = self.check_capacity(client)
            self.log.info(f"computed capacity {self.capacity}")
        return {**super().create_args(client), "Capacity": self.capacity}

    def update(self, client: AwsClient) -> None:
        if self._snapshot is not None and self.capacity != self._snapshot.get("Capacity"):
            raise WafError(f"{self.owner()}: 'capacity' can not be changed after creation.")
        super().update(client)


@define(slots=False)
class WebACL(WafAggregate):
    kind: ClassVar[str] = "waf_web_acl"
    wire_name: ClassVar[str] = "WebACL"
    action_name: ClassVar[str] = "web-acl"
    mapping: ClassVar[Dict[str, Bender]] = {
        "name": S("Name"),
        "id": S("Id"),
        "arn": S("ARN"),
        "description": S("Description"),
        "rules": rules_node(),
        "visibility_config": S("VisibilityConfig") >> Node(VisibilityConfig),
        "capacity": S("Capacity"),
        "label_namespace": S("LabelNamespace"),
        "custom_response_bodies": S("CustomResponseBodies", default={}) >> MapDict(value_bender=Node(CustomResponseBody)),
        "default_action": S("DefaultAction") >> Node(DefaultAction),
        "captcha_config": S("CaptchaConfig") >> Node(ImmunityTimeConfig),
        "challenge_config": S("ChallengeConfig") >> Node(ImmunityTimeConfig),
        "token_domains": S("TokenDomains", default=[]),
    }
    default_action: Optional[DefaultAction] = field(default=None, metadata={"description": "The action to perform if none of the rules contained in the web ACL match."})  # fmt: skip
    captcha_config: Optional[ImmunityTimeConfig] = field(default=None, metadata={"description": "Specifies how WAF should handle CAPTCHA evaluations for rules that don't have their own CaptchaConfig settings."})  # fmt: skip
    challenge_config: Optional[ImmunityTimeConfig] = field(default=None, metadata={"description": "Specifies how WAF should handle challenge evaluations for rules that don't have their own ChallengeConfig settings."})  # fmt: skip
    token_domains: List[str] = field(factory=list, metadata={"description": "Specifies the domains that WAF should accept in a web request token."})  # fmt: skip
    load_balancers: List[str] = field(factory=list, metadata={"description": "ARNs of the application load balancers associated with this web ACL. Only for REGIONAL web ACLs."})  # fmt: skip
    logging_configuration: Optional[LoggingConfiguration] = field(default=None, metadata={"description": "The logging configuration of this web ACL."})  # fmt: skip
    _remote_load_balancers: List[str] = field(factory=list, init=False, eq=False, repr=False)
    _remote_logging_configuration: Optional[Json] = field(default=None, init=False, eq=False, repr=False)

    def wire_properties(self) -> Json:
        return {
            **super().wire_properties(),
            "DefaultAction": self.default_action.to_api() if self.default_action else None,
            "CaptchaConfig": self.captcha_config.to_api() if self.captcha_config else None,
            "ChallengeConfig": self.challenge_config.to_api() if self.challenge_config else None,
            "TokenDomains": self.token_domains,
        }

    def children(self) -> List[WafNode]:
        result = super().children()
        result.extend(
            n
            for n in (self.default_action, self.captcha_config, self.challenge_config, self.logging_configuration)
            if n is not None
        )
        return result

    def validate(self, path: str = "", *, config: Optional[WafConfig] = None) -> List[ValidationIssue]:
        config = config or WafConfig()
        issues = super().validate(path, config=config)
        if self.default_action is None:
            issues.append(ValidationIssue(child_path(path, "default_action"), "'default_action' is required."))
        else:
            issues.extend(self.default_action.validate(child_path(path, "default_action")))
        rate_based = [r for r in self.rules if r.is_rate_based]
        if len(rate_based) > config.max_rate_based_rules:
            issues.append(ValidationIssue(child_path(path, "rules"), f"rate based rule limit reached. Maximum of {config.max_rate_based_rules} rate based rule can be configured."))  # fmt: skip  # noqa: E501
        if self.load_balancers and self.scope != "REGIONAL":
            issues.append(ValidationIssue(child_path(path, "load_balancers"), "'load-balancers' can only be set when 'scope' is set to 'REGIONAL'"))  # fmt: skip  # noqa: E501
        for name in ("captcha_config", "challenge_config"):
            if (immunity := getattr(self, name)) is not None:
                issues.extend(immunity.validate(child_path(path, name)))
        if self.logging_configuration is not None:
            issues.extend(self.logging_configuration.validate(child_path(path, "logging_configuration")))
        return issues

    def create_args(self, client: AwsClient) -> Json:
        return {**super().create_args(client), **self.web_acl_args()}

    def update_args(self) -> Json:
        return {**super().update_args(), **self.web_acl_args()}

    def web_acl_args(self) -> Json:
        return strip_nones(
            {
                "DefaultAction": self.default_action.to_api() if self.default_action else None,
                "CaptchaConfig": self.captcha_config.to_api() if self.captcha_config else None,
                "ChallengeConfig": self.challenge_config.to_api() if self.challenge_config else None,
                "TokenDomains": self.token_domains,
            }
        )

    def logging_configuration_api(self) -> Optional[Json]:
        return self.logging_configuration.to_api() if self.logging_configuration else None

    def has_remote_changes(self) -> bool:
        return (
            sorted(self.load_balancers) != sorted(self._remote_load_balancers)
            or self.logging_configuration_api() != self._remote_logging_configuration
        )

    def _mark_synced(self) -> None:
        super()._mark_synced()
        self._remote_load_balancers = list(self.load_balancers)
        self._remote_logging_configuration = self.logging_configuration_api()

    def read_remote_state(self, client: AwsClient) -> None:
        super().read_remote_state(client)
        # only regional web ACLs have associated resources
        if self.scope == "REGIONAL" and self.arn:
            self.load_balancers = self._client(client).list(
                service_name,
                "list-resources-for-web-acl",
                "ResourceArns",
                expected_errors=[NonexistentItem],
                WebACLArn=self.arn,
                ResourceType="APPLICATION_LOAD_BALANCER",
            )
        if self.arn:
            self.logging_configuration = self.read_logging_configuration(client)

    def read_logging_configuration(self, client: AwsClient) -> Optional[LoggingConfiguration]:
        result = self._client(client).get(
            service_name,
            "get-logging-configuration",
            result_name="LoggingConfiguration",
            expected_errors=[NonexistentItem],
            ResourceArn=self.arn,
        )
        if not result:
            return None
        try:
            return LoggingConfiguration.from_api(result)
        except DecodeError as e:
            e.aggregate = self.owner()
            raise e.at("logging_configuration")

    def sync_load_balancers(self, client: AwsClient) -> None:
        scoped = self._client(client)
        desired, remote = set(self.load_balancers), set(self._remote_load_balancers)
        for arn in sorted(remote - desired):
            self.log.info(f"disassociate {arn}")
            scoped.call(service_name, "disassociate-web-acl", None, ResourceArn=arn)
        for arn in sorted(desired - remote):
            self.log.info(f"associate {arn}")
            scoped.call(service_name, "associate-web-acl", None, WebACLArn=self.arn, ResourceArn=arn)
        self._remote_load_balancers = list(self.load_balancers)

    def sync_logging_configuration(self, client: AwsClient) -> None:
        desired = self.logging_configuration_api()
        if desired == self._remote_logging_configuration:
            return
        if desired is not None:
            self.log.info("put logging configuration")
            self._client(client).call(
                service_name,
                "put-logging-configuration",
                None,
                LoggingConfiguration={**desired, "ResourceArn": self.arn},
            )
        else:
            self.log.info("delete logging configuration")
            self._client(client).call(service_name, "delete-logging-configuration", None, ResourceArn=self.arn)
        self._remote_logging_configuration = desired

    def after_create(self, client: AwsClient) -> None:
        self.sync_load_balancers(client)
        self.sync_logging_configuration(client)

    def after_update(self, client: AwsClient) -> None:
        self.sync_load_balancers(client)
        self.sync_logging_configuration(client)

    def before_delete(self, client: AwsClient) -> None:
        # a web ACL can only be deleted, if it is not associated to any resource
        desired = self.load_balancers
        self.load_balancers = []
        self.sync_load_balancers(client)
        self.load_balancers = desired
        if self._remote_logging_configuration is not None:
            self.log.info("delete logging configuration")
            self._client(client).call(service_name, "delete-logging-configuration", None, ResourceArn=self.arn)
            self._remote_logging_configuration = None
