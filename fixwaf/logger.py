import json
import os
from logging import (
    getLogger,
    basicConfig,
    Formatter,
    Logger,
    LoggerAdapter,
    LogRecord,
    StreamHandler,
    DEBUG,
    INFO,
    WARNING,
    ERROR,
    CRITICAL,
)
from typing import Any, ClassVar, Dict, List, Mapping, MutableMapping, Optional, Tuple

from attrs import define, field

from fixwaf.types import Json

getLogger().setLevel(ERROR)
getLogger("fix").setLevel(INFO)

# attributes a log record can carry to describe the affected rule group or web ACL
ContextKeys = ["aggregate", "scope", "action"]

DefaultFields = {
    "timestamp": "asctime",
    "level": "levelname",
    "message": "message",
    "logger": "name",
    "thread": "threadName",
}


@define
class LoggingConfig:
    kind: ClassVar[str] = "waf_logging"
    verbose: bool = field(default=False, metadata={"description": "Log debug messages of fixwaf"})
    quiet: bool = field(default=False, metadata={"description": "Only log errors"})
    json_format: bool = field(default=True, metadata={"description": "Write one json object per log line"})


class JsonFormatter(Formatter):
    """
    Render a log record as json object.
    fmt_dict maps the name of the json property to the attribute of the log record.
    Context attributes (see ContextKeys) are added, if the record defines them.
    """

    def __init__(
        self,
        fmt_dict: Mapping[str, str],
        time_format: str = "%Y-%m-%dT%H:%M:%S",
        static_values: Optional[Dict[str, str]] = None,
        context_keys: Optional[List[str]] = None,
    ):
        super().__init__()
        self.fmt_dict = fmt_dict
        self.time_format = time_format
        self.static_values = static_values or {}
        self.context_keys = ContextKeys if context_keys is None else context_keys
        self.__use_time = "asctime" in self.fmt_dict.values()

    def usesTime(self) -> bool:  # noqa: N802
        return self.__use_time

    def to_dict(self, record: LogRecord) -> Json:
        record.message = record.getMessage()
        if self.__use_time:
            record.asctime = self.formatTime(record, self.time_format)

        result: Json = {name: getattr(record, attr, None) for name, attr in self.fmt_dict.items()}
        result.update(self.static_values)
        for key in self.context_keys:
            if (value := getattr(record, key, None)) is not None:
                result[key] = value

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            result["exception"] = record.exc_text
        if record.stack_info:
            result["stack_info"] = self.formatStack(record.stack_info)
        return result

    def format(self, record: LogRecord) -> str:
        return json.dumps(self.to_dict(record), default=str)


class AggregateLogger(LoggerAdapter):  # type: ignore
    """
    Logger bound to one rule group or web ACL.
    The identity is prepended to the message and passed as context to the formatter.
    """

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        context = self.extra or {}
        kwargs["extra"] = {**context, **kwargs.get("extra", {})}
        return f"[{context.get('aggregate')}] {msg}", kwargs


def aggregate_logger(logger: Logger, aggregate: str, scope: Optional[str], **context: Any) -> AggregateLogger:
    return AggregateLogger(logger, {"aggregate": aggregate, "scope": scope, **context})


def setup_logger(
    proc: str,
    *,
    force: bool = True,
    verbose: bool = False,
    quiet: bool = False,
    level: Optional[str] = None,
    json_format: bool = True,
) -> None:
    # plain text output can be enforced via env var
    if json_format and os.environ.get("FIXWAF_LOG_TEXT", "false").lower() != "true":
        handler = StreamHandler()
        handler.setFormatter(JsonFormatter(DefaultFields, static_values={"process": proc}))
        basicConfig(handlers=[handler], force=force)
    else:
        log_format = os.environ.get(
            "FIXWAF_LOG_FORMAT", f"%(asctime)s|{proc}|%(levelname)5s|%(name)s|%(threadName)10s  %(message)s"
        )
        basicConfig(format=log_format, datefmt="%y-%m-%d %H:%M:%S", force=force)

    if level:
        getLogger("fix").setLevel(level)
    elif verbose or os.environ.get("FIXWAF_VERBOSE", "false").lower() == "true":
        getLogger("fix").setLevel(DEBUG)
    elif quiet:
        getLogger().setLevel(WARNING)
        getLogger("fix").setLevel(CRITICAL)
    else:
        getLogger("fix").setLevel(INFO)


def setup_from_config(proc: str, config: LoggingConfig) -> None:
    setup_logger(proc, verbose=config.verbose, quiet=config.quiet, json_format=config.json_format)
