import hashlib
import json
import logging
import time
from functools import wraps
from typing import Any

from fixwaf.types import DecoratedFn, JsonElement

log = logging.getLogger("fix.waf")


def canonical_json(js: JsonElement) -> str:
    """
    Render a json element in a canonical form: object keys are sorted, list elements are sorted.
    All lists in the rule statement schema have set semantics, so the element order is not relevant.
    """

    def walk(element: Any) -> Any:
        if isinstance(element, dict):
            return {k: walk(v) for k, v in sorted(element.items())}
        elif isinstance(element, (list, tuple)):
            return sorted((walk(v) for v in element), key=lambda v: json.dumps(v, sort_keys=True))
        else:
            return element

    return json.dumps(walk(js), sort_keys=True, separators=(",", ":"))


def content_hash(js: JsonElement) -> str:
    return hashlib.sha256(canonical_json(js).encode("utf-8")).hexdigest()


def log_runtime(f: DecoratedFn) -> DecoratedFn:
    @wraps(f)
    def timer(*args: Any, **kwargs: Any) -> Any:
        start = time.time()
        ret = f(*args, **kwargs)
        runtime = time.time() - start
        args_str = ", ".join([repr(arg) for arg in args])
        kwargs_str = ", ".join([f"{k}={repr(v)}" for k, v in kwargs.items()])
        if len(args) > 0 and len(kwargs) > 0:
            args_str += ", "
        log.debug(f"Runtime of {f.__name__}({args_str}{kwargs_str}): {runtime:.3f} seconds")
        return ret

    return timer  # type: ignore
