from __future__ import annotations

import string
from typing import Any
from urllib.parse import quote

from discord_rest.types import HTTP_METHODS, BucketKey

# Path parameters Discord uses to split otherwise identical routes into
# independent buckets. Order matters: it fixes the layout of BucketKey.major.
MAJOR_PARAMETERS = ("channel_id", "guild_id", "webhook_id", "webhook_token")

_FORMATTER = string.Formatter()


def template_fields(template: str) -> list[str]:
    fields: list[str] = []
    for _, name, spec, conv in _FORMATTER.parse(template):
        if name is None:
            continue
        if not name.isidentifier() or spec or conv:
            raise ValueError(f"unsupported placeholder {{{name}}} in route {template!r}")
        fields.append(name)
    return fields


def resolve_bucket(method: str, template: str, params: dict[str, Any]) -> BucketKey:
    method = method.upper()
    if method not in HTTP_METHODS:
        raise ValueError(f"unsupported http method {method!r}")
    if not template.startswith("/"):
        raise ValueError(f"route template must start with '/': {template!r}")
    names = template_fields(template)
    missing = [n for n in names if params.get(n) in (None, "")]
    if missing:
        raise ValueError(f"missing route parameters for {template}: {', '.join(missing)}")
    major = ":".join(str(params[n]) for n in MAJOR_PARAMETERS if n in names)
    return BucketKey(method=method, route=template, major=major)


class Route:
    """A concrete request target: HTTP method, route template and its parameters."""

    def __init__(self, method: str, template: str, **params: Any) -> None:
        self.bucket = resolve_bucket(method, template, params)
        self.method = self.bucket.method
        self.template = template
        self.params = params
        self.path = template.format(**{k: quote(str(v), safe="@") for k, v in params.items()})

    def __repr__(self) -> str:
        return f"Route({self.method} {self.path}, bucket={self.bucket})"
