from __future__ import annotations

import datetime as _dt
import re
from decimal import Decimal
from typing import Any, List

from redshift_data_client.exceptions.errors import ValidationError

# Data API parameter names: letters, digits and underscores.
PARAM_NAME_RE = re.compile(r"^[0-9A-Za-z_]+$")
POSITIONAL_PREFIX = "param"


def param_to_str(name: str, value: Any) -> str:
    """Stringify a bind value the way the Data API expects (all values are text)."""
    if value is None:
        raise ValidationError(f"Parameter '{name}' is None; the Data API cannot bind NULL, inline it in the SQL")
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, str):
        return value
    if isinstance(value, _dt.datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, (_dt.date, _dt.time)):
        return value.isoformat()
    raise ValidationError(f"Unsupported type for parameter '{name}': {type(value).__name__}")


def sql_literal(value: Any) -> str:
    """Render a Python value as a Redshift SQL literal."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, str):
        return "'" + value.replace("'", "''") + "'"
    if isinstance(value, _dt.datetime):
        return f"'{value.isoformat(sep=' ')}'::timestamp"
    if isinstance(value, _dt.date):
        return f"'{value.isoformat()}'::date"
    if isinstance(value, _dt.time):
        return f"'{value.isoformat()}'::time"
    raise ValidationError(f"Cannot render {type(value).__name__} as a SQL literal")


def _scan(sql: str, on_token) -> str:
    """Walk ``sql`` outside of quoted text and comments, letting ``on_token``
    rewrite ``?`` and ``:name`` tokens. Returns the rewritten SQL."""
    out: List[str] = []
    i = 0
    n = len(sql)
    while i < n:
        ch = sql[i]
        if ch in ("'", '"'):
            j = i + 1
            while j < n:
                if sql[j] == ch:
                    if j + 1 < n and sql[j + 1] == ch:
                        j += 2
                        continue
                    break
                j += 1
            out.append(sql[i:j + 1])
            i = j + 1
        elif sql.startswith("--", i):
            j = sql.find("\n", i)
            j = n if j == -1 else j
            out.append(sql[i:j])
            i = j
        elif sql.startswith("/*", i):
            j = sql.find("*/", i + 2)
            j = n if j == -1 else j + 2
            out.append(sql[i:j])
            i = j
        elif ch == ":" and sql.startswith("::", i):
            # Postgres-style cast, not a parameter
            out.append("::")
            i += 2
        elif ch == ":" and i + 1 < n and (sql[i + 1].isalnum() or sql[i + 1] == "_"):
            j = i + 1
            while j < n and (sql[j].isalnum() or sql[j] == "_"):
                j += 1
            out.append(on_token(sql[i:j]))
            i = j
        elif ch == "?":
            out.append(on_token("?"))
            i += 1
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def bind_positional(sql: str, count: int) -> str:
    """Rewrite ``?`` placeholders to ``:param1 .. :paramN``."""
    seen = 0

    def _token(tok: str) -> str:
        nonlocal seen
        if tok != "?":
            return tok
        seen += 1
        return f":{POSITIONAL_PREFIX}{seen}"

    rewritten = _scan(sql, _token)
    if seen != count:
        raise ValidationError(f"SQL has {seen} positional placeholder(s) but {count} value(s) were supplied")
    return rewritten


def inline_named(sql: str, params: dict) -> str:
    """Substitute ``:name`` placeholders with SQL literals (batch statements take no parameters)."""
    missing: List[str] = []

    def _token(tok: str) -> str:
        if tok == "?":
            return tok
        name = tok[1:]
        if name not in params:
            missing.append(name)
            return tok
        return sql_literal(params[name])

    rendered = _scan(sql, _token)
    if missing:
        raise ValidationError(f"No value supplied for placeholder(s): {', '.join(sorted(set(missing)))}")
    return rendered
