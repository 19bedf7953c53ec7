"""
Template function map.

Functions receive plain Python values. A piped value arrives as the last
argument, so `{{ .name | default "anon" }}` calls `default("anon", name)`.
Failures are raised as RenderError by the renderer, which wraps any other
exception a function raises.
"""

import base64
import html
import json
import re
from collections.abc import Callable, Mapping
from pathlib import PurePosixPath
from typing import Any
from urllib.parse import quote_plus

import yaml

from templr.core.path_utils import split_path_components
from templr.exceptions import RenderError

NO_VALUE = "<no value>"

FunctionMap = dict[str, Callable[..., Any]]


# Value formatting and truthiness


def format_value(value: Any) -> str:
    """Format a value the way the engine prints it."""
    if value is None:
        return NO_VALUE
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    if isinstance(value, Mapping):
        items = " ".join(f"{format_value(k)}:{format_value(v)}" for k, v in sorted(value.items()))
        return f"map[{items}]"
    if isinstance(value, (list, tuple)):
        return "[" + " ".join(format_value(item) for item in value) + "]"
    return str(value)


def is_true(value: Any) -> bool:
    """Truthiness: false, 0, nil and empty strings/collections are false."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, (str, list, tuple, Mapping)):
        return len(value) > 0
    return True


def is_empty(value: Any) -> bool:
    return not is_true(value)


# Go fmt-style formatting

_VERB = re.compile(r"%([-+# 0]*)(\d+)?(?:\.(\d+))?([a-zA-Z%])")


def sprintf(fmt: str, *args: Any) -> str:
    """
    Minimal Printf: supports %v %s %d %f %e %g %q %t %x %X %o %b %c %%.

    Missing arguments render as `%!v(MISSING)`; extra arguments are appended
    as `%!(EXTRA ...)`.
    """
    remaining = list(args)

    def substitute(match: re.Match) -> str:
        flags, width, precision, verb = match.groups()
        if verb == "%":
            return "%"
        if not remaining:
            return f"%!{verb}(MISSING)"
        arg = remaining.pop(0)
        if verb in "vs":
            return format(format_value(arg), _string_spec(flags, width, precision))
        if verb == "q":
            return format(json.dumps(format_value(arg), ensure_ascii=False), _string_spec(flags, width, None))
        if verb == "t":
            return format(format_value(bool(arg)), _string_spec(flags, width, None))
        if verb == "d":
            return format(int(arg), _numeric_spec(flags, width) + "d")
        if verb in "fFeEgG":
            digits = precision if precision is not None else ("6" if verb in "fFeE" else "")
            return format(float(arg), _numeric_spec(flags, width) + (f".{digits}" if digits else "") + verb)
        if verb in "xXob":
            if isinstance(arg, str):
                encoded = arg.encode().hex()
                return encoded.upper() if verb == "X" else encoded
            return format(int(arg), _numeric_spec(flags, width, alternate="#" in flags) + verb)
        if verb == "c":
            return chr(int(arg))
        return f"%!{verb}({format_value(arg)})"

    result = _VERB.sub(substitute, fmt)
    if remaining:
        extras = ", ".join(f"{type(arg).__name__}={format_value(arg)}" for arg in remaining)
        result += f"%!(EXTRA {extras})"
    return result


def _string_spec(flags: str, width: str | None, precision: str | None) -> str:
    align = "<" if "-" in flags else ">"
    spec = f"{align}{width}" if width else ""
    if precision is not None:
        spec += f".{precision}"
    return spec


def _numeric_spec(flags: str, width: str | None, alternate: bool = False) -> str:
    # Python order: [align][sign][#][0][width]
    spec = "<" if "-" in flags else ""
    if "+" in flags:
        spec += "+"
    elif " " in flags:
        spec += " "
    if alternate:
        spec += "#"
    if "0" in flags and "-" not in flags:
        spec += "0"
    return spec + (width or "")


def go_print(*args: Any) -> str:
    """Concatenate operands, adding spaces between operands when neither is a string."""
    parts: list[str] = []
    for i, arg in enumerate(args):
        if i > 0 and not isinstance(arg, str) and not isinstance(args[i - 1], str):
            parts.append(" ")
        parts.append(format_value(arg))
    return "".join(parts)


def go_println(*args: Any) -> str:
    return " ".join(format_value(arg) for arg in args) + "\n"


# Comparison and logic


def _compare(name: str, op: Callable[[Any, Any], bool], left: Any, right: Any) -> bool:
    try:
        return op(left, right)
    except TypeError as exc:
        raise RenderError(f"{name}: incompatible types for comparison") from exc


def eq(left: Any, *others: Any) -> bool:
    """True if left equals any of the others."""
    if not others:
        raise RenderError("eq: missing argument for comparison")
    return any(left == other for other in others)


def and_(*args: Any) -> Any:
    """Return the first falsy argument, or the last one."""
    for arg in args[:-1]:
        if not is_true(arg):
            return arg
    return args[-1]


def or_(*args: Any) -> Any:
    """Return the first truthy argument, or the last one."""
    for arg in args[:-1]:
        if is_true(arg):
            return arg
    return args[-1]


# Collections


def length(value: Any) -> int:
    if value is None:
        raise RenderError("len of nil pointer")
    try:
        return len(value)
    except TypeError as exc:
        raise RenderError(f"len of type {type(value).__name__}") from exc


def index(collection: Any, *keys: Any) -> Any:
    """Index into maps by key and lists by integer position."""
    current = collection
    for key in keys:
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(key)
        elif isinstance(current, (list, tuple, str)):
            if not isinstance(key, int) or not -len(current) <= key < len(current):
                raise RenderError(f"index out of range: {key}")
            current = current[key]
        else:
            raise RenderError(f"can't index item of type {type(current).__name__}")
    return current


def slice_(value: Any, *bounds: int) -> Any:
    if len(bounds) > 2:
        raise RenderError("slice: too many indexes")
    start = bounds[0] if bounds else 0
    stop = bounds[1] if len(bounds) > 1 else None
    return value[start:stop]


def make_dict(*pairs: Any) -> dict:
    if len(pairs) % 2:
        raise RenderError("dict: expects an even number of arguments")
    return {str(pairs[i]): pairs[i + 1] for i in range(0, len(pairs), 2)}


def keys(*maps: Mapping) -> list[str]:
    collected: list[str] = []
    for mapping in maps:
        collected.extend(mapping.keys())
    return sorted(collected)


def has_key(mapping: Mapping, key: str) -> bool:
    return key in mapping


def set_key(mapping: dict, key: str, value: Any) -> dict:
    if mapping is None:
        raise RenderError("set: target map is nil")
    mapping[key] = value
    return mapping


def set_dotted(mapping: dict, dotted: str, value: Any) -> dict:
    """Set a dotted key, creating or replacing intermediate maps."""
    if mapping is None:
        raise RenderError("setd: target map is nil")
    parts = split_path_components(dotted)
    current = mapping
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    if parts:
        current[parts[-1]] = value
    return mapping


def merge_deep(left: Mapping, right: Mapping) -> dict:
    """Deep-merge two maps into a new one, right winning."""
    merged = dict(left)
    for key, value in right.items():
        existing = merged.get(key)
        if isinstance(existing, Mapping) and isinstance(value, Mapping):
            merged[key] = merge_deep(existing, value)
        else:
            merged[key] = value
    return merged


# Defaults and validation


def default(fallback: Any, value: Any = None) -> Any:
    return value if is_true(value) else fallback


def coalesce(*values: Any) -> Any:
    for value in values:
        if is_true(value):
            return value
    return None


def ternary(true_value: Any, false_value: Any, condition: Any) -> Any:
    return true_value if is_true(condition) else false_value


def required(message: str, value: Any = None) -> Any:
    """Fail rendering when value is nil, blank, or an empty list/map."""
    if value is None:
        raise RenderError(message)
    if isinstance(value, str) and not value.strip():
        raise RenderError(message)
    if isinstance(value, (list, tuple, Mapping)) and not value:
        raise RenderError(message)
    return value


def fail(message: str) -> str:
    raise RenderError(message)


def safe(value: Any, fallback: str) -> str:
    """Render value, or fallback when it is missing or blank."""
    if value is None:
        return fallback
    if isinstance(value, str):
        return value if value.strip() else fallback
    return format_value(value)


# Strings


def indent(spaces: int, text: str) -> str:
    pad = " " * spaces
    return pad + text.replace("\n", "\n" + pad)


def nindent(spaces: int, text: str) -> str:
    return "\n" + indent(spaces, text)


def quote(*values: Any) -> str:
    return " ".join(json.dumps(format_value(value), ensure_ascii=False) for value in values if value is not None)


def squote(*values: Any) -> str:
    return " ".join(f"'{format_value(value)}'" for value in values if value is not None)


def js_escape(value: Any) -> str:
    return json.dumps(format_value(value), ensure_ascii=True)[1:-1].replace("'", "\\'").replace("<", "\\u003C").replace(">", "\\u003E")


# Encoding


def to_yaml(value: Any) -> str:
    return yaml.safe_dump(value, default_flow_style=False, sort_keys=True, allow_unicode=True)


def from_yaml(text: str) -> dict:
    data = yaml.safe_load(text)
    return data if isinstance(data, dict) else {}


def to_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def to_pretty_json(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


def from_json(text: str) -> Any:
    return json.loads(text)


def b64enc(text: str) -> str:
    return base64.b64encode(text.encode()).decode()


def b64dec(text: str) -> str:
    return base64.b64decode(text.encode()).decode()


def base64url(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode()).decode()


def base64url_decode(text: str) -> str:
    return base64.urlsafe_b64decode(text.encode()).decode()


def path_ext(path: str) -> str:
    return PurePosixPath(path).suffix


def path_stem(path: str) -> str:
    return PurePosixPath(path).stem


def _to_int(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, str):
        try:
            return int(float(value))
        except ValueError:
            return 0
    return int(value)


def _to_float(value: Any) -> float:
    if value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def build_function_map() -> FunctionMap:
    """
    Return the default function map.

    The renderer adds `include` per execution since it needs access to the
    template set.
    """
    return {
        # engine built-ins
        "and": and_,
        "or": or_,
        "not": lambda value: not is_true(value),
        "len": length,
        "index": index,
        "slice": slice_,
        "print": go_print,
        "printf": sprintf,
        "println": go_println,
        "html": lambda value: html.escape(format_value(value)),
        "js": js_escape,
        "urlquery": lambda *values: quote_plus(go_print(*values)),
        "call": lambda fn, *args: fn(*args),
        "eq": eq,
        "ne": lambda left, right: _compare("ne", lambda a, b: a != b, left, right),
        "lt": lambda left, right: _compare("lt", lambda a, b: a < b, left, right),
        "le": lambda left, right: _compare("le", lambda a, b: a <= b, left, right),
        "gt": lambda left, right: _compare("gt", lambda a, b: a > b, left, right),
        "ge": lambda left, right: _compare("ge", lambda a, b: a >= b, left, right),
        # defaults and validation
        "default": default,
        "empty": is_empty,
        "coalesce": coalesce,
        "ternary": ternary,
        "required": required,
        "fail": fail,
        "safe": safe,
        # strings
        "upper": lambda text: format_value(text).upper(),
        "lower": lambda text: format_value(text).lower(),
        "title": lambda text: format_value(text).title(),
        "trim": lambda text: format_value(text).strip(),
        "trimPrefix": lambda prefix, text: text.removeprefix(prefix),
        "trimSuffix": lambda suffix, text: text.removesuffix(suffix),
        "replace": lambda old, new, text: text.replace(old, new),
        "contains": lambda needle, text: needle in text,
        "hasPrefix": lambda prefix, text: text.startswith(prefix),
        "hasSuffix": lambda suffix, text: text.endswith(suffix),
        "repeat": lambda count, text: text * count,
        "quote": quote,
        "squote": squote,
        "indent": indent,
        "nindent": nindent,
        "join": lambda sep, items: sep.join(format_value(item) for item in items),
        "splitList": lambda sep, text: text.split(sep),
        "toString": format_value,
        # collections
        "list": lambda *items: list(items),
        "dict": make_dict,
        "keys": keys,
        "hasKey": has_key,
        "get": lambda mapping, key: mapping.get(key, ""),
        "set": set_key,
        "setd": set_dotted,
        "mergeDeep": merge_deep,
        # numbers
        "int": _to_int,
        "float64": _to_float,
        "add": lambda *values: sum(values),
        "sub": lambda left, right: left - right,
        "mul": lambda left, right: left * right,
        "div": lambda left, right: left // right if isinstance(left, int) and isinstance(right, int) else left / right,
        "mod": lambda left, right: left % right,
        # encoding
        "toYaml": to_yaml,
        "fromYaml": from_yaml,
        "toJson": to_json,
        "toPrettyJson": to_pretty_json,
        "fromJson": from_json,
        "b64enc": b64enc,
        "b64dec": b64dec,
        "base64url": base64url,
        "base64urlDecode": base64url_decode,
        "pathExt": path_ext,
        "pathStem": path_stem,
    }
