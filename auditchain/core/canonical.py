"""
Canonical serialization for deterministic hashing.

Every hash in the audit chain covers the canonical form of an entry's
details, so the appender and the verifier must both go through these
functions. Two maps with the same key/value pairs encode identically no
matter their insertion order; sequence order is preserved.

The value space is closed:

    JsonValue = None | bool | int | float | str
              | list[JsonValue] | tuple[JsonValue, ...] | dict[str, JsonValue]

Anything else is rejected with CanonicalEncodingError instead of being
coerced into some string that would still hash.
"""

import json
import math
from decimal import Decimal
from typing import Any, Dict, List, Tuple, Union

from .errors import CanonicalEncodingError

JsonScalar = Union[None, bool, int, float, str]
JsonValue = Union[JsonScalar, List["JsonValue"], Tuple["JsonValue", ...], Dict[str, "JsonValue"]]


def _encode_string(value: str) -> str:
    try:
        value.encode("utf-8")
    except UnicodeEncodeError as ex:
        raise CanonicalEncodingError(f"string is not valid unicode: {value!r}") from ex
    return json.dumps(value, ensure_ascii=False)


def _encode_float(value: float) -> str:
    """
    Format a float the way ECMAScript Number#toString does.

    Python's repr() already yields the shortest round-trip digits; only the
    placement of the decimal point and the exponent style differ.
    """
    if not math.isfinite(value):
        raise CanonicalEncodingError(f"non-finite number cannot be encoded: {value!r}")
    if value == 0:
        return "0"

    sign = "-" if value < 0 else ""
    _, digit_tuple, exponent = Decimal(repr(abs(value))).as_tuple()
    digits = "".join(str(d) for d in digit_tuple).rstrip("0")
    exponent += len(digit_tuple) - len(digits)

    k = len(digits)
    n = exponent + k

    if k <= n <= 21:
        body = digits + "0" * (n - k)
    elif 0 < n <= 21:
        body = digits[:n] + "." + digits[n:]
    elif -6 < n <= 0:
        body = "0." + "0" * (-n) + digits
    else:
        exp = n - 1
        exp_str = ("+" if exp >= 0 else "-") + str(abs(exp))
        mantissa = digits if k == 1 else digits[0] + "." + digits[1:]
        body = mantissa + "e" + exp_str

    return sign + body


def canonical_encode(value: Any) -> str:
    """
    Deterministic string encoding of a JsonValue.

    Rules:
    - None, bool, int, str: their JSON literal
    - float: ECMAScript number formatting (5.0 -> "5")
    - list/tuple: elements in original order
    - dict: str keys only, sorted by their JSON-string form

    Raises:
        CanonicalEncodingError: value (or any nested value) is outside JsonValue
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(int(value))
    if isinstance(value, float):
        return _encode_float(value)
    if isinstance(value, str):
        return _encode_string(value)
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(canonical_encode(item) for item in value) + "]"
    if isinstance(value, dict):
        encoded_keys = []
        for key in value:
            if not isinstance(key, str):
                raise CanonicalEncodingError(
                    f"map keys must be strings, got {type(key).__name__}: {key!r}"
                )
            encoded_keys.append((_encode_string(key), key))
        encoded_keys.sort()
        return (
            "{"
            + ",".join(f"{ek}:{canonical_encode(value[k])}" for ek, k in encoded_keys)
            + "}"
        )
    raise CanonicalEncodingError(f"unsupported type for canonical encoding: {type(value).__name__}")


def canonical_encode_bytes(value: Any) -> bytes:
    """UTF-8 bytes of canonical_encode(value), as written by the file and S3 stores."""
    return canonical_encode(value).encode("utf-8")


def to_json_value(value: Any) -> Any:
    """
    Deep-copy a JsonValue into plain lists and dicts.

    Tuples become lists so stored details read back in the same shape they
    were hashed in. Validation is the same as canonical_encode.
    """
    canonical_encode(value)
    return _copy(value)


def _copy(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _copy(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_copy(v) for v in value]
    return value
