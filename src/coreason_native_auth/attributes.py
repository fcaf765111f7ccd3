# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_native_auth

"""
Builds the profile-attribute JSON blob sent with sign-up start.
"""

import json
import math
import re
from collections.abc import Mapping
from typing import Any

RESERVED_ATTRIBUTES = frozenset({"username", "email"})


def is_reserved_attribute(name: str) -> bool:
    """The IdP takes username/email from the `username` parameter; they must not be sent as attributes."""
    return name.lower() in RESERVED_ATTRIBUTES


def normalize_attribute_value(value: Any) -> str | None:
    """
    Normalizes an attribute value to the string form the IdP expects.

    Args:
        value: The raw value (str, bool, int, float, list or anything else).

    Returns:
        The normalized string, or None when the value should be dropped.
    """
    if value is None:
        return None
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return str(int(value)) if value.is_integer() else repr(value)
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, (list, tuple)):
        items = [item for item in (normalize_attribute_value(v) for v in value) if item]
        return ",".join(items) if items else None
    return None


class SignUpAttributeBuilder:
    """
    Merges mapped name fields, caller-supplied extras and static attributes into one payload.

    Attributes:
        attribute_map (dict[str, str]): Value-bag key -> IdP attribute name.
        static_attributes (dict[str, str]): Attributes always sent (already normalized).
    """

    def __init__(self, attribute_map: Mapping[str, str], static_attributes: Mapping[str, str] | None = None) -> None:
        self.attribute_map = dict(attribute_map)
        self.static_attributes = dict(static_attributes or {})

    def build_payload(
        self,
        first_name: str | None = None,
        last_name: str | None = None,
        extra_attributes: Mapping[str, Any] | None = None,
    ) -> dict[str, str]:
        """
        Builds the attribute dictionary.

        Later sources win: mapped fields, then `extra_attributes`, then static attributes.
        Reserved and blank keys are dropped from every source.
        """
        first = first_name.strip() if isinstance(first_name, str) else ""
        last = last_name.strip() if isinstance(last_name, str) else ""
        value_bag = {
            "first_name": first,
            "last_name": last,
            "display_name": re.sub(r"\s+", " ", f"{first} {last}").strip(),
        }

        payload: dict[str, str] = {}

        for source_key, attribute_name in self.attribute_map.items():
            key = attribute_name.strip() if isinstance(attribute_name, str) else ""
            if not key or is_reserved_attribute(key):
                continue
            value = normalize_attribute_value(value_bag.get(source_key))
            if value:
                payload[key] = value

        if isinstance(extra_attributes, Mapping):
            for name, raw_value in extra_attributes.items():
                key = name.strip() if isinstance(name, str) else ""
                if not key or is_reserved_attribute(key):
                    continue
                value = normalize_attribute_value(raw_value)
                if value:
                    payload[key] = value

        for name, value in self.static_attributes.items():
            if name and value and not is_reserved_attribute(name):
                payload[name] = value

        return payload

    def build(
        self,
        first_name: str | None = None,
        last_name: str | None = None,
        extra_attributes: Mapping[str, Any] | None = None,
    ) -> str | None:
        """
        Returns the compact JSON string for the `attributes` form field, or None when empty.
        """
        payload = self.build_payload(first_name, last_name, extra_attributes)
        if not payload:
            return None
        return json.dumps(payload, separators=(",", ":"))
