# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

"""Key-case conversion and dataclass <-> document helpers."""

from __future__ import annotations

import re
from dataclasses import asdict
from datetime import date, datetime
from typing import Any, Literal, Type, TypeVar

from dacite import Config, from_dict

T = TypeVar("T")

Direction = Literal["snake_to_camel", "camel_to_snake"]

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")


def snake_to_camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def camel_to_snake(key: str) -> str:
    return _CAMEL_BOUNDARY.sub(r"_\1", key).lower()


def convert_keys(data: Any, direction: Direction) -> Any:
    """Recursively converts dict keys. Values are left untouched."""
    convert = snake_to_camel if direction == "snake_to_camel" else camel_to_snake
    if isinstance(data, dict):
        return {
            convert(k) if isinstance(k, str) else k: convert_keys(v, direction)
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [convert_keys(item, direction) for item in data]
    return data


def _parse_datetime(value: Any) -> Any:
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return value


def _parse_date(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str):
        return date.fromisoformat(value[:10])
    return value


RECORD_CONFIG = Config(
    type_hooks={datetime: _parse_datetime, date: _parse_date},
    check_types=False,
)


def encode_dates(data: Any) -> Any:
    # Document stores take datetimes natively but not bare dates.
    if isinstance(data, dict):
        return {k: encode_dates(v) for k, v in data.items()}
    if isinstance(data, list):
        return [encode_dates(v) for v in data]
    if isinstance(data, date) and not isinstance(data, datetime):
        return data.isoformat()
    return data


def record_to_document(record: Any) -> dict:
    """Dataclass -> camelCase document (without the `id` key)."""
    data = asdict(record)
    data.pop("id", None)
    return convert_keys(encode_dates(data), "snake_to_camel")


def record_from_document(record_type: Type[T], document: dict) -> T:
    """camelCase document -> dataclass."""
    return from_dict(
        data_class=record_type,
        data=convert_keys(document, "camel_to_snake"),
        config=RECORD_CONFIG,
    )


def encode_json_safe(data: Any) -> Any:
    """Replaces datetimes and dates with ISO strings so `data` can go through json."""
    if isinstance(data, dict):
        return {k: encode_json_safe(v) for k, v in data.items()}
    if isinstance(data, list):
        return [encode_json_safe(v) for v in data]
    if isinstance(data, (date, datetime)):
        return data.isoformat()
    return data
