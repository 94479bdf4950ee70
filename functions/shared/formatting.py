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

"""Rupiah prices and Indonesian dates."""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any, Union

# "Rp 1.500.000", "Rp1.500.000", "1.500.000" or a plain "1500000".
_PRICE_GROUPED = re.compile(r"^(?:Rp\.?\s*)?(\d{1,3}(?:\.\d{3})+)$", re.IGNORECASE)
_PRICE_PLAIN = re.compile(r"^(?:Rp\.?\s*)?(\d+)$", re.IGNORECASE)

MONTHS_ID = (
    "Januari",
    "Februari",
    "Maret",
    "April",
    "Mei",
    "Juni",
    "Juli",
    "Agustus",
    "September",
    "Oktober",
    "November",
    "Desember",
)


def parse_price(value: Union[str, int]) -> int:
    """
    Normalizes a rupiah price to an integer.

    Raises:
        ValueError: if `value` is not a whole, non-negative rupiah amount.
    """
    if isinstance(value, bool):
        raise ValueError("Price must be a number")
    if isinstance(value, int):
        if value < 0:
            raise ValueError("Price must not be negative")
        return value
    if not isinstance(value, str):
        raise ValueError("Price must be a string or integer")

    text = value.strip()
    match = _PRICE_GROUPED.match(text) or _PRICE_PLAIN.match(text)
    if not match:
        raise ValueError(
            f"Invalid price format: {value!r}. Example: Rp 1.500.000"
        )
    return int(match.group(1).replace(".", ""))


def format_price(amount: int) -> str:
    return "Rp " + f"{amount:,}".replace(",", ".")


def _coerce_datetime(value: Any) -> Union[date, datetime, None]:
    if isinstance(value, (date, datetime)):
        return value
    if isinstance(value, dict) and "seconds" in value:
        return datetime.fromtimestamp(value["seconds"], tz=timezone.utc)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


def format_date(value: Any, with_time: bool = False) -> str:
    """Formats `value` as e.g. "22 Desember 2025" (optionally with ", HH:MM")."""
    if value is None or value == "":
        return "-"
    parsed = _coerce_datetime(value)
    if parsed is None:
        return str(value)

    text = f"{parsed.day} {MONTHS_ID[parsed.month - 1]} {parsed.year}"
    if with_time and isinstance(parsed, datetime):
        text += f", {parsed.hour:02d}:{parsed.minute:02d}"
    return text
