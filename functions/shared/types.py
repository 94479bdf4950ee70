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

"""Record types for the documents stored by the offer generator."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional


@dataclass
class TrainingUnit:
    code: str
    name: str


@dataclass
class Scheme:
    """A priced list of training units."""

    id: str
    name: str
    units: List[TrainingUnit]
    price: int
    user_id: str
    created_at: datetime
    updated_at: datetime


@dataclass
class Offer:
    """A quote for a customer, generated from a scheme."""

    id: str
    scheme_id: str
    scheme_name: str
    customer_name: str
    offer_date: date
    user_request: str
    user_id: str
    created_at: datetime
    updated_at: datetime
    background_path: Optional[str] = None
    template_id: Optional[str] = None
    module_ids: List[str] = field(default_factory=list)


@dataclass
class Module:
    """Rich-text training content."""

    id: str
    title: str
    content: str
    user_id: str
    created_at: datetime
    updated_at: datetime
    folder_id: Optional[str] = None


@dataclass
class Position:
    x: float
    y: float


@dataclass
class TemplateParameter:
    """A label placed over a template background.

    `key` names the offer field whose value is printed next to the label.
    """

    id: str
    label: str
    position: Position
    key: str


@dataclass
class OfferTemplate:
    id: str
    name: str
    background_path: str
    user_id: str
    created_at: datetime
    parameters: List[TemplateParameter] = field(default_factory=list)


@dataclass
class OfferDraft:
    """An offer that has been built for preview but not yet persisted."""

    draft_id: str
    user_id: str
    scheme_id: str
    scheme_name: str
    customer_name: str
    offer_date: date
    user_request: str
    created_at: datetime
    background_path: Optional[str] = None
    template_id: Optional[str] = None
    module_ids: List[str] = field(default_factory=list)
