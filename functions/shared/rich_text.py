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

"""
Helpers for module content authored in the contentEditable editor.

The editor produces loose HTML (`<b>`, `<font size="5">`, `<div align=...>`).
Content is sanitized before it is stored and again before it is printed.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import Comment

ALLOWED_TAGS = {
    "a",
    "b",
    "blockquote",
    "br",
    "div",
    "em",
    "font",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "h6",
    "i",
    "img",
    "li",
    "ol",
    "p",
    "span",
    "strong",
    "table",
    "tbody",
    "td",
    "th",
    "thead",
    "tr",
    "u",
    "ul",
}

# Removed together with everything inside them.
DROPPED_TAGS = {"script", "style", "iframe", "object", "embed", "noscript"}

HEADING_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6")
BLOCK_TAGS = {"p", "div", "li", "blockquote", "td", "th", *HEADING_TAGS}
ALIGNMENTS = ("left", "center", "right", "justify")

_TEXT_ALIGN = re.compile(r"text-align\s*:\s*(left|center|right|justify)", re.I)
_BOLD_WEIGHT = re.compile(r"font-weight\s*:\s*(bold|[6-9]00)", re.I)
_ITALIC_STYLE = re.compile(r"font-style\s*:\s*italic", re.I)
_SAFE_URL = re.compile(r"^(https?:|data:image/)", re.I)
_SAFE_LINK = re.compile(r"^(https?:|mailto:)", re.I)


@dataclass
class FormattingState:
    """What the editor toolbar shows as active at the caret."""

    bold: bool = False
    italic: bool = False
    underline: bool = False
    heading: str = "p"
    font_size: Optional[int] = None
    align: str = "left"


def _clean_attributes(tag: Tag) -> None:
    kept = {}
    align = tag.get("align")
    if isinstance(align, str) and align.lower() in ALIGNMENTS:
        kept["align"] = align.lower()

    style = tag.get("style")
    if isinstance(style, str):
        match = _TEXT_ALIGN.search(style)
        if match:
            kept["style"] = f"text-align: {match.group(1).lower()}"

    if tag.name == "font":
        size = tag.get("size")
        if isinstance(size, str) and size.isdigit() and 1 <= int(size) <= 7:
            kept["size"] = size
    elif tag.name == "img":
        src = tag.get("src")
        if isinstance(src, str) and _SAFE_URL.match(src.strip()):
            kept["src"] = src.strip()
        alt = tag.get("alt")
        if isinstance(alt, str):
            kept["alt"] = alt
    elif tag.name == "a":
        href = tag.get("href")
        if isinstance(href, str) and _SAFE_LINK.match(href.strip()):
            kept["href"] = href.strip()
    elif tag.name in ("td", "th"):
        for span_attr in ("colspan", "rowspan"):
            value = tag.get(span_attr)
            if isinstance(value, str) and value.isdigit():
                kept[span_attr] = value

    tag.attrs = kept


def sanitize_html(html: str) -> str:
    """Strips everything the editor could not have produced."""
    soup = BeautifulSoup(html or "", "html.parser")

    for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()

    for tag in soup.find_all(DROPPED_TAGS):
        tag.decompose()

    for tag in soup.find_all(True):
        if tag.name not in ALLOWED_TAGS:
            tag.unwrap()
            continue
        _clean_attributes(tag)

    for img in soup.find_all("img"):
        if "src" not in img.attrs:
            img.decompose()

    return str(soup).strip()


def text_content(html: str) -> str:
    soup = BeautifulSoup(html or "", "html.parser")
    for tag in soup.find_all(DROPPED_TAGS):
        tag.decompose()
    return " ".join(soup.get_text(" ").split())


def text_length(html: str) -> int:
    return len(text_content(html))


def _block_alignment(tag: Tag) -> Optional[str]:
    style = tag.get("style")
    if isinstance(style, str):
        match = _TEXT_ALIGN.search(style)
        if match:
            return match.group(1).lower()
    align = tag.get("align")
    if isinstance(align, str) and align.lower() in ALIGNMENTS:
        return align.lower()
    return None


def formatting_state(html: str) -> FormattingState:
    """
    Computes the toolbar state for a caret placed at the end of `html`.

    Walks up from the last non-blank text node; the innermost match wins for
    heading, font size and alignment.
    """
    state = FormattingState()
    soup = BeautifulSoup(html or "", "html.parser")

    caret: Optional[NavigableString] = None
    for node in soup.find_all(string=True):
        if isinstance(node, Comment) or not node.strip():
            continue
        caret = node
    if caret is None:
        return state

    heading_found = align_found = False
    for ancestor in caret.parents:
        if not isinstance(ancestor, Tag) or ancestor.name == "[document]":
            continue
        name = ancestor.name
        style = ancestor.get("style") if isinstance(ancestor.get("style"), str) else ""

        if name in ("b", "strong") or _BOLD_WEIGHT.search(style):
            state.bold = True
        if name in ("i", "em") or _ITALIC_STYLE.search(style):
            state.italic = True
        if name == "u" or "underline" in style:
            state.underline = True

        if name == "font" and state.font_size is None:
            size = ancestor.get("size")
            if isinstance(size, str) and size.isdigit():
                state.font_size = int(size)

        if name in HEADING_TAGS and not heading_found:
            state.heading = name
            heading_found = True

        if name in BLOCK_TAGS and not align_found:
            alignment = _block_alignment(ancestor)
            if alignment:
                state.align = alignment
                align_found = True

    return state
