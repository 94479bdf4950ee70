"""
Print-layout composition for offer documents.

An offer is printed as an A4 page: the template background, the template's
parameters placed at their stored canvas positions with values taken from the
offer, a signature block, and the attached modules' content after it.
"""

from __future__ import annotations

import html
import io
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, List, Optional, Union

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import Comment
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfgen import canvas as pdf_canvas

from backend.config import Settings
from backend.template_editor import Canvas, clamp_all
from shared.formatting import format_date, format_price
from shared.rich_text import BLOCK_TAGS, HEADING_TAGS, sanitize_html
from shared.types import (
    Module,
    Offer,
    OfferDraft,
    OfferTemplate,
    Position,
    Scheme,
    TemplateParameter,
)

logger = logging.getLogger(__name__)

OfferLike = Union[Offer, OfferDraft]

DEFAULT_PARAMETERS = [
    TemplateParameter(
        id="date", label="Tanggal", position=Position(600, 160), key="offerDate"
    ),
    TemplateParameter(
        id="customer", label="Kepada Yth.", position=Position(64, 220), key="customerName"
    ),
    TemplateParameter(
        id="scheme", label="Skema", position=Position(64, 300), key="schemeName"
    ),
    TemplateParameter(
        id="price", label="Harga", position=Position(64, 360), key="price"
    ),
    TemplateParameter(
        id="request", label="Permintaan", position=Position(64, 420), key="userRequest"
    ),
]

# CSS applied to <font size="N"> produced by the rich-text editor.
FONT_SIZE_CSS = {
    "7": "font-size: 2.25rem; font-weight: 700;",
    "6": "font-size: 1.875rem; font-weight: 700;",
    "5": "font-size: 1.5rem; font-weight: 600;",
    "4": "font-size: 1.25rem; font-weight: 600;",
    "3": "font-size: 1rem;",
    "2": "font-size: 0.875rem;",
    "1": "font-size: 0.75rem;",
}


@dataclass
class PlacedField:
    id: str
    key: str
    label: str
    value: str
    x: float
    y: float


@dataclass
class PrintedModule:
    id: str
    title: str
    html: str


@dataclass
class SignatureBlock:
    city: str
    date_text: str
    organisation: str
    signatory_name: str
    signatory_title: str


@dataclass
class PrintLayout:
    title: str
    canvas_width: float
    canvas_height: float
    signature: SignatureBlock
    background_url: Optional[str] = None
    fields: List[PlacedField] = field(default_factory=list)
    modules: List[PrintedModule] = field(default_factory=list)


def _unit_list(scheme: Optional[Scheme]) -> str:
    if not scheme:
        return ""
    return "\n".join(f"{unit.code} - {unit.name}" for unit in scheme.units)


FIELD_RESOLVERS: Dict[str, Callable[[OfferLike, Optional[Scheme]], str]] = {
    "customerName": lambda offer, scheme: offer.customer_name,
    "schemeName": lambda offer, scheme: offer.scheme_name,
    "offerDate": lambda offer, scheme: format_date(offer.offer_date),
    "price": lambda offer, scheme: format_price(scheme.price) if scheme else "",
    "userRequest": lambda offer, scheme: offer.user_request,
    "unitCodes": lambda offer, scheme: (
        ", ".join(unit.code for unit in scheme.units) if scheme else ""
    ),
    "unitList": lambda offer, scheme: _unit_list(scheme),
    "today": lambda offer, scheme: format_date(date.today()),
}

OFFER_FIELD_KEYS = tuple(FIELD_RESOLVERS)


def resolve_field(key: str, offer: OfferLike, scheme: Optional[Scheme]) -> str:
    resolver = FIELD_RESOLVERS.get(key)
    if resolver is None:
        return ""
    return resolver(offer, scheme)


def compose_layout(
    offer: OfferLike,
    scheme: Optional[Scheme],
    template: Optional[OfferTemplate],
    modules: List[Module],
    settings: Settings,
    background_url: Optional[str] = None,
) -> PrintLayout:
    canvas = Canvas(settings.canvas_width, settings.canvas_height)
    parameters = template.parameters if template else DEFAULT_PARAMETERS

    fields = [
        PlacedField(
            id=param.id,
            key=param.key,
            label=param.label,
            value=resolve_field(param.key, offer, scheme),
            x=param.position.x,
            y=param.position.y,
        )
        for param in clamp_all(parameters, canvas)
    ]

    return PrintLayout(
        title=f"Surat Penawaran - {offer.customer_name}",
        canvas_width=canvas.width,
        canvas_height=canvas.height,
        background_url=background_url,
        fields=fields,
        modules=[
            PrintedModule(id=m.id, title=m.title, html=sanitize_html(m.content))
            for m in modules
        ],
        signature=SignatureBlock(
            city=settings.signature_city,
            date_text=format_date(offer.offer_date),
            organisation=settings.signature_organisation,
            signatory_name=settings.signatory_name,
            signatory_title=settings.signatory_title,
        ),
    )


def _styled_module_html(module_html: str) -> str:
    soup = BeautifulSoup(module_html, "html.parser")
    for font in soup.find_all("font"):
        css = FONT_SIZE_CSS.get(font.get("size", ""))
        if css:
            font["style"] = css
    return str(soup)


def render_html(layout: PrintLayout) -> str:
    """Standalone printable page; positions are percentages of the canvas."""
    esc = html.escape
    parts = []
    for placed in layout.fields:
        left = placed.x / layout.canvas_width * 100
        top = placed.y / layout.canvas_height * 100
        parts.append(
            f'<div class="param" style="left: {left:.3f}%; top: {top:.3f}%;">'
            f'<span class="label">{esc(placed.label)}: </span>'
            f'<span class="value">{esc(placed.value)}</span></div>'
        )

    background = (
        f'<img class="background" src="{esc(layout.background_url, quote=True)}" alt="">'
        if layout.background_url
        else ""
    )
    fields_html = "".join(parts)
    signature = layout.signature
    modules = "".join(
        f'<section class="module page"><h2>{esc(m.title)}</h2>'
        f"{_styled_module_html(m.html)}</section>"
        for m in layout.modules
    )

    return f"""<!DOCTYPE html>
<html lang="id">
<head>
<meta charset="utf-8">
<title>{esc(layout.title)}</title>
<style>
  @page {{ size: A4; margin: 0; }}
  body {{ margin: 0; font-family: Helvetica, Arial, sans-serif; color: #1f2937; }}
  .page {{ position: relative; width: 210mm; aspect-ratio: 1 / 1.414; overflow: hidden; page-break-after: always; }}
  .background {{ position: absolute; inset: 0; width: 100%; height: 100%; object-fit: cover; }}
  .param {{ position: absolute; font-size: 0.875rem; white-space: pre-wrap; }}
  .param .label {{ color: #6b7280; font-weight: 600; }}
  .signature {{ position: absolute; bottom: 8rem; right: 5rem; text-align: center; font-size: 0.875rem; }}
  .signature .name {{ margin-top: 3rem; font-weight: 700; text-decoration: underline; }}
  .module {{ aspect-ratio: auto; padding: 2rem; box-sizing: border-box; }}
  .module table {{ width: 100%; border-collapse: collapse; }}
  .module td, .module th {{ border: 1px solid #d1d5db; padding: 0.5rem; }}
  .module img {{ max-width: 100%; height: auto; }}
</style>
</head>
<body>
<div class="page">
{background}
{fields_html}
<div class="signature">
<p>{esc(signature.city)}, {esc(signature.date_text)}</p>
<p>{esc(signature.organisation)}</p>
<p class="name">{esc(signature.signatory_name)}</p>
<p>{esc(signature.signatory_title)}</p>
</div>
</div>
{modules}
</body>
</html>
"""


def _module_paragraphs(module_html: str) -> List[tuple[str, bool]]:
    """
    (text, is_heading) per paragraph of the module content.

    Consecutive text runs owned by the same nearest block (or by no block, for
    bare text at the top level) form one paragraph, so text sitting between
    nested blocks is kept in document order.
    """
    soup = BeautifulSoup(module_html, "html.parser")
    paragraphs: List[tuple[str, bool]] = []
    runs: List[str] = []
    owner = None
    heading = False

    def flush():
        text = " ".join("".join(runs).split())
        if text:
            paragraphs.append((text, heading))
        runs.clear()

    for node in soup.descendants:
        if isinstance(node, Tag) and node.name == "br":
            flush()
            continue
        if not isinstance(node, NavigableString) or isinstance(node, Comment):
            continue
        block = node.find_parent(BLOCK_TAGS)
        if runs and block is not owner:
            flush()
        owner = block
        heading = node.find_parent(HEADING_TAGS) is not None
        runs.append(str(node))
    flush()
    return paragraphs


def render_pdf(
    layout: PrintLayout, background_bytes: Optional[bytes] = None
) -> bytes:
    """A4 PDF of the layout. Canvas pixels are scaled to PDF points."""
    page_w, page_h = A4
    scale = page_w / layout.canvas_width
    margin = 45
    buffer = io.BytesIO()
    c = pdf_canvas.Canvas(buffer, pagesize=A4)
    c.setTitle(layout.title)

    if background_bytes:
        try:
            c.drawImage(
                ImageReader(io.BytesIO(background_bytes)),
                0,
                0,
                width=page_w,
                height=page_h,
                preserveAspectRatio=False,
            )
        except Exception as e:
            logger.warning("Could not draw offer background: %s", e)

    font_size = 10
    for placed in layout.fields:
        x = placed.x * scale
        y = page_h - placed.y * scale - font_size
        text = f"{placed.label}: {placed.value}"
        max_width = max(page_w - x - margin / 2, 60)
        lines = []
        for raw_line in text.split("\n"):
            lines.extend(simpleSplit(raw_line, "Helvetica", font_size, max_width) or [""])
        c.setFont("Helvetica", font_size)
        for line in lines:
            c.drawString(x, y, line)
            y -= font_size * 1.3

    signature = layout.signature
    sig_x = page_w - 150
    sig_y = 220
    c.setFont("Helvetica", 10)
    c.drawCentredString(sig_x, sig_y, f"{signature.city}, {signature.date_text}")
    c.drawCentredString(sig_x, sig_y - 14, signature.organisation)
    c.setFont("Helvetica-Bold", 10)
    c.drawCentredString(sig_x, sig_y - 80, signature.signatory_name)
    c.setFont("Helvetica", 10)
    c.drawCentredString(sig_x, sig_y - 94, signature.signatory_title)

    for module in layout.modules:
        c.showPage()
        y = page_h - margin
        c.setFont("Helvetica-Bold", 16)
        c.drawString(margin, y, module.title)
        y -= 28
        for text, is_heading in _module_paragraphs(module.html):
            font = "Helvetica-Bold" if is_heading else "Helvetica"
            size = 13 if is_heading else 10
            for line in simpleSplit(text, font, size, page_w - 2 * margin):
                if y < margin:
                    c.showPage()
                    y = page_h - margin
                c.setFont(font, size)
                c.drawString(margin, y, line)
                y -= size * 1.4
            y -= 6

    c.showPage()
    c.save()
    return buffer.getvalue()
