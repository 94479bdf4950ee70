"""
HTTP routes for the offer generator API.
"""

from __future__ import annotations

import io
import logging
from dataclasses import asdict
from datetime import date, datetime, timezone
from typing import Any, Iterable, List, Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile
from fastapi.responses import HTMLResponse
from PIL import Image, UnidentifiedImageError

from backend.auth import CurrentUser
from backend.config import Settings, get_settings
from backend.db import DbClient
from backend.dependencies import (
    get_current_user,
    get_db_client,
    get_draft_store,
    get_storage_client,
)
from backend.drafts import OfferDraftStore
from backend.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationFailedError,
)
from backend.print_layout import PrintLayout, compose_layout, render_html, render_pdf
from backend.repository import (
    module_repository,
    offer_repository,
    scheme_repository,
    template_repository,
)
from backend.schemas import (
    DashboardResponse,
    DragRequest,
    DragResponse,
    FormattingStateRequest,
    FormattingStateResponse,
    ModuleCreate,
    ModulePreviewResponse,
    ModuleResponse,
    ModuleUpdate,
    OfferDetailResponse,
    OfferDraftCreate,
    OfferDraftResponse,
    OfferResponse,
    OfferUpdate,
    PositionModel,
    SchemeCreate,
    SchemeResponse,
    SchemeUpdate,
    SignUrlResponse,
    TemplateCreate,
    TemplateResponse,
    TemplateUpdate,
    UploadResponse,
)
from backend.storage import (
    DEFAULT_CONTENT_TYPE,
    StorageClient,
    is_own_background,
    new_background_path,
)
from backend.template_editor import (
    Canvas,
    Size,
    clamp_all,
    drag_to,
    ensure_unique_ids,
    move,
)
from shared.rich_text import formatting_state, sanitize_html, text_length
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

router = APIRouter()

RECENT_OFFERS_LIMIT = 5

# Pillow format -> (file extension, content type)
BACKGROUND_FORMATS = {
    "PNG": ("png", "image/png"),
    "JPEG": ("jpg", "image/jpeg"),
    "WEBP": ("webp", "image/webp"),
}

OFFER_FIELDS = (
    "scheme_id",
    "scheme_name",
    "customer_name",
    "offer_date",
    "user_request",
    "background_path",
    "template_id",
    "module_ids",
)


def _changes(payload, nullable: Iterable[str] = ()) -> dict[str, Any]:
    """Fields the client sent; explicit nulls only count for `nullable`."""
    allowed = set(nullable)
    return {
        k: v
        for k, v in payload.model_dump(exclude_unset=True).items()
        if v is not None or k in allowed
    }


def _canvas(settings: Settings) -> Canvas:
    return Canvas(settings.canvas_width, settings.canvas_height)


# Schemes


def _scheme_response(scheme: Scheme) -> SchemeResponse:
    return SchemeResponse.model_validate(scheme)


@router.get("/schemes", response_model=List[SchemeResponse])
def list_schemes(
    db: DbClient = Depends(get_db_client),
    user: CurrentUser = Depends(get_current_user),
):
    return [_scheme_response(s) for s in scheme_repository(db).list(user.uid)]


@router.post("/schemes", response_model=SchemeResponse, status_code=201)
def create_scheme(
    payload: SchemeCreate,
    db: DbClient = Depends(get_db_client),
    user: CurrentUser = Depends(get_current_user),
):
    scheme = scheme_repository(db).create(user.uid, payload.model_dump())
    return _scheme_response(scheme)


@router.get("/schemes/{scheme_id}", response_model=SchemeResponse)
def get_scheme(
    scheme_id: str,
    db: DbClient = Depends(get_db_client),
    user: CurrentUser = Depends(get_current_user),
):
    return _scheme_response(scheme_repository(db).get(scheme_id, user.uid))


@router.patch("/schemes/{scheme_id}", response_model=SchemeResponse)
def update_scheme(
    scheme_id: str,
    payload: SchemeUpdate,
    db: DbClient = Depends(get_db_client),
    user: CurrentUser = Depends(get_current_user),
):
    scheme = scheme_repository(db).update(scheme_id, user.uid, _changes(payload))
    return _scheme_response(scheme)


@router.delete("/schemes/{scheme_id}", status_code=204)
def delete_scheme(
    scheme_id: str,
    db: DbClient = Depends(get_db_client),
    user: CurrentUser = Depends(get_current_user),
):
    # Offers keep their denormalized scheme name.
    scheme_repository(db).delete(scheme_id, user.uid)
    return Response(status_code=204)


# Offers


def _check_modules(db: DbClient, user_id: str, module_ids: List[str]) -> None:
    modules = module_repository(db)
    missing = [m for m in module_ids if modules.find(m, user_id) is None]
    if missing:
        raise ValidationFailedError(
            {"module_ids": f"Unknown module(s): {', '.join(missing)}"}
        )


def _check_template(db: DbClient, user_id: str, template_id: Optional[str]) -> None:
    if template_id and template_repository(db).find(template_id, user_id) is None:
        raise ValidationFailedError({"template_id": "Template not found"})


def _require_scheme(db: DbClient, user_id: str, scheme_id: str) -> Scheme:
    scheme = scheme_repository(db).find(scheme_id, user_id)
    if scheme is None:
        raise ValidationFailedError({"scheme_id": "Scheme not found"})
    return scheme


def _load_draft(store: OfferDraftStore, draft_id: str, user: CurrentUser) -> OfferDraft:
    draft = store.load(draft_id)
    if draft is None or draft.user_id != user.uid:
        raise NotFoundError("Draft not found or expired")
    return draft


def _offer_response(offer: Offer) -> OfferResponse:
    return OfferResponse.model_validate(offer)


@router.post("/offers/drafts", response_model=OfferDraftResponse, status_code=201)
def create_offer_draft(
    payload: OfferDraftCreate,
    db: DbClient = Depends(get_db_client),
    store: OfferDraftStore = Depends(get_draft_store),
    user: CurrentUser = Depends(get_current_user),
):
    scheme = _require_scheme(db, user.uid, payload.scheme_id)
    _check_modules(db, user.uid, payload.module_ids)
    _check_template(db, user.uid, payload.template_id)

    draft = OfferDraft(
        draft_id=uuid4().hex,
        user_id=user.uid,
        scheme_id=scheme.id,
        scheme_name=scheme.name,
        customer_name=payload.customer_name,
        offer_date=payload.offer_date or date.today(),
        user_request=payload.user_request,
        created_at=datetime.now(timezone.utc),
        background_path=payload.background_path,
        template_id=payload.template_id,
        module_ids=list(payload.module_ids),
    )
    store.save(draft)
    logger.info("Saved offer draft %s for %s", draft.draft_id, user.uid)
    return OfferDraftResponse.model_validate(draft)


@router.get("/offers/drafts/{draft_id}", response_model=OfferDraftResponse)
def get_offer_draft(
    draft_id: str,
    store: OfferDraftStore = Depends(get_draft_store),
    user: CurrentUser = Depends(get_current_user),
):
    return OfferDraftResponse.model_validate(_load_draft(store, draft_id, user))


@router.get("/offers/drafts/{draft_id}/print", response_model=PrintLayout)
def print_offer_draft(
    draft_id: str,
    db: DbClient = Depends(get_db_client),
    store: OfferDraftStore = Depends(get_draft_store),
    storage: StorageClient = Depends(get_storage_client),
    user: CurrentUser = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    draft = _load_draft(store, draft_id, user)
    return _layout_for(draft, db, storage, user, settings)


@router.post(
    "/offers/drafts/{draft_id}/commit", response_model=OfferResponse, status_code=201
)
def commit_offer_draft(
    draft_id: str,
    db: DbClient = Depends(get_db_client),
    store: OfferDraftStore = Depends(get_draft_store),
    user: CurrentUser = Depends(get_current_user),
):
    draft = _load_draft(store, draft_id, user)
    scheme = scheme_repository(db).find(draft.scheme_id, user.uid)
    if scheme is None:
        raise ConflictError("The selected scheme no longer exists")

    fields = {k: v for k, v in asdict(draft).items() if k in OFFER_FIELDS}
    fields["scheme_name"] = scheme.name
    offer = offer_repository(db).create(user.uid, fields)
    store.discard(draft_id)
    return _offer_response(offer)


@router.delete("/offers/drafts/{draft_id}", status_code=204)
def discard_offer_draft(
    draft_id: str,
    store: OfferDraftStore = Depends(get_draft_store),
    user: CurrentUser = Depends(get_current_user),
):
    _load_draft(store, draft_id, user)
    store.discard(draft_id)
    return Response(status_code=204)


@router.get("/offers", response_model=List[OfferResponse])
def list_offers(
    db: DbClient = Depends(get_db_client),
    user: CurrentUser = Depends(get_current_user),
):
    return [_offer_response(o) for o in offer_repository(db).list(user.uid)]


@router.get("/offers/{offer_id}", response_model=OfferDetailResponse)
def get_offer(
    offer_id: str,
    db: DbClient = Depends(get_db_client),
    user: CurrentUser = Depends(get_current_user),
):
    offer = offer_repository(db).get(offer_id, user.uid)
    scheme = scheme_repository(db).find(offer.scheme_id, user.uid)
    return OfferDetailResponse(
        offer=_offer_response(offer),
        scheme=_scheme_response(scheme) if scheme else None,
    )


@router.patch("/offers/{offer_id}", response_model=OfferResponse)
def update_offer(
    offer_id: str,
    payload: OfferUpdate,
    db: DbClient = Depends(get_db_client),
    user: CurrentUser = Depends(get_current_user),
):
    offers = offer_repository(db)
    current = offers.get(offer_id, user.uid)
    changes = _changes(payload, nullable=("background_path", "template_id"))

    if "scheme_id" in changes and changes["scheme_id"] != current.scheme_id:
        changes["scheme_name"] = _require_scheme(db, user.uid, changes["scheme_id"]).name
    if "module_ids" in changes:
        _check_modules(db, user.uid, changes["module_ids"])
    if changes.get("template_id"):
        _check_template(db, user.uid, changes["template_id"])

    return _offer_response(offers.update(offer_id, user.uid, changes))


@router.delete("/offers/{offer_id}", status_code=204)
def delete_offer(
    offer_id: str,
    db: DbClient = Depends(get_db_client),
    user: CurrentUser = Depends(get_current_user),
):
    offer_repository(db).delete(offer_id, user.uid)
    return Response(status_code=204)


def _layout_parts(offer: Offer | OfferDraft, db: DbClient, user: CurrentUser):
    scheme = scheme_repository(db).find(offer.scheme_id, user.uid)
    template = None
    if offer.template_id:
        template = template_repository(db).find(offer.template_id, user.uid)
    modules_repo = module_repository(db)
    modules: List[Module] = []
    for module_id in offer.module_ids:
        module = modules_repo.find(module_id, user.uid)
        if module is None:
            logger.info("Skipping missing module %s in print", module_id)
            continue
        modules.append(module)
    background_path = offer.background_path or (
        template.background_path if template else None
    )
    return scheme, template, modules, background_path


def _layout_for(
    offer: Offer | OfferDraft,
    db: DbClient,
    storage: StorageClient,
    user: CurrentUser,
    settings: Settings,
) -> PrintLayout:
    scheme, template, modules, background_path = _layout_parts(offer, db, user)
    background_url = storage.presign_get(background_path) if background_path else None
    return compose_layout(
        offer, scheme, template, modules, settings, background_url=background_url
    )


@router.get("/offers/{offer_id}/print", response_model=PrintLayout)
def print_offer(
    offer_id: str,
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
    user: CurrentUser = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    offer = offer_repository(db).get(offer_id, user.uid)
    return _layout_for(offer, db, storage, user, settings)


@router.get("/offers/{offer_id}/print.html", response_class=HTMLResponse)
def print_offer_html(
    offer_id: str,
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
    user: CurrentUser = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    offer = offer_repository(db).get(offer_id, user.uid)
    return HTMLResponse(render_html(_layout_for(offer, db, storage, user, settings)))


@router.get("/offers/{offer_id}/print.pdf")
def print_offer_pdf(
    offer_id: str,
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
    user: CurrentUser = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    offer = offer_repository(db).get(offer_id, user.uid)
    scheme, template, modules, background_path = _layout_parts(offer, db, user)

    background_bytes = None
    if background_path:
        try:
            background_bytes = storage.get_bytes(background_path)
        except FileNotFoundError:
            logger.warning("Background %s is missing; printing without it", background_path)

    layout = compose_layout(offer, scheme, template, modules, settings)
    return Response(
        content=render_pdf(layout, background_bytes),
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="offer-{offer.id}.pdf"'},
    )


# Modules


@router.get("/modules", response_model=List[ModuleResponse])
def list_modules(
    db: DbClient = Depends(get_db_client),
    user: CurrentUser = Depends(get_current_user),
):
    return [ModuleResponse.model_validate(m) for m in module_repository(db).list(user.uid)]


@router.post("/modules", response_model=ModuleResponse, status_code=201)
def create_module(
    payload: ModuleCreate,
    db: DbClient = Depends(get_db_client),
    user: CurrentUser = Depends(get_current_user),
):
    module = module_repository(db).create(user.uid, payload.model_dump())
    return ModuleResponse.model_validate(module)


@router.post("/modules/formatting-state", response_model=FormattingStateResponse)
def get_formatting_state(
    payload: FormattingStateRequest,
    user: CurrentUser = Depends(get_current_user),
):
    return FormattingStateResponse.model_validate(formatting_state(payload.html))


@router.get("/modules/{module_id}", response_model=ModuleResponse)
def get_module(
    module_id: str,
    db: DbClient = Depends(get_db_client),
    user: CurrentUser = Depends(get_current_user),
):
    return ModuleResponse.model_validate(module_repository(db).get(module_id, user.uid))


@router.get("/modules/{module_id}/preview", response_model=ModulePreviewResponse)
def preview_module(
    module_id: str,
    db: DbClient = Depends(get_db_client),
    user: CurrentUser = Depends(get_current_user),
):
    module = module_repository(db).get(module_id, user.uid)
    html = sanitize_html(module.content)
    return ModulePreviewResponse(
        id=module.id, title=module.title, html=html, text_length=text_length(html)
    )


@router.patch("/modules/{module_id}", response_model=ModuleResponse)
def update_module(
    module_id: str,
    payload: ModuleUpdate,
    db: DbClient = Depends(get_db_client),
    user: CurrentUser = Depends(get_current_user),
):
    changes = _changes(payload, nullable=("folder_id",))
    module = module_repository(db).update(module_id, user.uid, changes)
    return ModuleResponse.model_validate(module)


@router.delete("/modules/{module_id}", status_code=204)
def delete_module(
    module_id: str,
    db: DbClient = Depends(get_db_client),
    user: CurrentUser = Depends(get_current_user),
):
    module_repository(db).delete(module_id, user.uid)
    return Response(status_code=204)


# Templates


def _parameters_from_payload(items) -> List[TemplateParameter]:
    return [
        TemplateParameter(
            id=item.id,
            label=item.label,
            position=Position(x=item.position.x, y=item.position.y),
            key=item.key,
        )
        for item in items
    ]


def _prepared_parameters(items, settings: Settings) -> List[dict]:
    params = _parameters_from_payload(items)
    ensure_unique_ids(params)
    return [asdict(p) for p in clamp_all(params, _canvas(settings))]


def _template_response(template: OfferTemplate) -> TemplateResponse:
    return TemplateResponse.model_validate(template)


@router.get("/templates", response_model=List[TemplateResponse])
def list_templates(
    db: DbClient = Depends(get_db_client),
    user: CurrentUser = Depends(get_current_user),
):
    return [_template_response(t) for t in template_repository(db).list(user.uid)]


@router.post("/templates", response_model=TemplateResponse, status_code=201)
def create_template(
    payload: TemplateCreate,
    db: DbClient = Depends(get_db_client),
    user: CurrentUser = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    fields = {
        "name": payload.name,
        "background_path": payload.background_path,
        "parameters": _prepared_parameters(payload.parameters, settings),
    }
    return _template_response(template_repository(db).create(user.uid, fields))


@router.get("/templates/{template_id}", response_model=TemplateResponse)
def get_template(
    template_id: str,
    db: DbClient = Depends(get_db_client),
    user: CurrentUser = Depends(get_current_user),
):
    return _template_response(template_repository(db).get(template_id, user.uid))


@router.patch("/templates/{template_id}", response_model=TemplateResponse)
def update_template(
    template_id: str,
    payload: TemplateUpdate,
    db: DbClient = Depends(get_db_client),
    user: CurrentUser = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    changes = _changes(payload)
    if payload.parameters is not None:
        changes["parameters"] = _prepared_parameters(payload.parameters, settings)
    template = template_repository(db).update(template_id, user.uid, changes)
    return _template_response(template)


@router.post(
    "/templates/{template_id}/parameters/{param_id}/drag", response_model=DragResponse
)
def drag_template_parameter(
    template_id: str,
    param_id: str,
    payload: DragRequest,
    db: DbClient = Depends(get_db_client),
    user: CurrentUser = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    templates = template_repository(db)
    template = templates.get(template_id, user.uid)
    position = drag_to(
        payload.pointer_x,
        payload.pointer_y,
        Position(x=payload.grab_offset_x, y=payload.grab_offset_y),
        Size(width=payload.element_width, height=payload.element_height),
        _canvas(settings),
    )
    try:
        params = move(template.parameters, param_id, position)
    except KeyError as e:
        raise NotFoundError("Parameter not found") from e

    templates.update(template_id, user.uid, {"parameters": [asdict(p) for p in params]})
    return DragResponse(id=param_id, position=PositionModel(x=position.x, y=position.y))


@router.delete("/templates/{template_id}", status_code=204)
def delete_template(
    template_id: str,
    db: DbClient = Depends(get_db_client),
    user: CurrentUser = Depends(get_current_user),
):
    template_repository(db).delete(template_id, user.uid)
    return Response(status_code=204)


# Storage


@router.post("/uploads/background", response_model=UploadResponse, status_code=201)
async def upload_background(
    file: UploadFile = File(...),
    storage: StorageClient = Depends(get_storage_client),
    user: CurrentUser = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Empty upload")
    if len(data) > settings.max_upload_bytes:
        raise HTTPException(status_code=413, detail="Image is too large")

    try:
        with Image.open(io.BytesIO(data)) as image:
            image.verify()
            image_format = image.format
            width, height = image.size
    except Image.DecompressionBombError:
        raise HTTPException(status_code=413, detail="Image dimensions are too large")
    except (UnidentifiedImageError, OSError, SyntaxError):
        raise HTTPException(status_code=400, detail="File is not a valid image")

    if image_format not in BACKGROUND_FORMATS:
        raise HTTPException(
            status_code=415, detail="Only PNG, JPEG and WEBP backgrounds are supported"
        )

    extension, content_type = BACKGROUND_FORMATS[image_format]
    path = new_background_path(user.uid, extension)
    storage.upload_bytes(path, data, content_type=content_type)
    logger.info("Stored background %s (%dx%d)", path, width, height)
    return UploadResponse(
        path=path, url=storage.presign_get(path), width=width, height=height
    )


@router.get("/sign-url", response_model=SignUrlResponse)
def sign_url(
    path: str = Query(..., description="Object path in storage"),
    op: str = Query("get", pattern="^(get|put)$"),
    expires_in: int = Query(3600, ge=60, le=86400),
    content_type: str = Query(DEFAULT_CONTENT_TYPE, max_length=128),
    storage: StorageClient = Depends(get_storage_client),
    user: CurrentUser = Depends(get_current_user),
):
    if not is_own_background(path, user.uid):
        raise PermissionDeniedError("Path is outside your storage area")
    if op == "get":
        url = storage.presign_get(path, expires_in=expires_in)
    else:
        url = storage.presign_put(
            path, expires_in=expires_in, content_type=content_type
        )
    return SignUrlResponse(url=url)


# Dashboard


@router.get("/dashboard", response_model=DashboardResponse)
def dashboard(
    db: DbClient = Depends(get_db_client),
    user: CurrentUser = Depends(get_current_user),
):
    offers = offer_repository(db)
    return DashboardResponse(
        schemes=scheme_repository(db).count(user.uid),
        offers=offers.count(user.uid),
        modules=module_repository(db).count(user.uid),
        templates=template_repository(db).count(user.uid),
        recent_offers=[
            _offer_response(o) for o in offers.list(user.uid)[:RECENT_OFFERS_LIMIT]
        ],
    )
