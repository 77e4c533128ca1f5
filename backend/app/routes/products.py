"""
Catalog Backend — Product Route Handlers
==========================================

What:  CRUD endpoints for /products.
How:   Reads multipart forms / query strings, validates them through the
       pydantic schemas, stores an uploaded `image` part, and delegates to
       ProductService. Responses are serialized with ProductResponse.

Request Flow (POST / PATCH):
    1. Parse the form; every non-file field goes through ProductCreate/ProductUpdate
       (unknown fields, bad types and negative prices → ValidationError, 400)
    2. If an `image` file part is present, FileService.store_upload() writes it
    3. ProductService persists the record and owns any cleanup afterwards
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from starlette.datastructures import FormData, UploadFile

from app.exceptions import ValidationError
from app.schemas.product import (
    ErrorResponse,
    ProductCreate,
    ProductFilter,
    ProductResponse,
    ProductUpdate,
)
from app.services.file_service import FileService, StoredImage, get_file_service
from app.services.product_service import ProductService, get_product_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/products", tags=["Products"])

ModelT = TypeVar("ModelT", bound=BaseModel)

IMAGE_FIELD = "image"
LIST_FIELDS = {"colors"}


# ══════════════════════════════════════════════════════════════════════════
# Input parsing helpers
# ══════════════════════════════════════════════════════════════════════════


def field_errors(exc: PydanticValidationError) -> List[Dict[str, str]]:
    """Flatten pydantic errors into [{"field": ..., "message": ...}]."""
    errors = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        errors.append({"field": ".".join(loc) or "body", "message": err.get("msg", "Invalid value")})
    return errors


def validate_input(model: Type[ModelT], data: Dict[str, Any], message: str) -> ModelT:
    """
    Validate raw input against a schema.

    Raises:
        ValidationError with field-level detail
    """
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(message=message, errors=field_errors(e))


def split_form(form: FormData) -> Tuple[Dict[str, Any], Optional[UploadFile]]:
    """
    Separate the optional `image` file part from the other form fields.

    List fields keep every submitted value (`colors=red&colors=blue`);
    other fields take the last value. An `image` part sent without a filename
    counts as no upload.
    """
    data: Dict[str, Any] = {}
    for key in form.keys():
        if key == IMAGE_FIELD:
            continue
        values = form.getlist(key)
        data[key] = values if key in LIST_FIELDS else values[-1]

    image = form.get(IMAGE_FIELD)
    if image is None:
        return data, None
    if not isinstance(image, UploadFile):
        if image == "":
            return data, None
        raise ValidationError(
            message="Invalid product data",
            field=IMAGE_FIELD,
            errors=[{"field": IMAGE_FIELD, "message": "Must be a file upload"}],
        )
    if not image.filename:
        return data, None
    return data, image


async def store_image(files: FileService, upload: Optional[UploadFile]) -> Optional[StoredImage]:
    """
    Write the uploaded image to disk, or return None when there is none.

    When:  Only after the form fields validated, so a rejected request never
           leaves a file behind. From here on ProductService owns the file
           and removes it if the database write does not happen.
    """
    if upload is None:
        return None
    return await files.store_upload(upload)


# ══════════════════════════════════════════════════════════════════════════
# Routes
# ══════════════════════════════════════════════════════════════════════════


@router.post(
    "",
    status_code=201,
    response_model=ProductResponse,
    responses={
        400: {"description": "Invalid product data or image", "model": ErrorResponse},
        500: {"description": "Server error", "model": ErrorResponse},
    },
    summary="Create a product",
    description=(
        "Multipart form with name, price, description, colors, imageUrl and an "
        "optional `image` file."
    ),
)
async def create_product(
    request: Request,
    service: ProductService = Depends(get_product_service),
    files: FileService = Depends(get_file_service),
) -> ProductResponse:
    form = await request.form()
    try:
        fields, upload = split_form(form)
        data = validate_input(ProductCreate, fields, "Invalid product data")
        image = await store_image(files, upload)
    finally:
        await form.close()

    product = await service.create(data, image)
    return ProductResponse.model_validate(product)


@router.get(
    "",
    response_model=List[ProductResponse],
    responses={
        400: {"description": "Invalid query parameters", "model": ErrorResponse},
        500: {"description": "Server error", "model": ErrorResponse},
    },
    summary="List products",
    description=(
        "Filter by keyword (case-insensitive name substring) and inclusive "
        "minPrice/maxPrice; sort by price_asc, price_desc or newest (default)."
    ),
)
async def list_products(
    request: Request,
    service: ProductService = Depends(get_product_service),
) -> List[ProductResponse]:
    filters = validate_input(
        ProductFilter,
        dict(request.query_params),
        "Invalid query parameters",
    )
    products = await service.find_all(
        keyword=filters.keyword,
        min_price=filters.min_price,
        max_price=filters.max_price,
        sort=filters.sort,
    )
    return [ProductResponse.model_validate(p) for p in products]


@router.get(
    "/{product_id}",
    response_model=ProductResponse,
    responses={
        404: {"description": "Product not found", "model": ErrorResponse},
        500: {"description": "Server error", "model": ErrorResponse},
    },
    summary="Get a single product by ID",
)
async def get_product(
    product_id: str,
    service: ProductService = Depends(get_product_service),
) -> ProductResponse:
    product = await service.find_one(product_id)
    return ProductResponse.model_validate(product)


@router.patch(
    "/{product_id}",
    response_model=ProductResponse,
    responses={
        400: {"description": "Invalid product data or image", "model": ErrorResponse},
        404: {"description": "Product not found", "model": ErrorResponse},
        500: {"description": "Server error", "model": ErrorResponse},
    },
    summary="Update a product",
    description=(
        "Multipart form with any subset of the product fields and an optional "
        "`image` file. A new image replaces (and deletes) the previous one."
    ),
)
async def update_product(
    product_id: str,
    request: Request,
    service: ProductService = Depends(get_product_service),
    files: FileService = Depends(get_file_service),
) -> ProductResponse:
    form = await request.form()
    try:
        fields, upload = split_form(form)
        data = validate_input(ProductUpdate, fields, "Invalid product data")
        image = await store_image(files, upload)
    finally:
        await form.close()

    product = await service.update(product_id, data, image)
    return ProductResponse.model_validate(product)


@router.delete(
    "/{product_id}",
    response_model=ProductResponse,
    responses={
        404: {"description": "Product not found", "model": ErrorResponse},
        500: {"description": "Server error", "model": ErrorResponse},
    },
    summary="Delete a product and its image",
)
async def delete_product(
    product_id: str,
    service: ProductService = Depends(get_product_service),
) -> ProductResponse:
    product = await service.remove(product_id)
    return ProductResponse.model_validate(product)
