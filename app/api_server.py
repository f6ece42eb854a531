"""FastAPI entrypoint exposing the Fashion Pal recommendation, preview and video APIs."""

from __future__ import annotations

import base64
import json
import logging
import os
from pathlib import Path
from typing import Annotated, Any

from dotenv import load_dotenv
from fastapi import APIRouter, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, StringConstraints
from starlette.exceptions import HTTPException as StarletteHTTPException

import sys

ROOT_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from fashion_pal.config import Settings
from fashion_pal.errors import PayloadTooLargeError
from fashion_pal.imaging import ImageAsset
from fashion_pal.models import PersonalInfo, Product
from fashion_pal.service import FashionPalService
from fashion_pal.video import decode_image_payload


load_dotenv()

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]

MAX_UPLOAD_BYTES = 10 * 1024 * 1024

_LOGGER = logging.getLogger("fashion_pal.api")


class PersonalInfoPayload(BaseModel):
    age: int = Field(gt=0, le=120)
    gender: NonEmptyStr


class RecommendProductsRequest(BaseModel):
    personalInfo: PersonalInfoPayload
    eventDescription: NonEmptyStr


class MergeProductsRequest(BaseModel):
    products: list[dict[str, Any]] = Field(min_length=1)


class VideoCreateRequest(BaseModel):
    imageBase64: NonEmptyStr
    promptText: str | None = None
    ratio: str | None = None
    duration: int | None = Field(default=None, ge=1, le=10)


_STATUS_ERRORS = {
    400: "Invalid request",
    404: "Not Found",
    405: "Method Not Allowed",
    413: "Payload too large",
    500: "Internal server error",
}


def _error_body(status_code: int, detail: Any) -> dict[str, Any]:
    if isinstance(detail, dict):
        error = str(detail.get("error") or _STATUS_ERRORS.get(status_code, "Error"))
        message = str(detail.get("message") or error)
    else:
        error = _STATUS_ERRORS.get(status_code, "Error")
        message = str(detail or error)
    return {"success": False, "error": error, "message": message}


def _validation_error_code(errors: list[dict[str, Any]]) -> str:
    for err in errors:
        loc = [str(part) for part in err.get("loc", ())]
        if len(loc) > 2 and loc[1] == "personalInfo":
            return "Invalid personalInfo"
        if len(loc) > 1 and loc[1] == "products":
            return "Invalid products"
    return "Invalid request body"


def _validation_message(errors: list[dict[str, Any]]) -> str:
    parts = []
    for err in errors:
        loc = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        parts.append(f"{loc}: {err.get('msg', 'invalid value')}" if loc else str(err.get("msg", "invalid value")))
    return "; ".join(parts) or "Request body is invalid."


def _parse_products(raw: list[Any]) -> list[Product]:
    try:
        return [Product.from_payload(item) for item in raw]
    except ValueError as exc:
        raise HTTPException(status_code=400, detail={"error": "Invalid product", "message": str(exc)}) from exc


def _configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


settings = Settings.from_env()
_configure_logging(settings)

app = FastAPI(title="Fashion Pal Backend", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        origin.strip()
        for origin in os.getenv("FP_CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
        if origin.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

service = FashionPalService(settings)
router = APIRouter(prefix="/api")


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail
    if exc.status_code == 404 and detail == "Not Found":
        detail = {"error": "Not Found", "message": f"Route {request.method} {request.url.path} not found"}
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.status_code, detail))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = list(exc.errors())
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": _validation_error_code(errors),
            "message": _validation_message(errors),
        },
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    _LOGGER.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=_error_body(500, "An unexpected error occurred"))


@router.get("/health")
def health() -> dict:
    return service.health()


@router.post("/recommend-products")
def recommend_products(request: RecommendProductsRequest) -> dict:
    personal_info = PersonalInfo(age=request.personalInfo.age, gender=request.personalInfo.gender)
    try:
        data = service.recommend_products(personal_info, request.eventDescription)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail={"error": "Invalid request body", "message": str(exc)}) from exc
    except RuntimeError as exc:
        _LOGGER.error("Recommendation failed: %s", exc)
        raise HTTPException(
            status_code=500,
            detail={"error": "Failed to generate recommendations", "message": str(exc)},
        ) from exc

    message = "Product recommendations generated successfully"
    if data["placeholder"]:
        message = "No matching products were found, so placeholder products are shown"
    return {
        "success": True,
        "data": {"recommendations": data["recommendations"], "searchTerms": data["searchTerms"]},
        "message": message,
    }


@router.post("/preview-outfit-image")
async def preview_outfit_image(
    image: UploadFile | None = File(default=None),
    products: str | None = Form(default=None),
    eventDescription: str | None = Form(default=None),
) -> dict:
    if image is None or not image.filename:
        raise HTTPException(status_code=400, detail={"error": "Missing image", "message": "An image file is required."})
    if not (image.content_type or "").startswith("image/"):
        raise HTTPException(status_code=400, detail={"error": "Invalid image", "message": "Only image files are allowed."})

    payload = await image.read(MAX_UPLOAD_BYTES + 1)
    if len(payload) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail={"error": "File too large", "message": "Images must be 10MB or smaller."})
    if not payload:
        raise HTTPException(status_code=400, detail={"error": "Missing image", "message": "Uploaded file is empty."})

    try:
        raw_products = json.loads(products or "")
    except ValueError as exc:
        raise HTTPException(
            status_code=400,
            detail={"error": "Invalid products", "message": "products must be a JSON-encoded array."},
        ) from exc
    if not isinstance(raw_products, list) or not raw_products:
        raise HTTPException(status_code=400, detail={"error": "Invalid products", "message": "products must be a non-empty array."})
    parsed_products = _parse_products(raw_products)

    if not (eventDescription or "").strip():
        raise HTTPException(
            status_code=400,
            detail={"error": "Invalid eventDescription", "message": "eventDescription is required."},
        )

    user_photo = ImageAsset.from_bytes(payload)
    if not user_photo.is_supported:
        raise HTTPException(
            status_code=400,
            detail={"error": "Invalid image", "message": "Supported formats are PNG, JPEG, WEBP, HEIC and HEIF."},
        )

    try:
        preview = await run_in_threadpool(
            service.preview_outfit,
            user_photo=user_photo,
            products=parsed_products,
            event_description=eventDescription,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail={"error": "Invalid request", "message": str(exc)}) from exc
    except RuntimeError as exc:
        _LOGGER.error("Outfit preview failed: %s", exc)
        raise HTTPException(
            status_code=500,
            detail={"error": "Failed to generate outfit preview", "message": str(exc)},
        ) from exc

    return {
        "success": True,
        "data": {
            "outfitPreviewImageBuffer": base64.b64encode(preview).decode("ascii"),
            "mimeType": ImageAsset.from_bytes(preview).mime_type.value,
        },
        "message": "Outfit preview image generated successfully",
    }


@router.post("/preview-outfit-image/merge")
def merge_product_images(request: MergeProductsRequest) -> dict:
    if not service.settings.enable_merge_debug:
        raise HTTPException(status_code=404, detail="Not Found")

    parsed_products = _parse_products(request.products)
    try:
        merged = service.merge_product_images(parsed_products)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail={"error": "Invalid products", "message": str(exc)}) from exc
    except RuntimeError as exc:
        _LOGGER.error("Product image merge failed: %s", exc)
        raise HTTPException(
            status_code=500,
            detail={"error": "Failed to merge product images", "message": str(exc)},
        ) from exc

    return {
        "success": True,
        "data": {"mergedImageBuffer": base64.b64encode(merged).decode("ascii")},
        "message": f"Merged images for {len(parsed_products)} products",
    }


@router.post("/video-generation/create")
def create_video_task(request: VideoCreateRequest) -> dict:
    try:
        image = decode_image_payload(request.imageBase64)
        task_id = service.create_video_task(
            image,
            prompt_text=request.promptText,
            ratio=request.ratio,
            duration_seconds=request.duration,
        )
    except PayloadTooLargeError as exc:
        raise HTTPException(status_code=413, detail={"error": "Payload too large", "message": str(exc)}) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail={"error": "Invalid image", "message": str(exc)}) from exc
    except RuntimeError as exc:
        _LOGGER.error("Error creating video generation task: %s", exc)
        raise HTTPException(
            status_code=500,
            detail={"error": "Failed to create video generation task", "message": str(exc)},
        ) from exc

    return {"success": True, "data": {"taskId": task_id}}


@router.get("/video-generation/status/{task_id}")
def video_task_status(task_id: str) -> dict:
    try:
        task = service.video_task_status(task_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail={"error": "Invalid task ID", "message": str(exc)}) from exc
    except RuntimeError as exc:
        _LOGGER.error("Error getting task status: %s", exc)
        raise HTTPException(
            status_code=500,
            detail={"error": "Failed to get task status", "message": str(exc)},
        ) from exc

    return {"success": True, "data": task.to_dict()}


app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "3001")))
