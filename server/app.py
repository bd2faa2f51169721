"""FastAPI web server for the image annotation tool."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from annotation_tool import __version__
from annotation_tool.db.database import Database
from annotation_tool.errors import (
    AlreadyExistsError,
    ConstraintViolation,
    DatabaseBusyError,
    ValidationError,
)
from annotation_tool.services import (
    AnnotationService,
    CsvService,
    ImageService,
    LabelService,
    MaintenanceService,
)

logger = logging.getLogger(__name__)


# Request/Response Models
class ImageCreate(BaseModel):
    filename: str
    original_name: str
    file_path: str
    file_size: int
    mime_type: str


class ImageUpdate(BaseModel):
    original_name: Optional[str] = None
    file_path: Optional[str] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None


class LabelCreate(BaseModel):
    label_name: str
    label_description: Optional[str] = None


class LabelUpdate(BaseModel):
    label_name: Optional[str] = None
    label_description: Optional[str] = None


class AnnotationCreate(BaseModel):
    image_id: int
    label_name: Optional[str] = None
    label_id: Optional[int] = None
    confidence: float = 1.0


class AnnotationUpdate(BaseModel):
    image_id: int
    label_name: str
    confidence: float


class ResetRequest(BaseModel):
    seed: bool = True


def get_database(request: Request) -> Database:
    db = request.app.state.db
    if db is None:
        raise HTTPException(status_code=503, detail="Database not initialized")
    return db


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message, **extra})


def create_app(db: Optional[Database] = None) -> FastAPI:
    """Build the application; pass ``db`` to serve an existing database."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.db is None
        if owned:
            app.state.db = Database()
        applied = app.state.db.init()
        logger.info(f"Server started - DB: {app.state.db.path} (migrations applied: {applied})")
        yield
        if owned:
            app.state.db.close()
            app.state.db = None
        logger.info("Server shutting down")

    app = FastAPI(
        title="Image Annotation Tool API",
        description="Upload image metadata and attach confidence-scored labels",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.db = db

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -- error mapping ---------------------------------------------------------

    @app.exception_handler(ValidationError)
    async def _on_validation(request: Request, exc: ValidationError):
        return _error(400, str(exc), details=exc.errors)

    @app.exception_handler(ConstraintViolation)
    async def _on_constraint(request: Request, exc: ConstraintViolation):
        return _error(409, str(exc))

    @app.exception_handler(AlreadyExistsError)
    async def _on_exists(request: Request, exc: AlreadyExistsError):
        return _error(409, str(exc))

    @app.exception_handler(DatabaseBusyError)
    async def _on_busy(request: Request, exc: DatabaseBusyError):
        logger.warning(f"Database busy on {request.url.path}: {exc}")
        return _error(503, "Database is busy, please retry", retryable=True)

    @app.exception_handler(HTTPException)
    async def _on_http(request: Request, exc: HTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def _on_unexpected(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
        return _error(500, "Internal server error")

    # -- status ----------------------------------------------------------------

    @app.get("/api/health")
    async def health(db: Database = Depends(get_database)):
        report = db.health()
        return JSONResponse(status_code=200 if report["healthy"] else 503, content=report)

    # -- images ----------------------------------------------------------------

    @app.get("/api/images")
    async def list_images(page: int = 1, limit: int = 10, db: Database = Depends(get_database)):
        result = ImageService(db).list_images_page(page, limit)
        return {
            "success": True,
            "data": [i.to_dict() for i in result["data"]],
            "pagination": result["pagination"],
        }

    @app.post("/api/images", status_code=201)
    async def create_image(
        body: ImageCreate,
        db: Database = Depends(get_database),
        x_user_email: Optional[str] = Header(default=None),
    ):
        image = ImageService(db).create_image(body.model_dump(), created_by=x_user_email)
        return {"success": True, "data": image.to_dict()}

    @app.get("/api/images/search")
    async def search_images(label: str, db: Database = Depends(get_database)):
        images = ImageService(db).search_by_label(label)
        return {"success": True, "count": len(images), "data": [i.to_dict() for i in images]}

    @app.get("/api/images/stats")
    async def image_stats(db: Database = Depends(get_database)):
        return {"success": True, "data": ImageService(db).stats()}

    @app.get("/api/images/{image_id}")
    async def get_image(image_id: int, db: Database = Depends(get_database)):
        image = ImageService(db).get_image(image_id)
        if image is None:
            raise HTTPException(status_code=404, detail="Image not found")
        return {"success": True, "data": image.to_dict()}

    @app.put("/api/images/{image_id}")
    async def update_image(
        image_id: int,
        body: ImageUpdate,
        db: Database = Depends(get_database),
        x_user_email: Optional[str] = Header(default=None),
    ):
        image = ImageService(db).update_image(
            image_id, body.model_dump(exclude_unset=True), edited_by=x_user_email
        )
        if image is None:
            raise HTTPException(status_code=404, detail="Image not found")
        return {"success": True, "data": image.to_dict()}

    @app.delete("/api/images/{image_id}")
    async def delete_image(image_id: int, db: Database = Depends(get_database)):
        if not ImageService(db).delete_image(image_id):
            raise HTTPException(status_code=404, detail="Image not found")
        return {"success": True, "message": "Image deleted successfully", "deleted_id": image_id}

    @app.get("/api/images/{image_id}/annotations")
    async def image_annotations(image_id: int, db: Database = Depends(get_database)):
        if ImageService(db).get_image(image_id) is None:
            raise HTTPException(status_code=404, detail="Image not found")
        annotations = AnnotationService(db).annotations_for_image(image_id)
        return {"success": True, "data": [a.to_dict() for a in annotations]}

    # -- labels ----------------------------------------------------------------

    @app.get("/api/labels")
    async def list_labels(db: Database = Depends(get_database)):
        labels = LabelService(db).list_labels()
        return {"success": True, "count": len(labels), "data": [l.to_dict() for l in labels]}

    @app.post("/api/labels", status_code=201)
    async def create_label(body: LabelCreate, db: Database = Depends(get_database)):
        label = LabelService(db).create_label(body.model_dump())
        return {"success": True, "data": label.to_dict()}

    @app.get("/api/labels/common")
    async def common_labels(db: Database = Depends(get_database)):
        return {"success": True, "labels": LabelService(db).common_label_names()}

    @app.get("/api/labels/search")
    async def search_labels(q: str, db: Database = Depends(get_database)):
        labels = LabelService(db).search(q)
        return {"success": True, "count": len(labels), "data": [l.to_dict() for l in labels]}

    @app.get("/api/labels/stats")
    async def label_stats(db: Database = Depends(get_database)):
        return {"success": True, "data": LabelService(db).stats()}

    @app.get("/api/labels/by-name/{name}")
    async def label_by_name(name: str, db: Database = Depends(get_database)):
        label = LabelService(db).get_label_by_name(name)
        if label is None:
            raise HTTPException(status_code=404, detail="Label not found")
        return {"success": True, "data": label.to_dict()}

    @app.get("/api/labels/{label_id}")
    async def get_label(label_id: int, db: Database = Depends(get_database)):
        label = LabelService(db).get_label(label_id)
        if label is None:
            raise HTTPException(status_code=404, detail="Label not found")
        return {"success": True, "data": label.to_dict()}

    @app.get("/api/labels/{label_id}/annotations")
    async def label_annotations(label_id: int, db: Database = Depends(get_database)):
        if LabelService(db).get_label(label_id) is None:
            raise HTTPException(status_code=404, detail="Label not found")
        annotations = AnnotationService(db).annotations_for_label(label_id)
        return {"success": True, "count": len(annotations), "data": [a.to_dict() for a in annotations]}

    @app.put("/api/labels/{label_id}")
    async def update_label(label_id: int, body: LabelUpdate, db: Database = Depends(get_database)):
        label = LabelService(db).update_label(label_id, body.model_dump(exclude_unset=True))
        if label is None:
            raise HTTPException(status_code=404, detail="Label not found")
        return {"success": True, "data": label.to_dict()}

    @app.delete("/api/labels/{label_id}")
    async def delete_label(label_id: int, db: Database = Depends(get_database)):
        if not LabelService(db).delete_label(label_id):
            raise HTTPException(status_code=404, detail="Label not found")
        return {"success": True, "message": "Label deleted successfully", "deleted_id": label_id}

    # -- annotations -----------------------------------------------------------

    @app.post("/api/annotations", status_code=201)
    async def create_annotation(
        body: AnnotationCreate,
        db: Database = Depends(get_database),
        x_user_email: Optional[str] = Header(default=None),
    ):
        svc = AnnotationService(db)
        if body.label_name is not None:
            annotation = svc.annotate(body.image_id, body.label_name, body.confidence, x_user_email)
        elif body.label_id is not None:
            annotation = svc.create_annotation(
                body.image_id, body.label_id, body.confidence, x_user_email
            )
        else:
            raise ValidationError("label_name or label_id is required")
        return {"success": True, "data": annotation.to_dict()}

    @app.patch("/api/annotations")
    async def update_annotation(
        body: AnnotationUpdate,
        db: Database = Depends(get_database),
        x_user_email: Optional[str] = Header(default=None),
    ):
        svc = AnnotationService(db)
        label_id = svc.label_id_for_name(body.label_name)
        if label_id is None:
            raise HTTPException(status_code=404, detail="Label not found")
        annotation = svc.update_confidence(body.image_id, label_id, body.confidence, x_user_email)
        if annotation is None:
            raise HTTPException(status_code=404, detail="Annotation not found")
        return {"success": True, "data": annotation.to_dict()}

    @app.delete("/api/annotations")
    async def delete_annotation(image_id: int, label_name: str, db: Database = Depends(get_database)):
        svc = AnnotationService(db)
        label_id = svc.label_id_for_name(label_name)
        if label_id is None:
            raise HTTPException(status_code=404, detail="Label not found")
        if not svc.delete_annotation(image_id, label_id):
            raise HTTPException(status_code=404, detail="Annotation not found")
        return {"success": True, "message": "Annotation deleted successfully"}

    # -- bulk import / export --------------------------------------------------

    @app.get("/api/export/csv")
    async def export_csv(db: Database = Depends(get_database)):
        content = CsvService(db).export_csv()
        stamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S")
        return Response(
            content=content,
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="annotations_{stamp}.csv"'},
        )

    @app.post("/api/import/csv")
    async def import_csv(
        request: Request,
        db: Database = Depends(get_database),
        x_user_email: Optional[str] = Header(default=None),
    ):
        raw = await request.body()
        if not raw:
            raise ValidationError("No file provided")
        try:
            text = raw.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ValidationError("CSV file must be UTF-8 encoded") from exc
        result = CsvService(db).import_csv(text, imported_by=x_user_email or "csv-import")
        return {"success": True, **result.to_dict()}

    # -- maintenance -----------------------------------------------------------

    @app.post("/api/database/reset")
    async def reset_database(body: Optional[ResetRequest] = None, db: Database = Depends(get_database)):
        seed = body.seed if body is not None else True
        result = MaintenanceService(db).reset(seed=seed)
        return {"success": True, "message": "Database reset successfully", **result}

    return app


app = create_app()
