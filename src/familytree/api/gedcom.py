"""
REST endpoints for GEDCOM files.

Uploads are read fully into memory, so the configured size limit is checked
before parsing.
"""

import re

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import Response
from loguru import logger

from familytree.config import Config
from familytree.database import Database
from familytree.errors import ValidationError
from familytree.models.gedcom import GedcomImportOptions, GedcomImportResult, GedcomPreviewResult
from familytree.services.access import UserContext
from familytree.services.gedcom_export import GedcomExportService
from familytree.services.gedcom_import import GedcomImportService
from familytree.services.gedcom_preview import GedcomPreviewService
from familytree.services.tree_service import TreeService


def read_upload(file: UploadFile | None, max_bytes: int) -> bytes:
    """
    Validate an uploaded GEDCOM file and return its content.

    Args:
        file: Uploaded file, if any
        max_bytes: Largest accepted size

    Returns:
        Raw file bytes

    Raises:
        ValidationError: No file, wrong extension, empty or too large
    """
    if file is None or not file.filename:
        raise ValidationError("No file provided")
    if not file.filename.lower().endswith(".ged"):
        raise ValidationError("Only .ged files are supported")
    data = file.file.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise ValidationError(f"File is too large (limit {max_bytes // 1_000_000} MB)")
    if not data:
        raise ValidationError("File is empty")
    return data


def export_file_name(tree_name: str) -> str:
    """Safe download name for a tree's export."""
    stem = re.sub(r"[^\w\-]+", "_", tree_name).strip("_")
    return f"{stem or 'tree'}.ged"


def create_gedcom_router(db: Database, config: Config, current_user) -> APIRouter:
    """
    Create router with GEDCOM preview, import and export endpoints.

    Args:
        db: Database the services work against
        config: Settings carrying the upload size limit
        current_user: Dependency resolving the authenticated caller

    Returns:
        Configured APIRouter instance
    """
    router = APIRouter()
    previewer = GedcomPreviewService(config=config)
    importer = GedcomImportService(db)
    exporter = GedcomExportService(db)
    trees = TreeService(db)

    @router.post("/gedcom/preview", response_model=GedcomPreviewResult)
    def preview_gedcom(file: UploadFile | None = File(default=None), actor: UserContext = Depends(current_user)):
        """
        Analyse a GEDCOM file without importing it.

        Returns:
            Individuals, family groups, linkage statistics and quality issues
        """
        data = read_upload(file, config.gedcom_max_upload_bytes)
        logger.info(f"User {actor.user_id} previewing GEDCOM '{file.filename}' ({len(data)} bytes)")
        return previewer.preview_bytes(data, file.filename)

    @router.post("/gedcom/import", response_model=GedcomImportResult)
    def import_gedcom(
        file: UploadFile | None = File(default=None),
        tree_id: str | None = Form(default=None),
        tree_name: str | None = Form(default=None),
        tree_description: str | None = Form(default=None),
        import_occupations: bool = Form(default=True),
        import_notes: bool = Form(default=True),
        actor: UserContext = Depends(current_user),
    ):
        """
        Import a GEDCOM file into a new tree or an existing one.

        Without ``tree_id`` a new tree is created and the caller becomes its
        owner; importing into an existing tree requires the editor role.
        """
        data = read_upload(file, config.gedcom_max_upload_bytes)
        options = GedcomImportOptions(
            tree_id=tree_id or None,
            tree_name=tree_name or None,
            tree_description=tree_description or None,
            import_occupations=import_occupations,
            import_notes=import_notes,
        )
        logger.info(f"User {actor.user_id} importing GEDCOM '{file.filename}' ({len(data)} bytes)")
        return importer.import_bytes(actor, data, options, file.filename)

    @router.get("/trees/{tree_id}/gedcom")
    def export_gedcom(tree_id: str, actor: UserContext = Depends(current_user)):
        """Download a tree as a GEDCOM 5.5.1 file."""
        tree = trees.get_tree(actor, tree_id)
        content = exporter.export_tree(actor, tree_id)
        return Response(
            content=content.encode("utf-8"),
            media_type="text/plain; charset=utf-8",
            headers={"Content-Disposition": f'attachment; filename="{export_file_name(tree.name)}"'},
        )

    return router
