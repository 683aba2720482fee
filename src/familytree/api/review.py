"""
REST endpoints for data review workflows.

Provides HTTP API for:
- Duplicate person detection and resolution
- Relationship prediction scans and their review
- Crowd-sourced suggestions, from submission through approval and rollback
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from familytree.config import Config
from familytree.database import Database
from familytree.models.duplicate import (
    DuplicateResolveRequest,
    DuplicateResolveResult,
    DuplicateScanRequest,
    DuplicateScanResult,
    DuplicateSummary,
)
from familytree.models.enums import ConfidenceLevel, PredictedType, PredictionStatus, SuggestionStatus, SuggestionType
from familytree.models.prediction import (
    AcceptAllRequest,
    AcceptAllResult,
    Prediction,
    PredictionDismissRequest,
    PredictionPage,
    PredictionScanResult,
)
from familytree.models.suggestion import (
    CommentCreate,
    EvidenceCreate,
    ReviewRequest,
    Suggestion,
    SuggestionComment,
    SuggestionCreate,
    SuggestionEvidence,
    SuggestionPage,
    SuggestionStatistics,
)
from familytree.services.access import UserContext
from familytree.services.duplicate_detection import DuplicateDetectionService
from familytree.services.predictions import PredictionService
from familytree.services.suggestion_service import SuggestionService


class RollbackRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=2000)


class DuplicateSuggestionResponse(BaseModel):
    duplicate_id: str | None = None


def create_review_router(db: Database, config: Config, current_user) -> APIRouter:
    """
    Create router with duplicate, prediction and suggestion endpoints.

    Args:
        db: Database the services work against
        config: Settings for detection thresholds
        current_user: Dependency resolving the authenticated caller

    Returns:
        Configured APIRouter instance
    """
    router = APIRouter()
    duplicates = DuplicateDetectionService(db, config)
    predictions = PredictionService(db, config)
    suggestions = SuggestionService(db)

    # -------------------------------------------------------------------------
    # Duplicate Detection
    # -------------------------------------------------------------------------

    @router.get("/duplicates/scan", response_model=DuplicateScanResult)
    def scan_duplicates(request: DuplicateScanRequest = Depends(), actor: UserContext = Depends(current_user)):
        """
        Find likely duplicate persons.

        Without ``tree_id`` every tree is scanned (global admins only); with
        ``target_tree_id`` persons of one tree are compared with another.

        Returns:
            Page of candidate pairs, best confidence first
        """
        return duplicates.scan(actor, request)

    @router.get("/duplicates/summary", response_model=DuplicateSummary)
    def duplicate_summary(request: DuplicateScanRequest = Depends(), actor: UserContext = Depends(current_user)):
        return duplicates.summary(actor, request)

    @router.post("/duplicates/resolve", response_model=DuplicateResolveResult)
    def resolve_duplicate(request: DuplicateResolveRequest, actor: UserContext = Depends(current_user)):
        """Link, reject or merge a reviewed pair."""
        return duplicates.resolve(actor, request)

    # -------------------------------------------------------------------------
    # Relationship Predictions
    # -------------------------------------------------------------------------

    @router.post("/trees/{tree_id}/predictions/scan", response_model=PredictionScanResult)
    def scan_predictions(tree_id: str, actor: UserContext = Depends(current_user)):
        """Run every prediction rule, replacing the tree's unreviewed predictions."""
        return predictions.scan(actor, tree_id)

    @router.get("/trees/{tree_id}/predictions", response_model=PredictionPage)
    def list_predictions(
        tree_id: str,
        status: PredictionStatus | None = None,
        confidence_level: ConfidenceLevel | None = None,
        rule_id: str | None = None,
        predicted_type: PredictedType | None = None,
        page: int = 1,
        page_size: int = 50,
        actor: UserContext = Depends(current_user),
    ):
        return predictions.list_page(
            actor,
            tree_id,
            status=status,
            confidence_level=confidence_level,
            rule_id=rule_id,
            predicted_type=predicted_type,
            page=page,
            page_size=page_size,
        )

    @router.post("/trees/{tree_id}/predictions/accept-all", response_model=AcceptAllResult)
    def accept_all_predictions(
        tree_id: str, data: AcceptAllRequest | None = None, actor: UserContext = Depends(current_user)
    ):
        """Accept every unreviewed prediction at or above a confidence threshold."""
        return predictions.accept_all(actor, tree_id, data.min_confidence if data else None)

    @router.get("/predictions/{prediction_id}", response_model=Prediction)
    def get_prediction(prediction_id: str, actor: UserContext = Depends(current_user)):
        return predictions.get(actor, prediction_id)

    @router.post("/predictions/{prediction_id}/accept", response_model=Prediction)
    def accept_prediction(prediction_id: str, actor: UserContext = Depends(current_user)):
        return predictions.accept(actor, prediction_id)

    @router.post("/predictions/{prediction_id}/dismiss", response_model=Prediction)
    def dismiss_prediction(
        prediction_id: str, data: PredictionDismissRequest | None = None, actor: UserContext = Depends(current_user)
    ):
        return predictions.dismiss(actor, prediction_id, data.reason if data else None)

    # -------------------------------------------------------------------------
    # Suggestions (contributors)
    # -------------------------------------------------------------------------

    @router.post("/suggestions", response_model=Suggestion, status_code=201)
    def create_suggestion(data: SuggestionCreate, actor: UserContext = Depends(current_user)):
        """
        Propose a change to a tree for review.

        Raises:
            ValidationError: If the persons or values do not fit the suggestion type
            ConflictError: If the same change is already pending
        """
        return suggestions.create(actor, data)

    @router.get("/suggestions/mine", response_model=SuggestionPage)
    def my_suggestions(
        status: SuggestionStatus | None = None,
        page: int = 1,
        page_size: int = 50,
        actor: UserContext = Depends(current_user),
    ):
        return suggestions.mine(actor, status, page, page_size)

    @router.get("/suggestions/check-duplicate", response_model=DuplicateSuggestionResponse)
    def check_duplicate_suggestion(
        tree_id: str,
        type: SuggestionType,
        target_person_id: str | None = None,
        secondary_person_id: str | None = None,
        person_name: str | None = None,
        actor: UserContext = Depends(current_user),
    ):
        """Open suggestion proposing the same change; new persons are compared by name."""
        duplicate_id = suggestions.check_duplicate(
            actor, tree_id, type, target_person_id, secondary_person_id, person_name
        )
        return DuplicateSuggestionResponse(duplicate_id=duplicate_id)

    # -------------------------------------------------------------------------
    # Suggestions (reviewers)
    # -------------------------------------------------------------------------

    @router.get("/suggestions/queue", response_model=SuggestionPage)
    def review_queue(
        tree_id: str | None = None,
        status: SuggestionStatus | None = SuggestionStatus.PENDING,
        type: SuggestionType | None = None,
        page: int = 1,
        page_size: int = 50,
        actor: UserContext = Depends(current_user),
    ):
        """Suggestions awaiting review, oldest first."""
        return suggestions.queue(actor, tree_id, status, type, page, page_size)

    @router.get("/suggestions/stats", response_model=SuggestionStatistics)
    def suggestion_statistics(tree_id: str | None = None, actor: UserContext = Depends(current_user)):
        return suggestions.statistics(actor, tree_id)

    @router.get("/suggestions/{suggestion_id}", response_model=Suggestion)
    def get_suggestion(suggestion_id: str, actor: UserContext = Depends(current_user)):
        return suggestions.get(actor, suggestion_id)

    @router.post("/suggestions/{suggestion_id}/withdraw", response_model=Suggestion)
    def withdraw_suggestion(suggestion_id: str, actor: UserContext = Depends(current_user)):
        return suggestions.withdraw(actor, suggestion_id)

    @router.post("/suggestions/{suggestion_id}/evidence", response_model=SuggestionEvidence, status_code=201)
    def add_evidence(suggestion_id: str, data: EvidenceCreate, actor: UserContext = Depends(current_user)):
        return suggestions.add_evidence(actor, suggestion_id, data)

    @router.post("/suggestions/{suggestion_id}/comments", response_model=SuggestionComment, status_code=201)
    def add_comment(suggestion_id: str, data: CommentCreate, actor: UserContext = Depends(current_user)):
        return suggestions.add_comment(actor, suggestion_id, data)

    @router.post("/suggestions/{suggestion_id}/approve", response_model=Suggestion)
    def approve_suggestion(
        suggestion_id: str, data: ReviewRequest | None = None, actor: UserContext = Depends(current_user)
    ):
        """Apply the suggested change to the tree and mark it approved."""
        return suggestions.approve(actor, suggestion_id, data.reviewer_notes if data else None)

    @router.post("/suggestions/{suggestion_id}/reject", response_model=Suggestion)
    def reject_suggestion(
        suggestion_id: str, data: ReviewRequest | None = None, actor: UserContext = Depends(current_user)
    ):
        return suggestions.reject(actor, suggestion_id, data.reviewer_notes if data else None)

    @router.post("/suggestions/{suggestion_id}/request-info", response_model=Suggestion)
    def request_info(
        suggestion_id: str, data: ReviewRequest | None = None, actor: UserContext = Depends(current_user)
    ):
        return suggestions.request_info(actor, suggestion_id, data.reviewer_notes if data else None)

    @router.post("/suggestions/{suggestion_id}/rollback", response_model=Suggestion)
    def rollback_suggestion(
        suggestion_id: str, data: RollbackRequest | None = None, actor: UserContext = Depends(current_user)
    ):
        """Undo an approved suggestion and return it to the pending queue."""
        return suggestions.rollback(actor, suggestion_id, data.reason if data else None)

    return router
