from .approval_repository import ApprovalRepository
from .comment_repository import CommentRepository
from .quotation_repository import QuotationRepository
from .revision_repository import RevisionRepository
from .status_event_repository import StatusEventRepository
from .user_repository import UserDirectoryRepository

__all__ = [
    "ApprovalRepository",
    "CommentRepository",
    "QuotationRepository",
    "RevisionRepository",
    "StatusEventRepository",
    "UserDirectoryRepository",
]
