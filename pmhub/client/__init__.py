from .api_client import ApiError, PMHubApiClient
from .collaborator import ProjectCollaborator
from .reconciler import ClientReconciler, MutationState, PendingMutation, ServerResult

__all__ = [
    "ApiError",
    "ClientReconciler",
    "MutationState",
    "PMHubApiClient",
    "PendingMutation",
    "ProjectCollaborator",
    "ServerResult",
]
