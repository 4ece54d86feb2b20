from .collaborators import ApproverDirectory, EntityResolver, StaticDirectory, StaticEntityResolver
from .definitions import DefinitionStore
from .delegations import DelegationService
from .gateway import ApprovalGateway, InstanceDetail, PendingItem, Reconciliation
from .instances import InstanceRepository
from .ledger import HistoryLedger, Projection, project

__all__ = [
    "ApproverDirectory", "EntityResolver", "StaticDirectory", "StaticEntityResolver",
    "DefinitionStore", "DelegationService",
    "ApprovalGateway", "InstanceDetail", "PendingItem", "Reconciliation",
    "InstanceRepository", "HistoryLedger", "Projection", "project",
]
