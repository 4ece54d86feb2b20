from fastapi import APIRouter, Depends, status

from ..deps import auth_bearer
from ..graph.registry import catalog
from ..graph.types import CONDITION_OPERATORS, EdgeLabel

router = APIRouter()


@router.get("/catalog/nodes", status_code=status.HTTP_200_OK)
def catalog_nodes(actor=Depends(auth_bearer)):
    return {
        "items": catalog(),
        "edgeLabels": [label.value for label in EdgeLabel],
        "operators": sorted(CONDITION_OPERATORS),
    }
