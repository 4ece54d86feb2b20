from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from ..config import settings
from ..deps import Actor, auth_bearer, get_store
from ..models import DefinitionStatus
from ..schemas import DefinitionCreate, DefinitionOut, DefinitionUpdate
from ..services.definitions import DefinitionStore

router = APIRouter()


def _out(definition) -> dict:
    return DefinitionOut.model_validate(definition).model_dump(mode="json")


@router.post("/definitions", status_code=status.HTTP_201_CREATED)
def create_definition(body: DefinitionCreate, actor: Actor = Depends(auth_bearer),
                      store: DefinitionStore = Depends(get_store)):
    definition = store.create_draft(actor.organization_id, **body.model_dump())
    return _out(definition)


@router.get("/definitions", status_code=status.HTTP_200_OK)
def list_definitions(
    entity_type: Optional[str] = None,
    status_: Optional[DefinitionStatus] = Query(default=None, alias="status"),
    limit: int = Query(default=settings.default_page_limit, ge=1, le=settings.max_page_limit),
    offset: int = Query(default=0, ge=0),
    actor: Actor = Depends(auth_bearer),
    store: DefinitionStore = Depends(get_store),
):
    everything = store.list(actor.organization_id, entity_type=entity_type, status=status_)
    page = everything[offset:offset + limit]
    return {"items": [_out(d) for d in page], "limit": limit, "offset": offset, "total": len(everything)}


@router.get("/definitions/{definition_id}", status_code=status.HTTP_200_OK)
def get_definition(definition_id: str, actor: Actor = Depends(auth_bearer),
                   store: DefinitionStore = Depends(get_store)):
    return _out(store.get(actor.organization_id, definition_id))


@router.put("/definitions/{definition_id}", status_code=status.HTTP_200_OK)
def update_definition(definition_id: str, body: DefinitionUpdate, actor: Actor = Depends(auth_bearer),
                      store: DefinitionStore = Depends(get_store)):
    changes = body.model_dump(exclude_unset=True)
    return _out(store.update_draft(actor.organization_id, definition_id, changes))


@router.post("/definitions/{definition_id}:validate", status_code=status.HTTP_200_OK)
def validate_definition(definition_id: str, actor: Actor = Depends(auth_bearer),
                        store: DefinitionStore = Depends(get_store)):
    return store.validate(actor.organization_id, definition_id).to_dict()


@router.post("/definitions/{definition_id}:publish", status_code=status.HTTP_200_OK)
def publish_definition(definition_id: str, actor: Actor = Depends(auth_bearer),
                       store: DefinitionStore = Depends(get_store)):
    return _out(store.publish(actor.organization_id, definition_id))


@router.post("/definitions/{definition_id}:archive", status_code=status.HTTP_200_OK)
def archive_definition(definition_id: str, actor: Actor = Depends(auth_bearer),
                       store: DefinitionStore = Depends(get_store)):
    return _out(store.archive(actor.organization_id, definition_id))


@router.post("/definitions/{definition_id}:new-version", status_code=status.HTTP_201_CREATED)
def new_definition_version(definition_id: str, actor: Actor = Depends(auth_bearer),
                           store: DefinitionStore = Depends(get_store)):
    return _out(store.new_version(actor.organization_id, definition_id))


@router.delete("/definitions/{definition_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_definition(definition_id: str, actor: Actor = Depends(auth_bearer),
                      store: DefinitionStore = Depends(get_store)):
    store.delete_draft(actor.organization_id, definition_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
