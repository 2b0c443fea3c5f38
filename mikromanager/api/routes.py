from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from typing import Dict, List, Optional

from ..models import RouterCredential
from ..orchestrator import ConnectionOrchestrator
from ..registry import SessionRegistry
from ..routeros.factory import dependency_status
from ..services import AddressListService, BackupService, CommandService, disconnect_router
from ..settings import AppSettings


router = APIRouter(prefix="/api", tags=["api"])
root_router = APIRouter(tags=["status"])


def get_settings(request: Request) -> AppSettings:
    return request.app.state.settings


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def get_orchestrator(request: Request) -> ConnectionOrchestrator:
    return request.app.state.orchestrator


class ConnectDTO(BaseModel):
    id: int
    host: str
    username: str
    password: str


class ConnectResultDTO(BaseModel):
    connected: bool
    version: str
    identity: str
    uptime: Optional[str] = None
    method: str


class AddressEntryDTO(BaseModel):
    address: str
    comment: str
    id: str


class AddAddressDTO(BaseModel):
    address: str
    comment: Optional[str] = ""


class BackupDTO(BaseModel):
    name: str


class BackupResultDTO(BaseModel):
    success: bool
    filename: str
    size: str


class CommandDTO(BaseModel):
    command: str


class CommandResultDTO(BaseModel):
    success: bool
    output: str


class SuccessDTO(BaseModel):
    success: bool = True


@root_router.get("/")
def server_status(
    settings: AppSettings = Depends(get_settings),
    orchestrator: ConnectionOrchestrator = Depends(get_orchestrator),
):
    """Liveness probe; the dashboard treats any other shape as backend offline."""
    return {
        "name": settings.app_name,
        "status": "running",
        "version": settings.app_version,
        "endpoints": {
            "connect": "POST /api/routers/connect",
            "addressLists": "GET /api/routers/:id/address-lists",
            "addAddress": "POST /api/routers/:id/address-lists/:listName/addresses",
            "removeAddress": "DELETE /api/routers/:id/address-lists/:listName/addresses/:address",
            "backup": "POST /api/routers/:id/backup",
            "command": "POST /api/routers/:id/command",
            "disconnect": "POST /api/routers/:id/disconnect",
        },
        "dependencies": dependency_status(orchestrator.adapters),
    }


@router.post("/routers/connect", response_model=ConnectResultDTO, response_model_exclude_none=True)
async def connect_router(dto: ConnectDTO, orchestrator: ConnectionOrchestrator = Depends(get_orchestrator)):
    credential = RouterCredential(id=dto.id, host=dto.host, username=dto.username, password=dto.password)
    return await orchestrator.connect(credential)


@router.get("/routers/{router_id}/address-lists", response_model=Dict[str, List[AddressEntryDTO]])
async def list_address_lists(router_id: int, registry: SessionRegistry = Depends(get_registry)):
    return await AddressListService(registry).list(router_id)


@router.post("/routers/{router_id}/address-lists/{list_name}/addresses", response_model=SuccessDTO)
async def add_address(
    router_id: int,
    list_name: str,
    dto: AddAddressDTO,
    registry: SessionRegistry = Depends(get_registry),
):
    return await AddressListService(registry).add(router_id, list_name, dto.address, dto.comment or "")


# address may be a prefix such as 10.0.0.0/24
@router.delete("/routers/{router_id}/address-lists/{list_name}/addresses/{address:path}", response_model=SuccessDTO)
async def remove_address(
    router_id: int,
    list_name: str,
    address: str,
    registry: SessionRegistry = Depends(get_registry),
):
    return await AddressListService(registry).remove(router_id, list_name, address)


@router.post("/routers/{router_id}/backup", response_model=BackupResultDTO)
async def create_backup(router_id: int, dto: BackupDTO, registry: SessionRegistry = Depends(get_registry)):
    return await BackupService(registry).create(router_id, dto.name)


@router.post("/routers/{router_id}/command", response_model=CommandResultDTO)
async def run_command(router_id: int, dto: CommandDTO, registry: SessionRegistry = Depends(get_registry)):
    # success=false is a normal outcome here, reported with HTTP 200
    return await CommandService(registry).run(router_id, dto.command)


@router.post("/routers/{router_id}/disconnect", response_model=SuccessDTO)
async def disconnect(router_id: int, registry: SessionRegistry = Depends(get_registry)):
    return await disconnect_router(registry, router_id)
