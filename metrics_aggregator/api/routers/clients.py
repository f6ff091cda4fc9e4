"""
连接 API

宿主应用在客户端连接/断开时调用，用于快照中的 connected_clients。
"""

from fastapi import APIRouter, Depends

from ...collectors import ConnectionTracker
from ...models import ClientsResponse
from ..dependencies import get_tracker

router = APIRouter(prefix="/api/clients", tags=["clients"])


@router.put("/{client_id}", response_model=ClientsResponse)
async def connect_client(client_id: str, tracker: ConnectionTracker = Depends(get_tracker)):
    """登记客户端连接（幂等）"""
    return ClientsResponse(client_id=client_id, connected_clients=tracker.connect(client_id))


@router.delete("/{client_id}", response_model=ClientsResponse)
async def disconnect_client(client_id: str, tracker: ConnectionTracker = Depends(get_tracker)):
    """注销客户端连接（幂等）"""
    return ClientsResponse(client_id=client_id, connected_clients=tracker.disconnect(client_id))
