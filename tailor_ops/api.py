"""
HTTP and websocket surface for the tailor ops backend
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .adapters.realtime import RoomBroadcaster, customer_room, order_room
from .adapters.sms import NotificationDispatcher, SMSAdapter
from .config import Settings, get_settings
from .exceptions import TailorOpsError
from .services import PersistenceGateway, create_gateway
from .services.customer_service import CustomerService
from .services.order_service import OrderLifecycleManager

logger = logging.getLogger(__name__)


class RequestModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    def fields(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class CustomerIn(RequestModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    pickup_date: Optional[str] = None
    fitting_date: Optional[str] = None
    notes: Optional[str] = None


class OrderIn(RequestModel):
    customer_id: Optional[str] = None
    item: Optional[str] = None
    measurements: Optional[Dict[str, Any]] = None
    price: Any = None
    deposit: Any = None
    pickup_date: Optional[str] = None
    fitting_date: Optional[str] = None
    notes: Optional[str] = None


class OrderUpdateIn(RequestModel):
    status: Optional[str] = None
    measurements: Optional[Dict[str, Any]] = None
    price: Any = None
    deposit: Any = None
    pickup_date: Optional[str] = None
    fitting_date: Optional[str] = None
    notes: Optional[str] = None


class TrackIn(RequestModel):
    phone: Optional[str] = None


def get_customers(request: Request) -> CustomerService:
    return request.app.state.customers


def get_orders(request: Request) -> OrderLifecycleManager:
    return request.app.state.orders


router = APIRouter()


@router.get("/health")
async def health_check():
    return {"status": "ok"}


# ===== CUSTOMERS =====

@router.get("/customers")
async def list_customers(customers: CustomerService = Depends(get_customers)):
    return [c.to_payload() for c in await customers.list_customers()]


@router.post("/customers", status_code=201)
async def create_customer(body: CustomerIn, customers: CustomerService = Depends(get_customers)):
    customer = await customers.create_customer(**body.model_dump())
    return {"id": customer.id, "message": "Customer created successfully"}


@router.get("/customers/{customer_id}")
async def get_customer(customer_id: str, customers: CustomerService = Depends(get_customers)):
    return (await customers.get_customer(customer_id)).to_payload()


@router.put("/customers/{customer_id}")
async def update_customer(customer_id: str, body: CustomerIn, customers: CustomerService = Depends(get_customers)):
    customer = await customers.update_customer(customer_id, body.fields())
    return {"message": "Customer updated successfully", "customer": customer.to_payload()}


@router.delete("/customers/{customer_id}")
async def delete_customer(customer_id: str, customers: CustomerService = Depends(get_customers)):
    await customers.delete_customer(customer_id)
    return {"message": "Customer deleted successfully"}


@router.get("/customers/{customer_id}/orders")
async def list_customer_orders(customer_id: str, customers: CustomerService = Depends(get_customers)):
    return [o.to_payload() for o in await customers.list_orders_for_customer(customer_id)]


@router.get("/customers/{customer_id}/notifications")
async def list_customer_notifications(customer_id: str, customers: CustomerService = Depends(get_customers)):
    return [n.to_payload() for n in await customers.list_notifications(customer_id)]


# ===== ORDERS =====

@router.post("/orders", status_code=201)
async def create_order(body: OrderIn, orders: OrderLifecycleManager = Depends(get_orders)):
    order_id = await orders.create_order(**body.model_dump())
    return {"id": order_id, "message": "Order created successfully"}


@router.post("/orders/track")
async def track_orders(body: TrackIn, orders: OrderLifecycleManager = Depends(get_orders)):
    return [o.to_payload() for o in await orders.track_orders_by_phone(body.phone)]


@router.get("/orders/{order_id}")
async def get_order(order_id: str, orders: OrderLifecycleManager = Depends(get_orders)):
    return (await orders.get_order(order_id)).to_payload()


@router.put("/orders/{order_id}")
async def update_order(order_id: str, body: OrderUpdateIn, orders: OrderLifecycleManager = Depends(get_orders)):
    order = await orders.update_order(order_id, body.fields())
    return {"message": "Order updated successfully", "order": order.to_payload()}


# ===== REALTIME =====

def _rooms_for(customer_id: Optional[str], order_id: Optional[str]) -> List[str]:
    rooms = []
    if customer_id:
        rooms.append(customer_room(customer_id))
    if order_id:
        rooms.append(order_room(order_id))
    return rooms


@router.websocket("/ws")
async def events_websocket(
    websocket: WebSocket,
    customer_id: Optional[str] = Query(None, alias="customerId"),
    order_id: Optional[str] = Query(None, alias="orderId"),
):
    """Order events for one customer or order (customerId / orderId query), or for every order"""
    broadcaster: RoomBroadcaster = websocket.app.state.broadcaster
    # Subscribe before accepting so no event published after the handshake is missed
    initial_rooms = _rooms_for(customer_id, order_id)
    for room in initial_rooms:
        broadcaster.join(websocket, room)
    if not initial_rooms:
        broadcaster.connect(websocket)
    await websocket.accept()

    try:
        while True:
            try:
                message = await websocket.receive_json()
            except ValueError:
                await websocket.send_json({"type": "error", "data": {"error": "Invalid JSON"}})
                continue
            # {"action": "join" | "leave", "customerId": ..., "orderId": ...}
            action = message.get("action") if isinstance(message, dict) else None
            if action not in ("join", "leave"):
                continue
            rooms = _rooms_for(message.get("customerId"), message.get("orderId"))
            for room in rooms:
                if action == "join":
                    broadcaster.join(websocket, room)
                else:
                    broadcaster.leave(websocket, room)
            # Acknowledge so the client knows the subscription is in place
            ack = "subscribed" if action == "join" else "unsubscribed"
            await websocket.send_json({"type": ack, "data": {"rooms": rooms}})
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.disconnect(websocket)


def create_app(
    settings: Optional[Settings] = None,
    gateway: Optional[PersistenceGateway] = None,
    sms: Optional[SMSAdapter] = None,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store = gateway or await create_gateway(settings)
        broadcaster = RoomBroadcaster()
        notifier = NotificationDispatcher(sms or SMSAdapter(settings), settings.TIMEZONE)

        app.state.gateway = store
        app.state.broadcaster = broadcaster
        app.state.customers = CustomerService(store)
        app.state.orders = OrderLifecycleManager(
            store,
            notifier,
            broadcaster,
            balance_update_mode=settings.BALANCE_UPDATE_MODE,
            broadcast=settings.REALTIME_BROADCAST,
        )
        logger.info("Tailor ops backend started")
        try:
            yield
        finally:
            await store.close()
            logger.info("Tailor ops backend stopped")

    app = FastAPI(title="Tailor Ops API", version="1.0.0", lifespan=lifespan)

    @app.exception_handler(TailorOpsError)
    async def tailor_ops_error_handler(request: Request, exc: TailorOpsError):
        if exc.status_code >= 500:
            logger.error(f"❌ {request.method} {request.url.path} failed: {exc.message}")
            return JSONResponse(status_code=exc.status_code, content={"error": "Internal server error"})
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.info(
            "validation_error",
            extra={"evt": "validation_error", "path": request.url.path, "status_code": 400},
        )
        return JSONResponse(status_code=400, content={"error": "Invalid request body"})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(f"❌ Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    app.include_router(router)
    return app
