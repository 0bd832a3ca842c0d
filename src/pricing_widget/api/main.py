"""
Pricing Widget API - exposes the orchestrator's event and read surfaces.

One orchestrator per widget id. Mutating routes accept `wait` (default
true): the handler then waits for the machine to settle (debounce elapsed,
fetch completed) before answering with the new snapshot.
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .. import __version__
from ..config.settings import Settings, configure_logging, get_settings
from ..engine.orchestrator import PricingOrchestrator
from ..errors import InvalidEventError, WidgetNotFoundError
from .state import WidgetRegistry


class CreateWidgetRequest(BaseModel):
    """Request model for mounting a widget."""
    price_id: Optional[str] = None
    quantity: Optional[int] = Field(default=None, gt=0)


class QuantityRequest(BaseModel):
    quantity: int = Field(gt=0)


class SwitchPriceRequest(BaseModel):
    price_id: str = Field(min_length=1)


class WidgetResponse(BaseModel):
    """Read surface of one widget."""
    widget_id: str
    state: str
    path: str
    done: bool
    loading: bool
    failed: bool
    priceSelected: bool
    context: dict


class CheckoutResponse(WidgetResponse):
    accepted: bool


def get_registry(request: Request) -> WidgetRegistry:
    return request.app.state.registry


def _widget_or_404(registry: WidgetRegistry, widget_id: str) -> PricingOrchestrator:
    try:
        return registry.get(widget_id)
    except WidgetNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


async def _respond(widget_id: str, widget: PricingOrchestrator, wait: bool) -> WidgetResponse:
    if wait:
        await widget.settled()
    return WidgetResponse(widget_id=widget_id, **widget.snapshot())


def create_app(registry: Optional[WidgetRegistry] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the API around a registry (a default one is created from settings)."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings)
        yield
        app.state.registry.close_all()

    app = FastAPI(
        title="Pricing Widget API",
        description="Pricing/checkout widget state machine",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.registry = registry if registry is not None else WidgetRegistry(settings=settings)

    # Enable CORS for frontend development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    async def root(registry: WidgetRegistry = Depends(get_registry)):
        return {"status": "online", "message": "Pricing Widget API Active", "widgets": len(registry)}

    @app.post("/widgets", response_model=WidgetResponse, status_code=201)
    async def create_widget(
        body: CreateWidgetRequest,
        wait: bool = True,
        registry: WidgetRegistry = Depends(get_registry),
    ):
        widget_id, widget = registry.create(price_id=body.price_id, quantity=body.quantity)
        return await _respond(widget_id, widget, wait)

    @app.get("/widgets/{widget_id}", response_model=WidgetResponse)
    async def get_widget(widget_id: str, registry: WidgetRegistry = Depends(get_registry)):
        widget = _widget_or_404(registry, widget_id)
        return WidgetResponse(widget_id=widget_id, **widget.snapshot())

    @app.get("/widgets/{widget_id}/trace")
    async def get_trace(widget_id: str, registry: WidgetRegistry = Depends(get_registry)):
        widget = _widget_or_404(registry, widget_id)
        return {
            "widget_id": widget_id,
            "trace": [
                {"step": t.step, "description": t.description, "value": t.value}
                for t in widget.history
            ],
        }

    @app.post("/widgets/{widget_id}/quantity", response_model=WidgetResponse)
    async def change_quantity(
        widget_id: str,
        body: QuantityRequest,
        wait: bool = True,
        registry: WidgetRegistry = Depends(get_registry),
    ):
        widget = _widget_or_404(registry, widget_id)
        try:
            widget.change_quantity(body.quantity)
        except InvalidEventError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return await _respond(widget_id, widget, wait)

    @app.post("/widgets/{widget_id}/coupons/ppp", response_model=WidgetResponse)
    async def apply_ppp_coupon(widget_id: str, wait: bool = True, registry: WidgetRegistry = Depends(get_registry)):
        widget = _widget_or_404(registry, widget_id)
        widget.apply_ppp_coupon()
        return await _respond(widget_id, widget, wait)

    @app.delete("/widgets/{widget_id}/coupons/ppp", response_model=WidgetResponse)
    async def remove_ppp_coupon(widget_id: str, wait: bool = True, registry: WidgetRegistry = Depends(get_registry)):
        widget = _widget_or_404(registry, widget_id)
        widget.remove_ppp_coupon()
        return await _respond(widget_id, widget, wait)

    @app.post("/widgets/{widget_id}/price", response_model=WidgetResponse)
    async def switch_price(
        widget_id: str,
        body: SwitchPriceRequest,
        registry: WidgetRegistry = Depends(get_registry),
    ):
        widget = _widget_or_404(registry, widget_id)
        widget.switch_price(body.price_id)
        return WidgetResponse(widget_id=widget_id, **widget.snapshot())

    @app.post("/widgets/{widget_id}/checkout", response_model=CheckoutResponse, status_code=202)
    async def confirm_checkout(widget_id: str, registry: WidgetRegistry = Depends(get_registry)):
        widget = _widget_or_404(registry, widget_id)
        task = widget.confirm_price(registry.checkout_factory(widget.context))
        return CheckoutResponse(widget_id=widget_id, accepted=task is not None, **widget.snapshot())

    @app.delete("/widgets/{widget_id}")
    async def delete_widget(widget_id: str, registry: WidgetRegistry = Depends(get_registry)):
        try:
            registry.close(widget_id)
        except WidgetNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return {"success": True, "message": f"Widget '{widget_id}' closed"}

    return app


app = create_app()
