"""
Storefront - Route Dependencies
Collaborators built once in create_app() and held on app.state.
"""
from fastapi import Depends, Request

from storefront.core.database import DocumentStore
from storefront.services.mail_queue import Mailer
from storefront.services.orders import OrderService
from storefront.services.payments import PaymentGateways


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


def get_gateways(request: Request) -> PaymentGateways:
    return request.app.state.gateways


def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer


def get_order_service(
    request: Request,
    store: DocumentStore = Depends(get_store),
    gateways: PaymentGateways = Depends(get_gateways)
) -> OrderService:
    return OrderService(
        store=store,
        gateways=gateways,
        bot=request.app.state.bot,
        staff_log=request.app.state.staff_log,
    )
