# orderbridge/dependencies.py
from fastapi import Request

from .config import Settings
from .gateway import RazorpayClient
from .ledger import LedgerClient

# Components live on app.state (built in main.on_startup); tests override these.


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_ledger(request: Request) -> LedgerClient:
    return request.app.state.ledger


def get_gateway(request: Request) -> RazorpayClient:
    return request.app.state.gateway


def get_tracking_ids(request: Request):
    return request.app.state.tracking_ids
