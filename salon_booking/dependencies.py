# salon_booking/dependencies.py
# FastAPI dependencies for shared per-app resources kept on app.state

from typing import Optional

from fastapi import Request
from redis import Redis

from .services.bookings.locks import ProviderLocks


def get_redis(request: Request) -> Optional[Redis]:
    return request.app.state.redis


def get_locks(request: Request) -> ProviderLocks:
    return request.app.state.locks
