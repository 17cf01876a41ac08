# backend/disputes/services/order_context.py
from dataclasses import dataclass
from functools import lru_cache

from django.conf import settings
from django.utils.module_loading import import_string


@dataclass(frozen=True)
class OrderContext:
    order_id: int
    order_no: str
    buyer_id: int
    seller_id: int
    order_status: str


class OrderContextProvider:
    """
    Answers "who bought and who sold this order" for the dispute engine.
    Implementations raise ``NotFound`` for unknown orders and
    ``InvalidState`` for orders that cannot be disputed yet.
    """

    def resolve(self, order_id: int) -> OrderContext:
        raise NotImplementedError


@lru_cache(maxsize=None)
def _load_provider(path: str) -> OrderContextProvider:
    return import_string(path)()


def get_order_context_provider() -> OrderContextProvider:
    return _load_provider(settings.DISPUTE_ORDER_CONTEXT_PROVIDER)
