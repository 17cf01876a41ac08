# backend/orders/context.py
"""
Default order-context provider for the dispute engine, backed by the local
``orders.Order`` table.
"""
import logging

from disputes.exceptions import InvalidState, NotFound
from disputes.services.order_context import OrderContext, OrderContextProvider

from .models import Order

logger = logging.getLogger(__name__)


class DatabaseOrderContextProvider(OrderContextProvider):

    def resolve(self, order_id: int) -> OrderContext:
        try:
            order = Order.objects.only("id", "order_no", "buyer", "seller", "status").get(pk=order_id)
        except Order.DoesNotExist:
            raise NotFound(f"Order {order_id} does not exist")

        if not order.is_completed:
            logger.warning("Dispute requested on order %s in status %s", order.order_no, order.status)
            raise InvalidState(
                f"Order {order.order_no} is {order.get_status_display().lower()}; "
                "only completed orders can be disputed"
            )

        return OrderContext(
            order_id=order.pk,
            order_no=order.order_no,
            buyer_id=order.buyer_id,
            seller_id=order.seller_id,
            order_status=order.status,
        )
