import logging
from datetime import datetime, timezone


logger = logging.getLogger(__name__)


class RealtimeService:
    """
    Fire-and-forget broadcast to observers (admin dashboards, storefront sockets).

    Subscribers are plain callables ``callback(event_name, payload)``. A failing
    subscriber is logged and skipped; it never fails the operation that emitted the event.
    """

    def __init__(self):
        self._subscribers = []

    def subscribe(self, callback):
        self._subscribers.append(callback)
        return callback

    def unsubscribe(self, callback):
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def notify(self, event_name: str, payload: dict):
        message = {**payload, "timestamp": datetime.now(timezone.utc).isoformat()}
        for callback in list(self._subscribers):
            try:
                callback(event_name, message)
            except Exception:
                logger.exception("broadcast subscriber failed", extra={"event": event_name})
        logger.debug("broadcast sent", extra={"event": event_name, "subscribers": len(self._subscribers)})

    # ============================================================
    # Typed events
    # ============================================================
    def broadcast_inventory_update(self, product):
        self.notify(
            "inventory_update",
            {
                "productId": str(product.id),
                "productTitle": product.title,
                "stock": product.stock,
                "reservedStock": product.reserved_stock,
                "availableStock": product.available_stock,
                "price": float(product.price or 0),
            },
        )

    def broadcast_low_stock_alert(self, product):
        self.notify(
            "low_stock_alert",
            {
                "productId": str(product.id),
                "productName": product.title,
                "currentStock": product.available_stock,
                "threshold": product.low_stock_alert,
            },
        )

    def broadcast_new_order(self, order: dict):
        self.notify("new_order", {"order": order})

    def broadcast_order_update(self, order_id, status: str, order: dict):
        self.notify("order_update", {"orderId": str(order_id), "status": status, "data": order})


realtime_service = RealtimeService()


def get_notifier() -> RealtimeService:
    return realtime_service
