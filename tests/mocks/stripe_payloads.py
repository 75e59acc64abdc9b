import hashlib
import hmac
import json
import time
from typing import Any, Dict, List, Optional


def sign_payload(payload: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header the way Stripe signs webhook deliveries."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def checkout_session(
    session_id: str = "cs_test_1",
    user_id: Optional[int] = 42,
    payment_status: str = "paid",
    amount_total: int = 2500,
) -> Dict[str, Any]:
    metadata = {"cart_id": "1"}
    if user_id is not None:
        metadata["user_id"] = str(user_id)
    return {
        "id": session_id,
        "object": "checkout.session",
        "mode": "payment",
        "payment_status": payment_status,
        "payment_intent": f"pi_{session_id}",
        "amount_total": amount_total,
        "currency": "usd",
        "metadata": metadata,
        "customer_details": {"email": "buyer@example.com", "name": "Test Buyer"},
        "shipping_details": {
            "name": "Test Buyer",
            "address": {
                "line1": "1 Groove St",
                "line2": None,
                "city": "Austin",
                "state": "TX",
                "postal_code": "78701",
                "country": "US",
            },
        },
    }


def line_item(record_id: Optional[int], quantity: int = 1, unit_amount: int = 2500) -> Dict[str, Any]:
    metadata = {"db_record_id": str(record_id)} if record_id is not None else {}
    return {
        "id": f"li_{record_id}",
        "object": "item",
        "description": "Test Artist - Test Record",
        "quantity": quantity,
        "price": {
            "id": f"price_{record_id}",
            "unit_amount": unit_amount,
            "product": {"id": f"prod_{record_id}", "metadata": metadata},
        },
    }


def stripe_event(event_type: str, obj: Dict[str, Any], event_id: str = "evt_test_1") -> bytes:
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    }).encode("utf-8")


def line_items_page(items: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"object": "list", "data": items, "has_more": False}
