import pytest

from recordshop.core.enums import OrderStatus
from recordshop.models.order import Order, OrderItem
from recordshop.services.referential_guard import ReferentialGuard


@pytest.mark.asyncio
async def test_guard_sees_order_history_written_after_construction(db_session, make_record):
    record = await make_record()
    other = await make_record()
    guard = ReferentialGuard(db_session)

    assert await guard.can_delete(record) is True

    order = Order(checkout_id="cs_test_guard", status=OrderStatus.PAID, total_amount=2500)
    db_session.add(order)
    await db_session.flush()
    db_session.add(OrderItem(
        order_id=order.id, record_id=record.id, title=record.title, artist=record.artist, price=2500, quantity=1
    ))
    await db_session.commit()

    assert await guard.can_delete(record) is False
    assert await guard.can_delete(other) is True
    assert await guard.retained_record_ids() == {record.id}
