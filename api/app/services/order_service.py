from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models import Order


def order_to_context(order: Order) -> dict:
    return {
        'order_id': order.order_id,
        'type': order.order_type,
        'status': order.status,
        'payment_type': order.payment_type,
        'crypto_amount': order.crypto_amount,
        'crypto_ticker': order.crypto_ticker,
        'fiat_amount': order.fiat_amount,
        'fiat_ticker': order.fiat_ticker,
        'recipient_name': order.recipient_name,
        'error': order.error,
        'created_at': order.created_at.isoformat() if order.created_at else None,
        'updated_at': order.updated_at.isoformat() if order.updated_at else None,
    }


class OrderLookup:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def find(self, order_ids: list[str]) -> list[dict]:
        if not order_ids:
            return []
        wanted = [i.lower() for i in order_ids]
        async with self.session_factory() as db:
            rows = await db.scalars(select(Order).where(func.lower(Order.order_id).in_(wanted)))
            return [order_to_context(o) for o in rows]
