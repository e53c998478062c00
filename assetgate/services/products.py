"""Product lookups."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from assetgate.models.product import Product


class ProductRepository:
    """Read-only product queries for the access check."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def find_by_type_and_entity(self, product_type: str, entity_id: str) -> Product | None:
        result = await self.db.execute(
            select(Product).where(
                Product.product_type == product_type,
                Product.entity_id == str(entity_id),
            )
        )
        return result.scalar_one_or_none()
