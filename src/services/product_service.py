"""Read access to the mirrored product catalog."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.db.models import Product
from src.errors import NotFoundError


class ProductService:
    """Owner-scoped product queries."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def list_products(
        self,
        owner_id: str,
        connection_id: str | None = None,
        include_variations: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Product]:
        """List an owner's products by name.

        Args:
            connection_id: Restrict to one store connection.
            include_variations: Also return child variations.
        """
        stmt = select(Product).where(Product.owner_id == owner_id)
        if connection_id is not None:
            stmt = stmt.where(Product.connection_id == connection_id)
        if not include_variations:
            stmt = stmt.where(Product.parent_id.is_(None))
        stmt = stmt.order_by(Product.name).limit(limit).offset(offset)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def get_product(self, owner_id: str, product_id: str) -> Product:
        async with self.session_factory() as session:
            product = await session.get(Product, product_id)
        if product is None or product.owner_id != owner_id:
            raise NotFoundError("Product", product_id)
        return product

    async def list_variations(self, owner_id: str, product_id: str) -> list[Product]:
        """Variations of one of the owner's products."""
        await self.get_product(owner_id, product_id)
        stmt = (
            select(Product)
            .where(Product.parent_id == product_id)
            .order_by(Product.name)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())
