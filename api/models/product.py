import uuid
from datetime import datetime

from sqlalchemy import UUID, JSON, CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from api.database.base import Base


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # [{"name": ..., "price": ..., "stock": ..., "options": {...}}]
    variants: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def find_variant(self, name: str | None = None, options: dict | None = None) -> tuple[int, dict] | None:
        """Index and body of the variant matching ``name`` exactly, else matching ``options``."""
        for index, variant in enumerate(self.variants or []):
            if name is not None:
                if variant.get("name") == name:
                    return index, variant
            elif options and variant.get("options") == options:
                return index, variant
        return None
