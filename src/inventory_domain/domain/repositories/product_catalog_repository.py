# src/inventory_domain/domain/repositories/product_catalog_repository.py
"""Product and laboratory lookup repository interface."""
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

from src.common.dtos.inventory_dtos import InitialStockDTO
from src.inventory_domain.domain.entities.catalog import Laboratory, Product


class IProductCatalogRepository(ABC):

    @abstractmethod
    def product_exists(self, product_id: int) -> bool:
        pass

    @abstractmethod
    def get_product(self, product_id: int) -> Optional[Product]:
        pass

    @abstractmethod
    def laboratory_name(self, laboratory_id: int) -> Optional[str]:
        """Name of the laboratory, or None if it does not exist."""
        pass

    @abstractmethod
    def create_laboratory(self, name: str) -> Laboratory:
        """Raises ConflictError if the name is taken."""
        pass

    @abstractmethod
    def create_product(
        self,
        laboratory_id: int,
        name: str,
        description: Optional[str] = None,
        sales_price: Optional[Decimal] = None,
        initial_stock: Optional[InitialStockDTO] = None,
    ) -> Product:
        """
        Raises ConflictError for a duplicate name within the laboratory, ReferenceNotFoundError for an unknown laboratory.

        With initial_stock, the opening batch is written in the same transaction as the product.
        """
        pass
