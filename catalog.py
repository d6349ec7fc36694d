import re
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import ReturnDocument

from database import Database, create_document, doc_to_dict, get_documents, parse_object_id, utcnow
from errors import NotFoundError
from logger import get_logger
from schemas import ProductIn, ProductOut, ProductUpdate

logger = get_logger("catalog")

DEFAULT_LIMIT = 50
LATEST_LIMIT = 6
SEARCH_LIMIT = 20


class CatalogStore:
    """Product records. Anyone may read; only the creator may mutate."""

    def __init__(self, database: Database):
        self.database = database

    def list_products(self, limit: int = DEFAULT_LIMIT) -> List[ProductOut]:
        docs = get_documents(self.database.products, limit=limit)
        return [ProductOut(**d) for d in docs]

    def latest(self, limit: int = LATEST_LIMIT) -> List[ProductOut]:
        docs = get_documents(self.database.products, sort=[("createdAt", -1)], limit=limit)
        return [ProductOut(**d) for d in docs]

    def list_owned(self, owner: str) -> List[ProductOut]:
        docs = get_documents(
            self.database.products, {"createdBy": owner}, sort=[("createdAt", -1)]
        )
        return [ProductOut(**d) for d in docs]

    def find_by_id(self, product_id: str) -> ProductOut:
        oid = parse_object_id(product_id)
        doc = self.database.products.find_one({"_id": oid})
        if not doc:
            raise NotFoundError("Product not found")
        return ProductOut(**doc_to_dict(doc))

    def exists(self, oid: ObjectId) -> bool:
        return self.database.products.find_one({"_id": oid}, {"_id": 1}) is not None

    def reserve_stock(self, oid: ObjectId, quantity: int) -> Optional[dict]:
        """
        Take ``quantity`` units in a single conditional update.

        Returns the product after the decrement, or None when the product is
        missing or holds fewer than ``quantity`` units (nothing is written).
        """
        return self.database.products.find_one_and_update(
            {"_id": oid, "availableQuantity": {"$gte": quantity}},
            {"$inc": {"availableQuantity": -quantity}},
            return_document=ReturnDocument.AFTER,
        )

    def release_stock(self, oid: ObjectId, quantity: int) -> None:
        self.database.products.update_one({"_id": oid}, {"$inc": {"availableQuantity": quantity}})

    def search(self, text: str, limit: int = SEARCH_LIMIT) -> List[ProductOut]:
        text = (text or "").strip()
        if not text:
            return []
        # Literal, unanchored, case-insensitive substring match.
        query = {"productName": {"$regex": re.escape(text), "$options": "i"}}
        docs = get_documents(self.database.products, query, limit=limit)
        return [ProductOut(**d) for d in docs]

    def insert(self, product: ProductIn, owner: str) -> str:
        data = product.model_dump()
        data["createdBy"] = owner
        new_id = create_document(self.database.products, data)
        logger.info("Product %s created by %s", new_id, owner)
        return new_id

    def update_owned(self, product_id: str, owner: str, patch: ProductUpdate) -> bool:
        oid = parse_object_id(product_id)
        changes: Dict[str, Any] = patch.model_dump(exclude_unset=True, exclude_none=True)
        query = {"_id": oid, "createdBy": owner}
        if not changes:
            return self.database.products.find_one(query, {"_id": 1}) is not None
        changes["updatedAt"] = utcnow()
        result = self.database.products.update_one(query, {"$set": changes})
        if not result.matched_count:
            logger.info("Update of %s by %s matched nothing", product_id, owner)
        return result.matched_count > 0

    def delete_owned(self, product_id: str, owner: str) -> bool:
        oid = parse_object_id(product_id)
        result = self.database.products.delete_one({"_id": oid, "createdBy": owner})
        if result.deleted_count:
            logger.info("Product %s deleted by %s", product_id, owner)
        return result.deleted_count > 0
