"""
Import (reservation) workflow.

A user "imports" units of a product: stock moves from the product's
``availableQuantity`` into the user's ledger record, and withdrawing moves a
single unit back. For every product the sum of imported quantities plus the
available quantity stays equal to the stock the product was listed with.

Each side of a transfer is one atomic document update. The two sides are not
a transaction; when the second write fails the first is reverted before the
error is reported.
"""
from typing import List, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from catalog import CatalogStore
from database import Database, doc_to_dict, parse_object_id, utcnow
from errors import InvalidInputError, NotFoundError, ServerError, StockError
from logger import get_logger
from schemas import ImportReceipt, ImportRecord, ImportSummary

logger = get_logger("reservations")

PENDING = "pending"


class ReservationLedger:
    """Import records, at most one per (userEmail, productId)."""

    def __init__(self, database: Database):
        self.database = database

    def add(self, user_email: str, product_oid: ObjectId, quantity: int) -> ImportRecord:
        """
        Merge ``quantity`` into the user's record for the product, creating it
        if needed. Returns the record after the merge.
        """
        query = {"userEmail": user_email, "productId": product_oid}
        try:
            doc = self.database.imports.find_one_and_update(
                query,
                {
                    "$inc": {"importedQuantity": quantity},
                    "$setOnInsert": {"importedAt": utcnow(), "status": PENDING},
                },
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            # Lost the insert race to a concurrent first import; the record exists now.
            doc = self.database.imports.find_one_and_update(
                query,
                {"$inc": {"importedQuantity": quantity}},
                return_document=ReturnDocument.AFTER,
            )
        return ImportRecord(**doc_to_dict(doc))

    def take_one(self, user_email: str, product_oid: ObjectId) -> Optional[dict]:
        """
        Remove one unit from the user's record.

        A record holding a single unit is deleted. Returns the record as it
        was before the change, or None when the user has no record.
        """
        query = {"userEmail": user_email, "productId": product_oid}
        before = self.database.imports.find_one_and_update(
            dict(query, importedQuantity={"$gt": 1}),
            {"$inc": {"importedQuantity": -1}},
        )
        if before is not None:
            return before
        return self.database.imports.find_one_and_delete(dict(query, importedQuantity={"$lte": 1}))

    def put_back(self, before: dict) -> None:
        """Undo a take_one given the record it returned."""
        if before["importedQuantity"] > 1:
            self.database.imports.update_one({"_id": before["_id"]}, {"$inc": {"importedQuantity": 1}})
        else:
            self.database.imports.insert_one(before)

    def summarize(self, user_email: str) -> List[ImportSummary]:
        pipeline = [
            {"$match": {"userEmail": user_email}},
            {
                "$group": {
                    "_id": "$productId",
                    "importedQuantity": {"$sum": "$importedQuantity"},
                    "importIds": {"$push": "$_id"},
                }
            },
            {"$sort": {"_id": 1}},
            {
                "$lookup": {
                    "from": "products",
                    "localField": "_id",
                    "foreignField": "_id",
                    "as": "product",
                }
            },
            {"$unwind": "$product"},
            {
                "$project": {
                    "_id": 0,
                    "productId": "$_id",
                    "productImage": "$product.productImage",
                    "productName": "$product.productName",
                    "price": "$product.price",
                    "originCountry": "$product.originCountry",
                    "rating": "$product.rating",
                    "importedQuantity": "$importedQuantity",
                    "importIds": "$importIds",
                }
            },
        ]
        return [ImportSummary(**doc_to_dict(d)) for d in self.database.imports.aggregate(pipeline)]


class ReservationService:
    def __init__(self, catalog: CatalogStore, ledger: ReservationLedger):
        self.catalog = catalog
        self.ledger = ledger

    def import_product(self, user_email: str, product_id: str, quantity: int) -> ImportReceipt:
        """Reserve ``quantity`` units for the user."""
        oid = parse_object_id(product_id)
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise InvalidInputError("Import quantity must be a positive integer")

        product = self.catalog.reserve_stock(oid, quantity)
        if product is None:
            if not self.catalog.exists(oid):
                raise NotFoundError("Product not found")
            logger.info("Import of %d x %s by %s rejected: stock insufficient", quantity, product_id, user_email)
            raise StockError("Stock insufficient")

        try:
            record = self.ledger.add(user_email, oid, quantity)
        except PyMongoError as exc:
            logger.warning("Ledger write failed for %s/%s, restoring %d units", user_email, product_id, quantity)
            self._restore_stock(oid, quantity)
            raise ServerError("Import failed") from exc

        logger.info("%s imported %d x %s", user_email, quantity, product_id)
        return ImportReceipt(
            productId=product_id,
            importedQuantity=record.importedQuantity,
            availableQuantity=product["availableQuantity"],
        )

    def withdraw(self, user_email: str, product_id: str) -> int:
        """Return one imported unit to stock. Returns the units the user still holds."""
        oid = parse_object_id(product_id)
        before = self.ledger.take_one(user_email, oid)
        if before is None:
            raise NotFoundError("Import not found")

        try:
            self.catalog.release_stock(oid, 1)
        except PyMongoError as exc:
            logger.warning("Stock restore failed for %s/%s, reverting ledger", user_email, product_id)
            try:
                self.ledger.put_back(before)
            except PyMongoError:
                logger.exception("Ledger revert failed for %s/%s", user_email, product_id)
            raise ServerError("Withdraw failed") from exc

        remaining = before["importedQuantity"] - 1
        logger.info("%s withdrew 1 x %s (%d left)", user_email, product_id, remaining)
        return remaining

    def list_mine(self, user_email: str) -> List[ImportSummary]:
        return self.ledger.summarize(user_email)

    def _restore_stock(self, oid: ObjectId, quantity: int) -> None:
        try:
            self.catalog.release_stock(oid, quantity)
        except PyMongoError:
            logger.exception("Stock restore failed for %s (%d units lost)", oid, quantity)
