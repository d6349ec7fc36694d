from datetime import datetime, timezone
from typing import Any, List, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from pymongo.errors import PyMongoError

from auth import Identity, get_current_user
from catalog import CatalogStore, DEFAULT_LIMIT
from config import get_settings
from database import Database, get_database
from errors import CarHubError
from logger import get_logger
from reservations import ReservationLedger, ReservationService
from schemas import ImportRequest, ProductIn, ProductOut, ProductUpdate

logger = get_logger("api")

app = FastAPI(title="Car Hub API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------- Error handling ----------

@app.exception_handler(CarHubError)
async def carhub_error_handler(request: Request, exc: CarHubError):
    if exc.status_code >= 500:
        logger.error("%s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.message})

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in exc.errors()]
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder({"success": False, "message": "Invalid request", "errors": errors}),
    )

@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError):
    logger.error("%s %s: database error: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"success": False, "message": "Database error"})

@app.exception_handler(ValidationError)
async def stored_data_error_handler(request: Request, exc: ValidationError):
    # A stored document that no longer fits its response model.
    logger.error("%s %s: malformed stored document", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"success": False, "message": "Internal server error"})

@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error("%s %s: unexpected error", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"success": False, "message": "Internal server error"})


# ---------- Dependencies ----------

def get_catalog(database: Database = Depends(get_database)) -> CatalogStore:
    return CatalogStore(database)

def get_reservations(
    catalog: CatalogStore = Depends(get_catalog),
    database: Database = Depends(get_database),
) -> ReservationService:
    return ReservationService(catalog, ReservationLedger(database))


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------- Basic Routes ----------

@app.get("/")
def read_root():
    return {"message": "Car Hub Server Live!", "timestamp": now_iso()}

@app.get("/health")
def health(database: Database = Depends(get_database)):
    try:
        database.ping()
    except Exception as e:
        logger.error("Health check error: %s", e)
        return JSONResponse(status_code=500, content={"status": "ERROR", "db": "failed", "timestamp": now_iso()})
    return {"status": "OK", "db": "connected", "env": get_settings().env, "timestamp": now_iso()}


# ---------- Product Routes ----------

@app.get("/products")
def list_products(
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=100),
    catalog: CatalogStore = Depends(get_catalog),
) -> Any:
    return {"success": True, "data": catalog.list_products(limit)}

@app.get("/latest-products")
def latest_products(catalog: CatalogStore = Depends(get_catalog)) -> Any:
    return {"success": True, "data": catalog.latest()}

@app.get("/products/{product_id}")
def get_product(product_id: str, catalog: CatalogStore = Depends(get_catalog)) -> Any:
    return {"success": True, "data": catalog.find_by_id(product_id)}

@app.post("/products")
def create_product(
    product: ProductIn,
    user: Identity = Depends(get_current_user),
    catalog: CatalogStore = Depends(get_catalog),
):
    new_id = catalog.insert(product, user.email)
    return {"success": True, "insertedId": new_id}

@app.patch("/products/{product_id}")
def update_product(
    product_id: str,
    patch: ProductUpdate,
    user: Identity = Depends(get_current_user),
    catalog: CatalogStore = Depends(get_catalog),
):
    return {"success": catalog.update_owned(product_id, user.email, patch)}

@app.delete("/products/{product_id}")
def delete_product(
    product_id: str,
    user: Identity = Depends(get_current_user),
    catalog: CatalogStore = Depends(get_catalog),
):
    return {"success": catalog.delete_owned(product_id, user.email)}

@app.get("/my-exports")
def my_exports(
    user: Identity = Depends(get_current_user),
    catalog: CatalogStore = Depends(get_catalog),
):
    return {"success": True, "result": catalog.list_owned(user.email)}

@app.get("/search", response_model=List[ProductOut])
def search_products(
    search: Optional[str] = None,
    catalog: CatalogStore = Depends(get_catalog),
) -> Any:
    return catalog.search(search or "")


# ---------- Import Routes ----------

@app.post("/import-product")
def import_product(
    request: ImportRequest,
    user: Identity = Depends(get_current_user),
    reservations: ReservationService = Depends(get_reservations),
):
    receipt = reservations.import_product(user.email, request.productId, request.importQuantity)
    return {
        "success": True,
        "message": "Product imported",
        "availableQuantity": receipt.availableQuantity,
        "importedQuantity": receipt.importedQuantity,
    }

@app.get("/my-imports")
def my_imports(
    user: Identity = Depends(get_current_user),
    reservations: ReservationService = Depends(get_reservations),
):
    return {"success": True, "result": reservations.list_mine(user.email)}

@app.delete("/my-imports/product/{product_id}")
def remove_import(
    product_id: str,
    user: Identity = Depends(get_current_user),
    reservations: ReservationService = Depends(get_reservations),
):
    remaining = reservations.withdraw(user.email, product_id)
    return {"success": True, "message": "Import withdrawn", "importedQuantity": remaining}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
