from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List

# Collection: products
class ProductIn(BaseModel):
    productName: str = Field(..., min_length=1, description="Display name")
    price: float = Field(..., ge=0, description="Unit price")
    originCountry: Optional[str] = Field(None, description="Country of origin")
    rating: Optional[float] = Field(None, ge=0, le=5, description="Average rating")
    productImage: Optional[str] = Field(None, description="Image URL")
    availableQuantity: int = Field(0, ge=0, description="Units in stock")
    description: Optional[str] = None
    category: Optional[str] = None

class ProductUpdate(BaseModel):
    # Identity and ownership fields are not patchable.
    productName: Optional[str] = Field(None, min_length=1)
    price: Optional[float] = Field(None, ge=0)
    originCountry: Optional[str] = None
    rating: Optional[float] = Field(None, ge=0, le=5)
    productImage: Optional[str] = None
    availableQuantity: Optional[int] = Field(None, ge=0)
    description: Optional[str] = None
    category: Optional[str] = None

class ProductOut(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    productName: Optional[str] = None
    price: Optional[float] = None
    originCountry: Optional[str] = None
    rating: Optional[float] = None
    productImage: Optional[str] = None
    availableQuantity: int = 0
    createdBy: Optional[str] = None
    createdAt: Optional[str] = None

# Collection: imports
class ImportRequest(BaseModel):
    productId: str
    importQuantity: int = Field(1, ge=1)

class ImportRecord(BaseModel):
    id: str
    userEmail: str
    productId: str
    importedQuantity: int = Field(..., ge=1)
    importedAt: Optional[str] = None
    status: str = "pending"

class ImportSummary(BaseModel):
    productId: str
    productImage: Optional[str] = None
    productName: Optional[str] = None
    price: Optional[float] = None
    originCountry: Optional[str] = None
    rating: Optional[float] = None
    importedQuantity: int
    importIds: List[str] = []

class ImportReceipt(BaseModel):
    productId: str
    importedQuantity: int
    availableQuantity: int
