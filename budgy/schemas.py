from datetime import datetime

from pydantic import BaseModel, Field

from budgy.normalizer import Amount, Category


# --- Receipts ---

class ProcessReceiptIn(BaseModel):
    extracted_text: str = Field("", alias="extractedText")
    user_id: str | None = Field(None, alias="userId")

    model_config = {"populate_by_name": True}


class ReceiptItemIn(BaseModel):
    id: str | None = None
    name: str | None = None
    price: Amount | None = None
    quantity: Amount | None = None
    category: Category | None = None


class UpdateReceiptIn(BaseModel):
    store_name: str | None = Field(None, alias="storeName")
    date: str | None = None
    transaction_date_time: datetime | None = Field(None, alias="transactionDateTime")
    total_amount: Amount | None = Field(None, alias="totalAmount")
    tax_amount: Amount | None = Field(None, alias="taxAmount")
    tip_amount: Amount | None = Field(None, alias="tipAmount")
    items: list[ReceiptItemIn] | None = None
    category: Category | None = None

    model_config = {"populate_by_name": True}


# --- Budget ---

class BudgetIn(BaseModel):
    monthly_budget: float = Field(alias="monthlyBudget", ge=0)

    model_config = {"populate_by_name": True}
