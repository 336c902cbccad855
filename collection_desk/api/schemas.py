"""
Pydantic schemas for API requests and responses
"""

from decimal import Decimal
from datetime import date
from typing import List, Optional
from pydantic import BaseModel, Field

from ..aging import AgingBucket
from ..collections import Cheque, ChequeForm, Collection
from ..lifecycle import OperationResult
from ..reporting import DayGroup


class CollectionModel(BaseModel):
    id: str
    order_id: str
    customer_id: str
    collection_type: str
    amount: str = Field(..., description="Decimal amount as string")
    status: str
    aging: str
    created_at: Optional[str] = None
    collected_at: Optional[str] = None
    collected_by: Optional[str] = None
    completed_by: Optional[str] = None
    completed_at: Optional[str] = None
    notes: str = ""

    @classmethod
    def from_collection(cls, collection: Collection, bucket: AgingBucket) -> 'CollectionModel':
        data = collection.to_dict()
        data.pop('updated_at', None)
        return cls(aging=bucket.value, **data)


class ChequeModel(BaseModel):
    id: str
    collection_id: str
    order_id: str
    payer_name: str
    bank: str
    cheque_number: str
    cheque_date: str
    deposit_date: Optional[str] = None
    amount: str
    notes: str = ""
    status: str

    @classmethod
    def from_cheque(cls, cheque: Cheque) -> 'ChequeModel':
        data = cheque.to_dict()
        return cls(**{k: v for k, v in data.items() if k in cls.model_fields})


class VerifyRequest(BaseModel):
    secret: str = Field(..., description="Secondary verification password")


class RecognizeRequest(BaseModel):
    notes: str = ""


class PartialPaymentRequest(BaseModel):
    amount: str = Field(..., description="Partial amount as decimal string")
    notes: str = ""


class ChequeFormModel(BaseModel):
    payer_name: str = ""
    bank: str = ""
    cheque_number: str = ""
    cheque_date: Optional[date] = None
    deposit_date: Optional[date] = None
    amount: Decimal = Decimal("0")
    notes: str = ""

    def to_form(self) -> ChequeForm:
        return ChequeForm(
            payer_name=self.payer_name,
            bank=self.bank,
            cheque_number=self.cheque_number,
            cheque_date=self.cheque_date,
            deposit_date=self.deposit_date,
            amount=self.amount,
            notes=self.notes
        )


class RecordChequesRequest(BaseModel):
    cheques: List[ChequeFormModel]
    notes: str = ""

    def to_forms(self) -> List[ChequeForm]:
        return [c.to_form() for c in self.cheques]


class WarningModel(BaseModel):
    code: str
    operation: str
    step: str
    message: str


class OperationResultModel(BaseModel):
    operation: str
    message: str
    collection: Optional[CollectionModel] = None
    merged_into: Optional[CollectionModel] = None
    cheques: List[ChequeModel] = []
    deleted_id: Optional[str] = None
    warnings: List[WarningModel] = []
    steps: List[str] = []

    @classmethod
    def from_result(cls, result: OperationResult, classify) -> 'OperationResultModel':
        def model(c: Optional[Collection]) -> Optional[CollectionModel]:
            return CollectionModel.from_collection(c, classify(c)) if c else None

        return cls(
            operation=result.operation,
            message=result.message,
            collection=model(result.collection),
            merged_into=model(result.merged_into),
            cheques=[ChequeModel.from_cheque(c) for c in result.cheques],
            deleted_id=result.deleted_id,
            warnings=[WarningModel(**w.to_dict()) for w in result.warnings],
            steps=result.steps
        )


class TotalsModel(BaseModel):
    total_pending_amount: str
    total_completed_amount: str
    pending_credit: str
    pending_cheque: str
    overdue_amount: str
    overdue_count: int
    due_soon_amount: str
    due_soon_count: int
    total_collections: int


class DayGroupModel(BaseModel):
    date: str
    count: int
    total_credit: str
    total_cheque: str
    credit_count: int
    cheque_count: int
    pending_total: str
    collections: List[CollectionModel]

    @classmethod
    def from_group(cls, group: DayGroup, classify) -> 'DayGroupModel':
        return cls(
            date=group.key,
            count=group.count,
            total_credit=str(group.total_credit),
            total_cheque=str(group.total_cheque),
            credit_count=group.credit_count,
            cheque_count=group.cheque_count,
            pending_total=str(group.pending_total),
            collections=[CollectionModel.from_collection(c, classify(c)) for c in group.collections]
        )
