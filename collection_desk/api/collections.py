"""
Collection lifecycle endpoints
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response

from .auth import CollectionDeskSystem, get_caller, get_system
from .schemas import (
    ChequeModel,
    CollectionModel,
    DayGroupModel,
    OperationResultModel,
    PartialPaymentRequest,
    RecognizeRequest,
    RecordChequesRequest,
    TotalsModel,
    VerifyRequest
)
from ..aging import AgingBucket
from ..collections import Collection, CollectionKind, CollectionStatus
from ..errors import (
    AuthorizationError, CollectionDeskError, CollectionNotFoundError, InvalidTransitionError,
    PersistenceError, ValidationError
)
from ..rbac import Caller, Permission
from ..reporting import CollectionFilter, apply_filters, compute_totals, group_by_day


router = APIRouter()


def _http_error(e: CollectionDeskError) -> HTTPException:
    if isinstance(e, CollectionNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, AuthorizationError):
        return HTTPException(status_code=403, detail=str(e))
    if isinstance(e, PersistenceError):
        return HTTPException(status_code=502, detail={
            "message": str(e),
            "operation": e.operation,
            "failed_step": e.failed_step,
            "completed_steps": e.completed_steps,
        })
    if isinstance(e, ValidationError):
        return HTTPException(status_code=400, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


def _criteria(status: Optional[str], kind: Optional[str], date_from: Optional[date],
              date_to: Optional[date], aging: Optional[str], search: Optional[str]) -> CollectionFilter:
    try:
        return CollectionFilter(
            status=CollectionStatus.normalize(status) if status else None,
            kind=CollectionKind(kind.lower()) if kind else None,
            date_from=date_from,
            date_to=date_to,
            aging=AgingBucket(aging.lower()) if aging else None,
            search=search
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


async def _filtered(system: CollectionDeskSystem, caller: Caller, criteria: CollectionFilter) -> List[Collection]:
    system.engine.gate.require(caller, Permission.VIEW_COLLECTIONS)
    collections = await system.collections()
    return apply_filters(collections, criteria, system.now(), system.directory, system.policy)


async def _stored(system: CollectionDeskSystem, caller: Caller, collection_id: str) -> Collection:
    """
    The collection as the store holds it. Mutations never start from the
    projected copy, which shows an open conversion as a cheque collection.
    Callers check capability before calling this.
    """
    await system.collections()
    return await system.engine.get_collection(caller, collection_id)


def _require_no_conversion(system: CollectionDeskSystem, collection_id: str, operation: str) -> None:
    if system.projection.is_converting(collection_id):
        raise InvalidTransitionError(collection_id, operation, "a cheque conversion is in progress")


def _result(system: CollectionDeskSystem, result) -> OperationResultModel:
    system.projection.apply(result)
    return OperationResultModel.from_result(result, system.classify)


@router.get("", response_model=List[CollectionModel])
async def list_collections(
    status: Optional[str] = Query(None),
    kind: Optional[str] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    aging: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    caller: Caller = Depends(get_caller),
    system: CollectionDeskSystem = Depends(get_system)
):
    """List collections matching the active filters, newest first"""
    criteria = _criteria(status, kind, date_from, date_to, aging, search)
    try:
        collections = await _filtered(system, caller, criteria)
    except CollectionDeskError as e:
        raise _http_error(e)
    return [CollectionModel.from_collection(c, system.classify(c)) for c in collections]


@router.get("/totals", response_model=TotalsModel)
async def get_totals(
    caller: Caller = Depends(get_caller),
    system: CollectionDeskSystem = Depends(get_system)
):
    """Portfolio totals over every collection, ignoring filters"""
    try:
        system.engine.gate.require(caller, Permission.VIEW_COLLECTIONS)
        collections = await system.collections()
    except CollectionDeskError as e:
        raise _http_error(e)
    return TotalsModel(**compute_totals(collections, system.now(), system.policy).to_dict())


@router.get("/groups", response_model=List[DayGroupModel])
async def get_day_groups(
    status: Optional[str] = Query(None),
    kind: Optional[str] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    aging: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    caller: Caller = Depends(get_caller),
    system: CollectionDeskSystem = Depends(get_system)
):
    """Filtered collections grouped by calendar day"""
    criteria = _criteria(status, kind, date_from, date_to, aging, search)
    try:
        collections = await _filtered(system, caller, criteria)
    except CollectionDeskError as e:
        raise _http_error(e)
    groups = group_by_day(collections, system.policy.tz)
    return [DayGroupModel.from_group(g, system.classify) for g in groups]


@router.get("/export")
async def export_collections(
    status: Optional[str] = Query(None),
    kind: Optional[str] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    aging: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    caller: Caller = Depends(get_caller),
    system: CollectionDeskSystem = Depends(get_system)
):
    """Download the filtered collections as CSV"""
    criteria = _criteria(status, kind, date_from, date_to, aging, search)
    try:
        collections = await _filtered(system, caller, criteria)
        content = system.engine.export_csv(caller, collections, system.directory)
    except CollectionDeskError as e:
        raise _http_error(e)

    filename = f"collections_{system.now().date().isoformat()}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )


@router.get("/{collection_id}", response_model=CollectionModel)
async def get_collection(
    collection_id: str,
    caller: Caller = Depends(get_caller),
    system: CollectionDeskSystem = Depends(get_system)
):
    """Get collection by ID"""
    try:
        collection = await system.engine.get_collection(caller, collection_id)
    except CollectionDeskError as e:
        raise _http_error(e)
    if not system.projection.is_converting(collection_id):
        system.projection.put(collection)
    return CollectionModel.from_collection(collection, system.classify(collection))


@router.get("/{collection_id}/cheques", response_model=List[ChequeModel])
async def list_collection_cheques(
    collection_id: str,
    caller: Caller = Depends(get_caller),
    system: CollectionDeskSystem = Depends(get_system)
):
    """Cheques recorded against a collection"""
    try:
        system.engine.gate.require(caller, Permission.VIEW_COLLECTIONS)
    except CollectionDeskError as e:
        raise _http_error(e)
    cheques = await system.store.list_cheques(collection_id)
    return [ChequeModel.from_cheque(c) for c in cheques]


@router.post("/{collection_id}/verify", response_model=CollectionModel)
async def verify_collection(
    collection_id: str,
    request: VerifyRequest,
    caller: Caller = Depends(get_caller),
    system: CollectionDeskSystem = Depends(get_system)
):
    """Check the verification password and open the collection for review"""
    try:
        collection = await system.engine.verify_and_open(caller, collection_id, request.secret)
    except CollectionDeskError as e:
        raise _http_error(e)
    if not system.projection.is_converting(collection_id):
        system.projection.put(collection)
    return CollectionModel.from_collection(collection, system.classify(collection))


@router.post("/{collection_id}/recognize", response_model=OperationResultModel)
async def recognize_collection(
    collection_id: str,
    request: RecognizeRequest,
    caller: Caller = Depends(get_caller),
    system: CollectionDeskSystem = Depends(get_system)
):
    """Mark a pending collection as fully settled"""
    try:
        system.engine.gate.require(caller, Permission.VERIFY_AND_COMPLETE)
        collection = await _stored(system, caller, collection_id)
        result = await system.engine.recognize(
            caller, collection, request.notes,
            converting=system.projection.is_converting(collection_id)
        )
    except CollectionDeskError as e:
        raise _http_error(e)
    return _result(system, result)


@router.post("/{collection_id}/partial-payment", response_model=OperationResultModel)
async def record_partial_payment(
    collection_id: str,
    request: PartialPaymentRequest,
    caller: Caller = Depends(get_caller),
    system: CollectionDeskSystem = Depends(get_system)
):
    """Reduce a pending credit collection by a partial payment"""
    try:
        system.engine.gate.require(caller, Permission.VERIFY_AND_COMPLETE)
        _require_no_conversion(system, collection_id, "record a partial payment on")
        collection = await _stored(system, caller, collection_id)
        result = await system.engine.record_partial_payment(caller, collection, request.amount, request.notes)
    except CollectionDeskError as e:
        raise _http_error(e)
    return _result(system, result)


@router.post("/{collection_id}/cheques", response_model=OperationResultModel)
async def record_cheques(
    collection_id: str,
    request: RecordChequesRequest,
    caller: Caller = Depends(get_caller),
    system: CollectionDeskSystem = Depends(get_system)
):
    """
    Record cheques for a pending cheque collection and complete it. A credit
    collection under conversion is finished through the conversion commit.
    """
    try:
        system.engine.gate.require(caller, Permission.VERIFY_AND_COMPLETE)
        _require_no_conversion(system, collection_id, "record cheques for")
        collection = await _stored(system, caller, collection_id)
        result = await system.engine.record_cheques(caller, collection, request.to_forms(), notes=request.notes)
    except CollectionDeskError as e:
        raise _http_error(e)
    return _result(system, result)


@router.post("/{collection_id}/conversion", response_model=CollectionModel)
async def begin_conversion(
    collection_id: str,
    caller: Caller = Depends(get_caller),
    system: CollectionDeskSystem = Depends(get_system)
):
    """Start converting a credit collection to cheque; the view shows it as a cheque"""
    try:
        system.engine.gate.require(caller, Permission.VERIFY_AND_COMPLETE)
        patch = system.projection.pending_patch(collection_id)
        if patch is None:
            collection = await _stored(system, caller, collection_id)
            patch = system.projection.begin_conversion(collection)
    except CollectionDeskError as e:
        raise _http_error(e)
    return CollectionModel.from_collection(patch.after, system.classify(patch.after))


@router.delete("/{collection_id}/conversion", response_model=CollectionModel)
async def abort_conversion(
    collection_id: str,
    caller: Caller = Depends(get_caller),
    system: CollectionDeskSystem = Depends(get_system)
):
    """Cancel a conversion and restore the credit collection in the view"""
    try:
        system.engine.gate.require(caller, Permission.VERIFY_AND_COMPLETE)
        patch = system.projection.pending_patch(collection_id)
        if patch is None:
            raise InvalidTransitionError(collection_id, "abort conversion of", "no conversion in progress")
    except CollectionDeskError as e:
        raise _http_error(e)
    restored = system.projection.abort_conversion(patch)
    return CollectionModel.from_collection(restored, system.classify(restored))


@router.post("/{collection_id}/conversion/commit", response_model=OperationResultModel)
async def commit_conversion(
    collection_id: str,
    request: RecordChequesRequest,
    caller: Caller = Depends(get_caller),
    system: CollectionDeskSystem = Depends(get_system)
):
    """Record the conversion cheques; any failure restores the credit collection"""
    try:
        system.engine.gate.require(caller, Permission.VERIFY_AND_COMPLETE)
        patch = system.projection.pending_patch(collection_id)
        if patch is None:
            raise InvalidTransitionError(collection_id, "commit conversion of", "no conversion in progress")
        result = await system.projection.commit_conversion(
            system.engine, caller, patch, request.to_forms(), request.notes
        )
    except CollectionDeskError as e:
        raise _http_error(e)
    return OperationResultModel.from_result(result, system.classify)


@router.delete("/{collection_id}", response_model=OperationResultModel)
async def delete_collection(
    collection_id: str,
    confirm: bool = Query(False),
    x_admin_secret: Optional[str] = Header(None),
    caller: Caller = Depends(get_caller),
    system: CollectionDeskSystem = Depends(get_system)
):
    """Hard-delete a collection. Requires the admin password and confirmation."""
    try:
        result = await system.engine.delete(caller, collection_id, x_admin_secret, confirmed=confirm)
    except CollectionDeskError as e:
        raise _http_error(e)
    return _result(system, result)
