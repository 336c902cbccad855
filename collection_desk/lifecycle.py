"""
Collection Lifecycle Engine

The state machine behind collection verification:

    Pending --recognize--> Complete
    Pending --record_cheques--> Complete (kind unchanged)
    Pending(credit) --record_cheques(conversion)--> Complete, kind=cheque
    Pending(credit) --record_cheques(conversion, existing cheque collection)-->
        Complete, amount merged into the existing collection
    Pending(credit) --record_partial_payment--> Pending, amount reduced
    Pending|Complete --delete--> removed

Each persistence step is a separate store call, awaited in order. There is no
surrounding transaction: when a step fails, earlier writes stay in place and
the PersistenceError names every completed step so the operation can be
reconciled by hand.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, List, Optional, Sequence
import uuid

from .collections import (
    Cheque, ChequeForm, ChequeStatus, Collection, CollectionKind, CollectionStatus,
    Directory, OrderPatch, append_note
)
from .currency import (
    Currency, DEFAULT_TOLERANCE, ZERO, Money, amounts_match, clamp_subtract, format_currency, to_decimal
)
from .errors import (
    CollectionDeskError, CollectionNotFoundError, InvalidTransitionError, PersistenceError,
    ReconciliationWarning, ValidationError
)
from .events import DomainEvent, EventDispatcher
from .logging_config import get_logger, log_action
from .rbac import Caller, Permission, VerificationGate
from .reporting import export_csv, export_rows
from .store import CollectionStoreInterface
from .timeutils import utcnow

logger = get_logger("collection_desk.lifecycle")

CHEQUE_RECORDED_NOTE = "Cheque recorded."


class StepLog:
    """
    Ordered record of the persistence steps an operation has completed.

    ``high_water_mark`` is the last step known to have been applied, which
    is where a retry or a reconciliation tool picks up.
    """

    def __init__(self, operation: str):
        self.operation = operation
        self.completed: List[str] = []
        self.failed_step: Optional[str] = None
        self.warnings: List[ReconciliationWarning] = []

    @property
    def high_water_mark(self) -> Optional[str]:
        return self.completed[-1] if self.completed else None

    async def run(self, step: str, action: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Run a required step; a failure aborts the operation"""
        try:
            result = await action(*args, **kwargs)
        except CollectionDeskError:
            self.failed_step = step
            raise
        except Exception as e:
            self.failed_step = step
            raise PersistenceError(self.operation, step, self.completed, e) from e
        self.completed.append(step)
        return result

    async def attempt(self, step: str, action: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Run a step whose failure leaves the order and collection diverged
        but must not abort the operation. Failures become warnings.
        """
        try:
            result = await action(*args, **kwargs)
        except Exception as e:
            warning = ReconciliationWarning(self.operation, step, str(e))
            self.warnings.append(warning)
            logger.warning(f"Reconciliation needed: {warning}")
            return None
        self.completed.append(step)
        return result


@dataclass
class OperationResult:
    """Outcome of a lifecycle operation, used to update the in-memory view"""
    operation: str
    message: str
    collection: Optional[Collection] = None
    merged_into: Optional[Collection] = None
    cheques: List[Cheque] = field(default_factory=list)
    deleted_id: Optional[str] = None
    warnings: List[ReconciliationWarning] = field(default_factory=list)
    steps: List[str] = field(default_factory=list)

    @property
    def collections(self) -> List[Collection]:
        return [c for c in (self.collection, self.merged_into) if c is not None]

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)


def validate_cheque_forms(collection: Collection, forms: Sequence[ChequeForm], is_conversion: bool,
                          tolerance: Decimal = DEFAULT_TOLERANCE, currency: Currency = Currency.LKR) -> None:
    """
    Check cheque forms against the collection before anything is written.

    Checks run in order and the first failure is raised: required fields,
    no cheque larger than the collection, amounts summing to the collection
    within tolerance, and deposit dates when converting from credit.
    """
    if not forms:
        raise ValidationError("At least one cheque is required", "cheques")

    for index, form in enumerate(forms, start=1):
        missing = form.missing_fields()
        if missing:
            raise ValidationError(
                f"Cheque {index}: fill in all required fields: payer, amount, bank, "
                f"cheque number and cheque date (missing: {', '.join(missing)})",
                missing[0]
            )

    for index, form in enumerate(forms, start=1):
        if form.amount > collection.amount:
            raise ValidationError(
                f"Cheque {index} amount {format_currency(form.amount, currency)} exceeds the "
                f"collection amount {format_currency(collection.amount, currency)}",
                "amount"
            )

    total = sum((form.amount for form in forms), ZERO)
    if not amounts_match(total, collection.amount, tolerance):
        raise ValidationError(
            f"Cheque amounts total {format_currency(total, currency)} but the collection is "
            f"{format_currency(collection.amount, currency)}",
            "amount"
        )

    if is_conversion:
        for index, form in enumerate(forms, start=1):
            if form.deposit_date is None:
                raise ValidationError(
                    f"Cheque {index}: a deposit date is required to schedule the conversion",
                    "deposit_date"
                )


class CollectionLifecycleEngine:
    """Verifies, completes, splits, converts and deletes collections"""

    def __init__(
        self,
        store: CollectionStoreInterface,
        gate: VerificationGate,
        dispatcher: Optional[EventDispatcher] = None,
        currency: Currency = Currency.LKR,
        tolerance: Decimal = DEFAULT_TOLERANCE,
        clock: Callable[[], datetime] = utcnow
    ):
        self.store = store
        self.gate = gate
        self.dispatcher = dispatcher or EventDispatcher()
        self.currency = currency
        self.tolerance = tolerance
        self.clock = clock

    @classmethod
    def from_config(cls, store: CollectionStoreInterface, config,
                    dispatcher: Optional[EventDispatcher] = None) -> 'CollectionLifecycleEngine':
        return cls(
            store,
            VerificationGate.from_config(config),
            dispatcher or EventDispatcher(enabled=config.enable_events),
            currency=Currency[config.currency],
            tolerance=Decimal(config.amount_tolerance)
        )

    def _money(self, amount: Decimal) -> str:
        return Money(amount, self.currency).to_string()

    def _require_pending(self, collection: Collection, operation: str) -> None:
        if not collection.is_pending:
            raise InvalidTransitionError(collection.id, operation, "collection is already complete")

    # Queries

    async def list_collections(self, caller: Caller) -> List[Collection]:
        """All collections, newest first"""
        self.gate.require(caller, Permission.VIEW_COLLECTIONS)
        steps = StepLog("list_collections")
        return await steps.run("list_collections", self.store.list_collections)

    async def get_collection(self, caller: Caller, collection_id: str) -> Collection:
        self.gate.require(caller, Permission.VIEW_COLLECTIONS)
        steps = StepLog("get_collection")
        collection = await steps.run("load_collection", self.store.get_collection, collection_id)
        if collection is None:
            raise CollectionNotFoundError(collection_id)
        return collection

    def export_csv(self, caller: Caller, collections: Sequence[Collection],
                   directory: Optional[Directory] = None) -> str:
        """CSV export of an already filtered collection list"""
        self.gate.require(caller, Permission.EXPORT_REPORTS)
        if not collections:
            raise ValidationError("No collections to export")
        return export_csv(export_rows(collections, directory))

    # Verification

    async def verify_and_open(self, caller: Caller, collection_id: str, secret: Optional[str]) -> Collection:
        """
        Check the secondary verification password and return the collection
        for review. Nothing is written.
        """
        self.gate.require(caller, Permission.VERIFY_AND_COMPLETE)
        try:
            self.gate.check_verification_secret(secret)
        except CollectionDeskError:
            log_action(logger, "warning", "Verification password rejected",
                       user_id=caller.id, action="verify_and_open", resource=collection_id)
            raise

        steps = StepLog("verify_and_open")
        collection = await steps.run("load_collection", self.store.get_collection, collection_id)
        if collection is None:
            raise CollectionNotFoundError(collection_id)

        log_action(logger, "info", "Collection opened for verification",
                   user_id=caller.id, action="verify_and_open", resource=collection_id)
        return collection

    async def recognize(self, caller: Caller, collection: Collection, notes: str = "",
                        converting: bool = False) -> OperationResult:
        """
        Mark a pending collection fully settled and add its amount to the
        order's paid total. Credit collections also zero the order's credit
        balance; cheque collections leave the cheque balance alone until the
        cheque itself clears.
        """
        self.gate.require(caller, Permission.VERIFY_AND_COMPLETE)
        self._require_pending(collection, "recognize")
        if converting:
            raise InvalidTransitionError(collection.id, "recognize", "a cheque conversion is in progress")

        steps = StepLog("recognize")
        balances = await steps.run("read_order", self.store.get_order_balances, collection.order_id)

        order_note = (
            f"{collection.kind.value.upper()} collection of {self._money(collection.amount)} "
            f"completed by {caller.name}."
        )
        if notes:
            order_note += f" Notes: {notes}"
        patch = OrderPatch(
            amount_paid=balances.amount_paid + collection.amount,
            notes=append_note(balances.notes, order_note)
        )
        if collection.is_credit:
            patch.credit_balance = ZERO
        await steps.run("update_order", self.store.update_order, collection.order_id, patch)

        now = self.clock()
        await steps.run("complete_collection", self.store.update_collection, collection.id, {
            'status': CollectionStatus.COMPLETE,
            'notes': notes,
            'completed_by': caller.name,
            'completed_at': now,
            'updated_at': now,
        })

        updated = collection.copy(
            status=CollectionStatus.COMPLETE, notes=notes,
            completed_by=caller.name, completed_at=now, updated_at=now
        )
        self.dispatcher.emit(DomainEvent.COLLECTION_COMPLETED, "collection", collection.id, {
            'order_id': collection.order_id,
            'kind': collection.kind.value,
            'amount': str(collection.amount),
            'completed_by': caller.name,
        })
        log_action(logger, "info", "Collection recognized", user_id=caller.id,
                   action="recognize", resource=collection.id,
                   extra={'amount': str(collection.amount), 'kind': collection.kind.value})

        return OperationResult(
            operation="recognize",
            message=(
                f"{collection.kind.value.upper()} collection of {self._money(collection.amount)} "
                f"has been marked as complete!"
            ),
            collection=updated,
            steps=list(steps.completed)
        )

    async def record_partial_payment(self, caller: Caller, collection: Collection,
                                     partial_amount: Any, notes: str = "") -> OperationResult:
        """
        Reduce a pending credit collection by a partial payment.

        The collection stays pending even if the remainder is tiny; only
        recognize and record_cheques complete a collection.
        """
        self.gate.require(caller, Permission.VERIFY_AND_COMPLETE)
        self._require_pending(collection, "record a partial payment on")
        if not collection.is_credit:
            raise InvalidTransitionError(
                collection.id, "record a partial payment on", "only credit collections take partial payments"
            )
        try:
            partial = to_decimal(partial_amount)
        except ValueError as e:
            raise ValidationError(str(e), "partial_amount") from e
        if partial <= ZERO or partial >= collection.amount:
            raise ValidationError(
                "Enter a valid partial amount (greater than 0 and less than the total amount)",
                "partial_amount"
            )

        remaining = collection.amount - partial
        note = f"Partial payment of {self._money(partial)} received. Remaining: {self._money(remaining)}."
        if notes:
            note += f" Notes: {notes}"
        new_notes = append_note(collection.notes, note)

        steps = StepLog("record_partial_payment")
        now = self.clock()
        await steps.run("update_collection", self.store.update_collection, collection.id, {
            'amount': remaining,
            'notes': new_notes,
            'updated_at': now,
        })

        # The collection already shows the payment; an order failure from here is a warning
        balances = await steps.attempt("read_order", self.store.get_order_balances, collection.order_id)
        if balances is not None:
            patch = OrderPatch(
                amount_paid=balances.amount_paid + partial,
                credit_balance=clamp_subtract(balances.credit_balance, partial)
            )
            await steps.attempt("update_order", self.store.update_order, collection.order_id, patch)

        updated = collection.copy(amount=remaining, notes=new_notes, updated_at=now)
        self.dispatcher.emit(DomainEvent.COLLECTION_PARTIAL_PAYMENT, "collection", collection.id, {
            'order_id': collection.order_id,
            'partial_amount': str(partial),
            'remaining': str(remaining),
        })
        log_action(logger, "info", "Partial payment recorded", user_id=caller.id,
                   action="record_partial_payment", resource=collection.id,
                   extra={'partial_amount': str(partial), 'remaining': str(remaining)})

        return OperationResult(
            operation="record_partial_payment",
            message=(
                f"Partial payment of {self._money(partial)} recorded successfully. "
                f"Remaining amount: {self._money(remaining)}"
            ),
            collection=updated,
            warnings=list(steps.warnings),
            steps=list(steps.completed)
        )

    async def record_cheques(self, caller: Caller, collection: Collection, forms: Sequence[ChequeForm],
                             is_conversion: bool = False, notes: str = "") -> OperationResult:
        """
        Record one or more cheques for a pending collection and complete it.

        With ``is_conversion`` a credit collection is converted: its amount
        moves from the order's credit balance to its cheque balance and it
        is either merged into the order's existing cheque collection or
        becomes a cheque collection itself.
        """
        self.gate.require(caller, Permission.VERIFY_AND_COMPLETE)
        self._require_pending(collection, "record cheques for")
        if is_conversion and not collection.is_credit:
            raise InvalidTransitionError(collection.id, "convert", "only credit collections can be converted")
        if not is_conversion and not collection.is_cheque:
            raise InvalidTransitionError(
                collection.id, "record cheques for", "credit collections must be converted to cheque first"
            )
        validate_cheque_forms(collection, forms, is_conversion, self.tolerance, self.currency)

        operation = "convert_to_cheque" if is_conversion else "record_cheques"
        steps = StepLog(operation)
        now = self.clock()
        amount = collection.amount

        cheques = [
            Cheque(
                id=str(uuid.uuid4()),
                collection_id=collection.id,
                order_id=collection.order_id,
                customer_id=collection.customer_id or None,
                payer_name=form.payer_name.strip(),
                bank=form.bank.strip(),
                cheque_number=form.cheque_number.strip(),
                cheque_date=form.cheque_date,
                deposit_date=form.deposit_date,
                amount=form.amount,
                notes=form.notes.strip() or f"Created from collection {collection.id}",
                status=ChequeStatus.RECEIVED,
                created_by=caller.id,
                created_at=now,
            )
            for form in forms
        ]
        inserted = await steps.run("insert_cheques", self.store.insert_cheques, cheques)
        self.dispatcher.emit(DomainEvent.CHEQUES_UPDATED, "collection", collection.id, {
            'order_id': collection.order_id,
            'cheque_ids': [c.id for c in inserted],
        })

        completion_notes = append_note(notes, CHEQUE_RECORDED_NOTE)

        balances = await steps.attempt("read_order", self.store.get_order_balances, collection.order_id)
        if balances is not None:
            patch = OrderPatch(
                amount_paid=balances.amount_paid + amount,
                notes=append_note(
                    balances.notes,
                    f"CHEQUE collection of {self._money(amount)} completed by {caller.name}. {completion_notes}"
                )
            )
            if is_conversion:
                patch.credit_balance = clamp_subtract(balances.credit_balance, amount)
                patch.cheque_balance = balances.cheque_balance + amount
            await steps.attempt("update_order", self.store.update_order, collection.order_id, patch)

        await steps.run("complete_collection", self.store.update_collection, collection.id, {
            'status': CollectionStatus.COMPLETE,
            'notes': completion_notes,
            'completed_by': caller.name,
            'completed_at': now,
            'updated_at': now,
        })
        source = collection.copy(
            status=CollectionStatus.COMPLETE, notes=completion_notes,
            completed_by=caller.name, completed_at=now, updated_at=now
        )

        result = OperationResult(
            operation=operation,
            message="Cheque details recorded and collection marked as complete.",
            collection=source,
            cheques=list(inserted)
        )

        if is_conversion:
            await self._finish_conversion(steps, caller, source, result, amount)

        self.dispatcher.emit(DomainEvent.COLLECTION_COMPLETED, "collection", collection.id, {
            'order_id': collection.order_id,
            'kind': collection.kind.value,
            'amount': str(amount),
            'completed_by': caller.name,
            'cheque_count': len(inserted),
        })
        log_action(logger, "info", "Cheques recorded", user_id=caller.id, action=operation,
                   resource=collection.id,
                   extra={'amount': str(amount), 'cheques': len(inserted),
                          'merged_into': result.merged_into.id if result.merged_into else None})

        result.warnings = list(steps.warnings)
        result.steps = list(steps.completed)
        return result

    async def _finish_conversion(self, steps: StepLog, caller: Caller, source: Collection,
                                 result: OperationResult, amount: Decimal) -> None:
        existing = await steps.run(
            "find_existing_cheque_collection",
            self.store.find_existing_cheque_collection, source.order_id, source.id
        )

        if existing is None:
            converted_notes = append_note(source.notes, "Converted from credit to cheque.")
            await steps.run("convert_kind", self.store.update_collection, source.id, {
                'kind': CollectionKind.CHEQUE,
                'notes': converted_notes,
            })
            result.collection = source.copy(kind=CollectionKind.CHEQUE, notes=converted_notes)
            self.dispatcher.emit(DomainEvent.COLLECTION_CONVERTED, "collection", source.id, {
                'order_id': source.order_id,
                'amount': str(amount),
            })
            return

        cheque_ids = [c.id for c in result.cheques]
        await steps.run("reassign_cheques", self.store.reassign_cheque_collection, cheque_ids, existing.id)
        result.cheques = [replace(c, collection_id=existing.id) for c in result.cheques]

        merged_amount = existing.amount + amount
        merged_notes = append_note(existing.notes, f"Merged from {source.id}")
        await steps.run("merge_into_existing", self.store.update_collection, existing.id, {
            'amount': merged_amount,
            'notes': merged_notes,
        })
        result.merged_into = existing.copy(amount=merged_amount, notes=merged_notes)

        source_notes = append_note(source.notes, f"Merged into {existing.id}")
        await steps.run("mark_source_merged", self.store.update_collection, source.id, {
            'notes': source_notes,
        })
        result.collection = source.copy(notes=source_notes)

        self.dispatcher.emit(DomainEvent.COLLECTION_MERGED, "collection", source.id, {
            'order_id': source.order_id,
            'merged_into': existing.id,
            'amount': str(amount),
        })

    async def delete(self, caller: Caller, collection_id: str, admin_secret: Optional[str],
                     confirmed: bool = False) -> OperationResult:
        """
        Hard-delete a collection record. Linked cheques and the order's
        balances are left untouched; this is an administrative correction.
        """
        self.gate.require(caller, Permission.DELETE_COLLECTIONS)
        try:
            self.gate.check_admin_secret(admin_secret)
        except CollectionDeskError:
            log_action(logger, "warning", "Admin password rejected for delete",
                       user_id=caller.id, action="delete", resource=collection_id)
            raise
        if not confirmed:
            raise ValidationError("Deletion must be confirmed; it cannot be undone", "confirmed")

        steps = StepLog("delete")
        deleted = await steps.run("delete_collection", self.store.delete_collection, collection_id)
        if not deleted:
            raise CollectionNotFoundError(collection_id)

        self.dispatcher.emit(DomainEvent.COLLECTION_DELETED, "collection", collection_id, {
            'deleted_by': caller.name,
        })
        log_action(logger, "warning", "Collection deleted", user_id=caller.id,
                   action="delete", resource=collection_id)

        return OperationResult(
            operation="delete",
            message="Collection deleted successfully.",
            deleted_id=collection_id,
            steps=list(steps.completed)
        )
