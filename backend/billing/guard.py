"""
Usage-Fee Gate - token fee around fallible operations

Enforces:
- An active store before anything runs
- Fee settings before any fee is charged
- Token debit before execution (operation never runs if the debit fails)
- Compensating credit of the same fee when the operation fails or is cancelled

IMPORTANT: The gate does not deduplicate concurrent invocations. Two
concurrent execute() calls on the same store race on the remote balance;
the conditional debit in TokenBalanceService keeps it from going negative.
"""

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, Optional, Tuple, TypeVar

from .config import DEBIT_ERROR_TITLES, ERROR_CODES
from .errors import BillingError, DebitFailed, NoActiveStore, ReversalFailed, SettingsUnavailable
from .models import FeeSettings, GuardedOperationResult
from .notifications import LoggingNotifier, Notifier

logger = logging.getLogger(__name__)

T = TypeVar("T")


class UsageFeeGate:
    """
    Wraps an operation in a token debit with refund-on-failure.

    Usage:
        gate = UsageFeeGate(TokenBalanceService(db))
        description = await gate.execute(
            lambda: description_generator.run(payload),
            store_id=session.active_store_id,
            fee_settings=fee_settings,
            feature_name="Product description",
        )
    """

    def __init__(self, balance_service, notifier: Optional[Notifier] = None):
        self.balance_service = balance_service
        self.notifier = notifier or LoggingNotifier()

    def resolve_fee(
        self,
        fee_settings: Optional[FeeSettings],
        fee: Optional[float] = None,
        skip_fee_deduction: bool = False
    ) -> float:
        if skip_fee_deduction:
            return 0
        if fee is not None:
            return fee
        return fee_settings.ai_usage_fee if fee_settings else 0

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        store_id: Optional[str],
        fee_settings: Optional[FeeSettings],
        fee: Optional[float] = None,
        skip_fee_deduction: bool = False,
        feature_name: str = "AI feature"
    ) -> T:
        """
        Debit the fee, run the operation, refund the fee if it fails.

        Raises:
            NoActiveStore: no store selected; operation never invoked
            SettingsUnavailable: fee required but no settings; operation never invoked
            DebitFailed: debit rejected or errored; operation never invoked, nothing refunded
            Exception: whatever the operation raised, after the refund
            asyncio.CancelledError: the call was cancelled mid-operation, after the refund
        """
        result, error = await self._run(
            operation, store_id, fee_settings, fee, skip_fee_deduction, feature_name
        )
        if error is not None:
            raise error
        return result.payload

    async def execute_guarded(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        store_id: Optional[str],
        fee_settings: Optional[FeeSettings],
        fee: Optional[float] = None,
        skip_fee_deduction: bool = False,
        feature_name: str = "AI feature"
    ) -> GuardedOperationResult:
        """
        Same as execute(), but reports operation failures in the result.

        Precondition and debit errors (NoActiveStore, SettingsUnavailable,
        DebitFailed) still raise since no fee was charged.
        """
        result, _ = await self._run(
            operation, store_id, fee_settings, fee, skip_fee_deduction, feature_name
        )
        return result

    async def _run(
        self,
        operation: Callable[[], Awaitable[Any]],
        store_id: Optional[str],
        fee_settings: Optional[FeeSettings],
        fee: Optional[float],
        skip_fee_deduction: bool,
        feature_name: str
    ) -> Tuple[GuardedOperationResult, Optional[Exception]]:
        request_id = str(uuid.uuid4())

        # 1. Preconditions
        if not store_id:
            self.notifier.notify("Error", ERROR_CODES["NO_ACTIVE_STORE"], "destructive")
            raise NoActiveStore()

        if not skip_fee_deduction and fee_settings is None:
            self.notifier.notify("Error", ERROR_CODES["SETTINGS_UNAVAILABLE"], "destructive")
            raise SettingsUnavailable(store_id=store_id)

        actual_fee = self.resolve_fee(fee_settings, fee, skip_fee_deduction)
        charge = actual_fee > 0

        # 2. Debit (operation never runs if this fails)
        if charge:
            try:
                await self.balance_service.adjust_balance(
                    store_id,
                    -actual_fee,
                    action=feature_name,
                    request_id=request_id,
                    details={"feature": feature_name}
                )
            except BillingError as e:
                self._notify_debit_rejected(e)
                raise
            except Exception as e:
                logger.error(f"Debit of {actual_fee} tokens failed for store {store_id} (request_id={request_id}): {e}")
                error = DebitFailed(f"Token debit failed: {e}", store_id=store_id)
                self._notify_debit_rejected(error)
                raise error from e

        # 3. Execute
        try:
            payload = await operation()
        except asyncio.CancelledError as e:
            logger.warning(f"'{feature_name}' cancelled for store {store_id} (request_id={request_id})")
            if charge:
                # A second cancel must not interrupt the credit
                await asyncio.shield(self._refund(store_id, actual_fee, request_id, feature_name, e))
            raise
        except Exception as e:
            logger.error(f"Error executing '{feature_name}' for store {store_id}: {e}")
            self.notifier.notify(
                f"Failed to process {feature_name}",
                str(e) or ERROR_CODES["OPERATION_FAILED"],
                "destructive"
            )
            refunded = False
            if charge:
                refunded = await self._refund(store_id, actual_fee, request_id, feature_name, e)
            return GuardedOperationResult(
                success=False,
                fee_charged=0 if refunded else actual_fee,
                fee_refunded=refunded,
                error_code=getattr(e, "error_code", "OPERATION_FAILED"),
                error_message=str(e) or ERROR_CODES["OPERATION_FAILED"],
                request_id=request_id
            ), e

        # 4. Success
        if charge:
            await self.balance_service.refresh_balance(store_id)
        self.notifier.notify("Success!", f"{feature_name} processed successfully.")

        return GuardedOperationResult(
            success=True,
            payload=payload,
            fee_charged=actual_fee,
            request_id=request_id
        ), None

    def _notify_debit_rejected(self, error: BillingError):
        title = DEBIT_ERROR_TITLES.get(error.error_code, DEBIT_ERROR_TITLES["DEBIT_FAILED"])
        self.notifier.notify(title, error.message, "destructive")

    async def _refund(
        self,
        store_id: str,
        fee: float,
        request_id: str,
        feature_name: str,
        operation_error: BaseException
    ) -> bool:
        """Issue the compensating credit. Returns False (never raises) when the credit fails."""
        try:
            await self.balance_service.adjust_balance(
                store_id,
                fee,
                action="TOKEN_REVERSAL",
                request_id=str(uuid.uuid4()),
                details={"original_request_id": request_id, "reason": str(operation_error)}
            )
        except Exception as refund_error:
            reversal = ReversalFailed(str(refund_error) or None, store_id=store_id)
            logger.critical(
                f"Failed to refund {fee} tokens to store {store_id} after '{feature_name}' error "
                f"(request_id={request_id}): {reversal.to_dict()}"
            )
            await self._record_unresolved(store_id, fee, request_id, feature_name, operation_error, reversal)
            return False

        await self.balance_service.refresh_balance(store_id)
        self.notifier.notify(
            "Token fee refunded",
            f"The token fee of {fee} was refunded because an error occurred."
        )
        return True

    async def _record_unresolved(
        self,
        store_id: str,
        fee: float,
        request_id: str,
        feature_name: str,
        operation_error: BaseException,
        reversal: ReversalFailed
    ):
        try:
            record_id = await self.balance_service.record_unresolved_reversal(
                store_id=store_id,
                tokens=fee,
                original_request_id=request_id,
                feature_name=feature_name,
                operation_error=str(operation_error) or type(operation_error).__name__,
                reversal_error=reversal.message
            )
            logger.critical(f"Unresolved reversal {record_id} recorded for store {store_id}")
        except Exception as e:
            logger.critical(f"Could not record unresolved reversal for store {store_id} (request_id={request_id}): {e}")
