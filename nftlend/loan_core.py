"""
loan_core.py - The Loan Ledger

LoanCore owns every loan record and the custody invariants around them. It is
the only component that mutates loan state. Orchestrators (origination,
repayment, migration controllers) validate consent and compute amounts, then
call exactly one LoanCore entry point per step.

=== OWNED STATE ===

    loans               loan id -> LoanRecord (ids start at 1, never reused)
    collateral_in_use   (address, id) of collateral backing an active loan
    nonces              NonceRegistry for signed terms
    withdrawable        token -> account -> fees earned and not yet withdrawn
    note_receipts       loan id -> NoteReceipt (funds held for the lender)

The loan core's own wallet in the asset ledger holds escrowed collateral,
earned fees and note receipts. At all times, per currency:

    ledger balance of the loan core wallet == sum(withdrawable) + sum(receipts)

=== EXECUTION MODEL ===

Each entry point:
    1. refuses to run while another entry point is running (ReentrancyError)
    2. checks its preconditions
    3. updates the tables above
    4. executes ONE asset-ledger transaction with all value, collateral and
       note mint/burn moves
    5. on any exception, restores the tables and the asset ledger to their
       state before step 1

The ledger transaction runs last, so a transfer hook that calls back in sees
the finished state and is rejected by the reentrancy guard.
"""

from __future__ import annotations
from contextlib import contextmanager
from decimal import Decimal
from typing import Dict, Iterator, List, Optional, Sequence, Set, Tuple
import functools

from .core import (
    Move, Unit, TransactionOrigin, OriginType, ExecuteResult,
    build_transaction, GRACE_PERIOD,
    InvalidLoanState, LoanNotFound, CollateralInUse, CannotSettle,
    ExceedsBalance, LoanNotExpired, NoReceipt, InsufficientWithdrawable,
    ZeroAmount, ProtocolShutdown, TransferFailed, ReentrancyError,
    NoteNotFound, RolloverMismatch,
)
from .ledger import Ledger
from .loans.fees import AffiliateRegistry, AffiliateSplit, FeeController
from .loans.nonces import NonceRegistry
from .loans.terms import (
    FeeSnapshot, LoanEvent, LoanRecord, LoanState, LoanTerms, NoteReceipt,
)
from .units.collateral import collateral_symbol
from .units.promissory_note import PromissoryNote, borrower_note, lender_note


def _append_move(moves: List[Move], amount: Decimal, token: str, source: str, dest: str, tag: str) -> None:
    """Append a move unless there is nothing to move."""
    if amount > 0:
        moves.append(Move(amount, token, source, dest, tag))


def entry_point(method):
    """Make a LoanCore method atomic and non-reentrant."""
    @functools.wraps(method)
    def wrapper(self: LoanCore, *args, **kwargs):
        if self._entered is not None:
            raise ReentrancyError(f"{method.__name__} called while {self._entered} is running")
        self._entered = method.__name__
        try:
            with self.checkpoint():
                return method(self, *args, **kwargs)
        finally:
            self._entered = None
    return wrapper


class LoanCore:
    """
    Loan lifecycle state machine on top of an asset Ledger.

    Example:
        ledger = Ledger("main", datetime(2025, 1, 1))
        core = LoanCore(ledger)
        loan_id = core.start_loan(
            lender="bob", borrower="alice", terms=terms,
            amount_from_lender=Decimal("1000"), amount_to_borrower=Decimal("990"),
            fee_snapshot=FeeSnapshot(),
        )
        core.get_loan(loan_id).state      # LoanState.ACTIVE
        core.fees_withdrawable("USDC", core.wallet)   # Decimal("10")
    """

    def __init__(
        self,
        ledger: Ledger,
        wallet: str = "loan_core",
        fee_controller: Optional[FeeController] = None,
        affiliates: Optional[AffiliateRegistry] = None,
        verbose: Optional[bool] = None,
    ):
        """
        Args:
            ledger: Asset ledger holding all balances
            wallet: Wallet of the loan core in the ledger (registered if missing)
            fee_controller: Current protocol fees (default: all zero)
            affiliates: Affiliate split table (default: empty)
            verbose: Print events (default: follow the ledger)
        """
        self.ledger = ledger
        self.wallet = ledger.ensure_wallet(wallet)
        self.fee_controller = fee_controller or FeeController()
        self.affiliates = affiliates or AffiliateRegistry()
        self.borrower_note: PromissoryNote = borrower_note()
        self.lender_note: PromissoryNote = lender_note()
        self.verbose = ledger.verbose if verbose is None else verbose

        self.loans: Dict[int, LoanRecord] = {}
        self.collateral_in_use: Set[Tuple[str, int]] = set()
        self.nonces = NonceRegistry()
        self.withdrawable: Dict[str, Dict[str, Decimal]] = {}
        self.note_receipts: Dict[int, NoteReceipt] = {}
        self.events: List[LoanEvent] = []

        self._next_loan_id = 1
        self._op_sequence = 0
        self._shutdown = False
        self._entered: Optional[str] = None

    # ========================================================================
    # ATOMICITY
    # ========================================================================

    @contextmanager
    def checkpoint(self) -> Iterator[LoanCore]:
        """
        Run a block against the loan core all-or-nothing.

        Covers the loan tables and the asset ledger. Controllers wrap
        multi-step operations (collect funds, then call an entry point) in
        this so that a failing later step undoes the earlier ones.
        """
        saved = (
            dict(self.loans),
            set(self.collateral_in_use),
            self.nonces.copy(),
            {token: dict(accounts) for token, accounts in self.withdrawable.items()},
            dict(self.note_receipts),
            list(self.events),
            self.affiliates.copy(),
            self._next_loan_id,
            self._op_sequence,
        )
        with self.ledger.checkpoint():
            try:
                yield self
            except Exception:
                (
                    self.loans,
                    self.collateral_in_use,
                    self.nonces,
                    self.withdrawable,
                    self.note_receipts,
                    self.events,
                    self.affiliates,
                    self._next_loan_id,
                    self._op_sequence,
                ) = saved
                raise

    def submit(
        self,
        moves: List[Move],
        source_id: str,
        event: str,
        unit_symbol: Optional[str] = None,
        units: Sequence[Unit] = (),
    ) -> None:
        """
        Execute one ledger transaction on behalf of the loan core or a controller.

        Every submission gets a fresh sequence number in its origin, so two
        operations with identical moves never collide on intent_id.

        Raises:
            TransferFailed: If the ledger does not apply it
        """
        self._op_sequence += 1
        origin = TransactionOrigin(
            OriginType.CONTRACT,
            source_id,
            unit_symbol=unit_symbol,
            event_type=f"{event}#{self._op_sequence}",
        )
        pending = build_transaction(self.ledger, moves, origin=origin, units_to_create=tuple(units))
        result = self.ledger.execute(pending)
        if result is not ExecuteResult.APPLIED:
            raise TransferFailed(f"{event} by {source_id}: transfer {result.value}")

    def _execute(self, moves: List[Move], event: str, loan_id: int, units: Sequence[Unit] = ()) -> None:
        self.submit(moves, self.wallet, event, self.lender_note.symbol(loan_id), units)

    def _emit(self, name: str, loan_id: int, **details) -> None:
        event = LoanEvent(name, loan_id, self.ledger.current_time, details)
        self.events.append(event)
        if self.verbose:
            print(f"📣 {event!r}")

    # ========================================================================
    # INTERNAL HELPERS
    # ========================================================================

    def _require_not_shutdown(self) -> None:
        if self._shutdown:
            raise ProtocolShutdown("protocol is shut down")

    @staticmethod
    def _require_non_negative(**amounts: Decimal) -> None:
        for name, amount in amounts.items():
            if amount < 0:
                raise CannotSettle(f"{name} cannot be negative, got {amount}")

    def _active_loan(self, loan_id: int) -> LoanRecord:
        loan = self.get_loan(loan_id)
        if loan.state is not LoanState.ACTIVE:
            raise InvalidLoanState(f"loan {loan_id} is {loan.state.value}")
        return loan

    def _holder(self, note: PromissoryNote, loan_id: int) -> str:
        holder = note.owner_of(self.ledger, loan_id)
        if holder is None:
            raise NoteNotFound(f"{note.symbol(loan_id)} has no holder")
        return holder

    def _places(self, token: str) -> Optional[int]:
        return self.ledger.get_unit(token).decimal_places

    def _credit(self, token: str, account: str, amount: Decimal) -> None:
        if amount <= 0:
            return
        accounts = self.withdrawable.setdefault(token, {})
        accounts[account] = accounts.get(account, Decimal("0")) + amount

    def _credit_fee(self, token: str, amount: Decimal, affiliate_code: Optional[str]) -> None:
        """Split a collected fee between the protocol and the loan's affiliate."""
        if amount <= 0:
            return
        split = self.affiliates.split(amount, affiliate_code, self._places(token))
        self._credit(token, self.wallet, split.protocol)
        if split.affiliate > 0:
            self._credit(token, split.affiliate_address, split.affiliate)

    def _close_notes(self, loan_id: int, moves: List[Move]) -> None:
        """Burn the borrower note, and the lender note unless funds are still held for it."""
        moves.append(self.borrower_note.burn(self.ledger, loan_id))
        receipt = self.note_receipts.get(loan_id)
        if receipt is None or receipt.amount <= 0:
            self.note_receipts.pop(loan_id, None)
            moves.append(self.lender_note.burn(self.ledger, loan_id))

    # ========================================================================
    # LOAN LIFECYCLE
    # ========================================================================

    @entry_point
    def start_loan(
        self,
        lender: str,
        borrower: str,
        terms: LoanTerms,
        amount_from_lender: Decimal,
        amount_to_borrower: Decimal,
        fee_snapshot: FeeSnapshot,
    ) -> int:
        """
        Open a loan: escrow the collateral, fund the borrower, mint both notes.

        The difference between what the lender supplies and what the borrower
        receives is the origination fee.

        Returns:
            The new loan id

        Raises:
            ProtocolShutdown: After shutdown()
            CollateralInUse: If the collateral backs another active loan
            CannotSettle: If an amount is negative or amount_to_borrower > amount_from_lender
            TransferFailed: If the lender lacks funds or the borrower the NFT
        """
        self._require_not_shutdown()
        self._require_non_negative(
            amount_from_lender=amount_from_lender, amount_to_borrower=amount_to_borrower,
        )
        if terms.collateral_key in self.collateral_in_use:
            raise CollateralInUse(
                f"{collateral_symbol(*terms.collateral_key)} already backs an active loan"
            )
        if amount_to_borrower > amount_from_lender:
            raise CannotSettle(
                f"borrower amount {amount_to_borrower} exceeds lender amount {amount_from_lender}"
            )

        token = terms.payable_currency
        self.collateral_in_use.add(terms.collateral_key)
        self._credit_fee(token, amount_from_lender - amount_to_borrower, terms.affiliate_code)

        loan_id = self._next_loan_id
        self._next_loan_id += 1
        now = self.ledger.current_time
        self.loans[loan_id] = LoanRecord(
            state=LoanState.ACTIVE,
            start_date=now,
            last_accrual_timestamp=now,
            terms=terms,
            fee_snapshot=fee_snapshot,
            balance=terms.principal,
        )
        self._emit("LoanStarted", loan_id, lender=lender, borrower=borrower, principal=terms.principal)

        bn_unit, bn_move = self.borrower_note.mint(borrower, loan_id)
        ln_unit, ln_move = self.lender_note.mint(lender, loan_id)
        tag = f"start_loan_{loan_id}"
        moves = [Move(Decimal("1"), collateral_symbol(*terms.collateral_key), borrower, self.wallet, tag)]
        _append_move(moves, amount_from_lender, token, lender, self.wallet, tag)
        _append_move(moves, amount_to_borrower, token, self.wallet, borrower, tag)
        moves.extend([bn_move, ln_move])
        self._execute(moves, "LoanStarted", loan_id, units=(bn_unit, ln_unit))
        return loan_id

    def _apply_repayment(
        self,
        loan_id: int,
        payer: str,
        amount_to_lender: Decimal,
        interest_amount: Decimal,
        payment_to_principal: Decimal,
        withhold: bool,
    ) -> None:
        loan = self._active_loan(loan_id)
        self._require_non_negative(
            amount_to_lender=amount_to_lender,
            interest_amount=interest_amount,
            payment_to_principal=payment_to_principal,
        )
        amount_from_payer = payment_to_principal + interest_amount
        if amount_to_lender > amount_from_payer:
            raise CannotSettle(
                f"lender amount {amount_to_lender} exceeds payment {amount_from_payer}"
            )
        if payment_to_principal > loan.balance:
            raise ExceedsBalance(
                f"principal payment {payment_to_principal} exceeds balance {loan.balance}"
            )

        token = loan.terms.payable_currency
        lender = self._holder(self.lender_note, loan_id)
        borrower = self._holder(self.borrower_note, loan_id)
        self._credit_fee(token, amount_from_payer - amount_to_lender, loan.terms.affiliate_code)

        updated = loan.apply_payment(payment_to_principal, interest_amount, self.ledger.current_time)
        self.loans[loan_id] = updated

        tag = f"repay_{loan_id}"
        moves: List[Move] = []
        _append_move(moves, amount_from_payer, token, payer, self.wallet, tag)
        if withhold:
            receipt = self.note_receipts.get(loan_id, NoteReceipt(token, Decimal("0")))
            self.note_receipts[loan_id] = NoteReceipt(token, receipt.amount + amount_to_lender)
        else:
            _append_move(moves, amount_to_lender, token, self.wallet, lender, tag)

        if updated.state is LoanState.REPAID:
            self.collateral_in_use.discard(loan.terms.collateral_key)
            moves.append(Move(
                Decimal("1"), collateral_symbol(*loan.terms.collateral_key), self.wallet, borrower, tag,
            ))
            self._close_notes(loan_id, moves)
            self._emit("LoanRepaid", loan_id, interest=interest_amount, principal=payment_to_principal)
        else:
            self._emit("LoanPayment", loan_id, interest=interest_amount, principal=payment_to_principal)
        self._execute(moves, "ForceRepay" if withhold else "Repay", loan_id)

    @entry_point
    def repay(
        self,
        loan_id: int,
        payer: str,
        amount_to_lender: Decimal,
        interest_amount: Decimal,
        payment_to_principal: Decimal,
    ) -> None:
        """
        Apply a payment and pay the lender note holder.

        payment_to_principal + interest_amount is collected from payer; the
        part not paid to the lender is the fee. When the balance reaches zero
        the loan is REPAID, the collateral goes to the borrower note holder
        and both notes are burned.

        Raises:
            InvalidLoanState: If the loan is not ACTIVE
            CannotSettle: If an amount is negative or amount_to_lender exceeds the payment
            ExceedsBalance: If payment_to_principal exceeds the balance
        """
        self._apply_repayment(loan_id, payer, amount_to_lender, interest_amount, payment_to_principal, False)

    @entry_point
    def force_repay(
        self,
        loan_id: int,
        payer: str,
        amount_to_lender: Decimal,
        interest_amount: Decimal,
        payment_to_principal: Decimal,
    ) -> None:
        """
        Same as repay, but the lender's share is held in a note receipt.

        Used when paying the lender directly could fail or be blocked. The
        lender note survives full repayment until the receipt is redeemed.
        """
        self._apply_repayment(loan_id, payer, amount_to_lender, interest_amount, payment_to_principal, True)

    @entry_point
    def claim(self, loan_id: int, amount_from_lender: Decimal) -> None:
        """
        Default a loan: the lender note holder takes the collateral.

        Allowed only strictly after due date + GRACE_PERIOD. amount_from_lender
        is the claim fee, paid by the lender note holder.

        Raises:
            ProtocolShutdown: After shutdown()
            InvalidLoanState: If the loan is not ACTIVE
            LoanNotExpired: If the grace period has not elapsed
            CannotSettle: If amount_from_lender is negative
        """
        self._require_not_shutdown()
        self._require_non_negative(amount_from_lender=amount_from_lender)
        loan = self._active_loan(loan_id)
        now = self.ledger.current_time
        if not now > loan.due_date + GRACE_PERIOD:
            raise LoanNotExpired(
                f"loan {loan_id} claimable after {loan.due_date + GRACE_PERIOD}, now {now}"
            )

        token = loan.terms.payable_currency
        lender = self._holder(self.lender_note, loan_id)
        self._credit_fee(token, amount_from_lender, loan.terms.affiliate_code)
        self.loans[loan_id] = loan.default()
        self.collateral_in_use.discard(loan.terms.collateral_key)

        tag = f"claim_{loan_id}"
        moves: List[Move] = []
        _append_move(moves, amount_from_lender, token, lender, self.wallet, tag)
        moves.append(Move(Decimal("1"), collateral_symbol(*loan.terms.collateral_key), self.wallet, lender, tag))
        self._close_notes(loan_id, moves)
        self._emit("LoanClaimed", loan_id, lender=lender)
        self._execute(moves, "LoanClaimed", loan_id)

    @entry_point
    def redeem_note(self, loan_id: int, amount_from_lender: Decimal, to: str) -> None:
        """
        Pay out a note receipt, less the redemption fee amount_from_lender.

        On a closed loan the receipt is deleted and the lender note burned.
        On an active loan the receipt is zeroed and can accrue again.

        Raises:
            NoReceipt: If there is nothing to redeem
            CannotSettle: If the fee is negative or exceeds the receipt
        """
        self._require_non_negative(amount_from_lender=amount_from_lender)
        receipt = self.note_receipts.get(loan_id)
        if receipt is None or receipt.amount <= 0:
            raise NoReceipt(f"no funds held for loan {loan_id}")
        if amount_from_lender > receipt.amount:
            raise CannotSettle(f"redeem fee {amount_from_lender} exceeds receipt {receipt.amount}")
        loan = self.get_loan(loan_id)

        self._credit_fee(receipt.token, amount_from_lender, loan.terms.affiliate_code)
        amount_to_lender = receipt.amount - amount_from_lender

        tag = f"redeem_{loan_id}"
        moves: List[Move] = []
        _append_move(moves, amount_to_lender, receipt.token, self.wallet, to, tag)
        if loan.state.is_terminal:
            del self.note_receipts[loan_id]
            moves.append(self.lender_note.burn(self.ledger, loan_id))
        else:
            self.note_receipts[loan_id] = NoteReceipt(receipt.token, Decimal("0"))
        self._emit("NoteRedeemed", loan_id, to=to, amount=amount_to_lender)
        self._execute(moves, "NoteRedeemed", loan_id)

    @entry_point
    def rollover(
        self,
        old_loan_id: int,
        old_lender: str,
        borrower: str,
        lender: str,
        new_terms: LoanTerms,
        settled_amount: Decimal,
        amount_to_old_lender: Decimal,
        amount_to_lender: Decimal,
        amount_to_borrower: Decimal,
        interest_amount: Decimal,
        caller: str,
    ) -> int:
        """
        Close a loan and open its replacement on the same collateral.

        `caller` has already gathered settled_amount; it is collected, then
        paid out in order to the old lender, the new lender and the borrower.
        What remains is the fee, split by the NEW terms' affiliate code. The
        new loan keeps the old loan's fee snapshot. Collateral stays escrowed.

        Returns:
            The new loan id

        Raises:
            ProtocolShutdown: After shutdown()
            InvalidLoanState: If the old loan is not ACTIVE
            RolloverMismatch: If the new terms change collateral or currency
            CannotSettle: If an amount is negative or payouts exceed settled_amount
        """
        self._require_not_shutdown()
        old = self._active_loan(old_loan_id)
        self._require_non_negative(
            settled_amount=settled_amount,
            amount_to_old_lender=amount_to_old_lender,
            amount_to_lender=amount_to_lender,
            amount_to_borrower=amount_to_borrower,
            interest_amount=interest_amount,
        )
        if new_terms.collateral_key != old.terms.collateral_key:
            raise RolloverMismatch("rollover must keep the same collateral")
        if new_terms.payable_currency != old.terms.payable_currency:
            raise RolloverMismatch("rollover must keep the same currency")
        payout = amount_to_old_lender + amount_to_lender + amount_to_borrower
        if payout > settled_amount:
            raise CannotSettle(f"payouts {payout} exceed settled amount {settled_amount}")

        token = new_terms.payable_currency
        now = self.ledger.current_time
        self._credit_fee(token, settled_amount - payout, new_terms.affiliate_code)

        self.loans[old_loan_id] = old.close(interest_amount, now)
        new_loan_id = self._next_loan_id
        self._next_loan_id += 1
        self.loans[new_loan_id] = LoanRecord(
            state=LoanState.ACTIVE,
            start_date=now,
            last_accrual_timestamp=now,
            terms=new_terms,
            fee_snapshot=old.fee_snapshot,
            balance=new_terms.principal,
        )

        tag = f"rollover_{old_loan_id}_{new_loan_id}"
        moves: List[Move] = []
        _append_move(moves, settled_amount, token, caller, self.wallet, tag)
        _append_move(moves, amount_to_old_lender, token, self.wallet, old_lender, tag)
        _append_move(moves, amount_to_lender, token, self.wallet, lender, tag)
        _append_move(moves, amount_to_borrower, token, self.wallet, borrower, tag)
        self._close_notes(old_loan_id, moves)
        bn_unit, bn_move = self.borrower_note.mint(borrower, new_loan_id)
        ln_unit, ln_move = self.lender_note.mint(lender, new_loan_id)
        moves.extend([bn_move, ln_move])

        self._emit("LoanRolledOver", old_loan_id, new_loan_id=new_loan_id, lender=lender)
        self._emit("LoanStarted", new_loan_id, lender=lender, borrower=borrower, principal=new_terms.principal)
        self._execute(moves, "LoanRolledOver", new_loan_id, units=(bn_unit, ln_unit))
        return new_loan_id

    # ========================================================================
    # NONCES
    # ========================================================================

    @entry_point
    def consume_nonce(self, account: str, nonce: int, max_uses: int) -> None:
        """
        Raises:
            ProtocolShutdown: After shutdown()
            NonceUsed: If the nonce cannot be used again
        """
        self._require_not_shutdown()
        self.nonces.consume(account, nonce, max_uses)

    @entry_point
    def cancel_nonce(self, account: str, nonce: int) -> None:
        self.nonces.cancel(account, nonce)
        self._emit("NonceCancelled", 0, account=account, nonce=nonce)

    def is_nonce_used(self, account: str, nonce: int) -> bool:
        return self.nonces.is_used(account, nonce)

    def number_of_nonce_uses(self, account: str, nonce: int) -> int:
        return self.nonces.uses(account, nonce)

    # ========================================================================
    # FEES
    # ========================================================================

    @entry_point
    def withdraw(self, token: str, amount: Decimal, to: str, caller: str) -> None:
        """
        Withdraw fees earned by `caller` (an affiliate) to `to`.

        Raises:
            ZeroAmount: If amount is not positive
            InsufficientWithdrawable: If amount exceeds what caller has earned
        """
        if amount <= 0:
            raise ZeroAmount("withdraw amount must be positive")
        available = self.fees_withdrawable(token, caller)
        if amount > available:
            raise InsufficientWithdrawable(f"{caller} can withdraw {available} {token}, asked {amount}")
        self.withdrawable[token][caller] = available - amount
        self._emit("FeesWithdrawn", 0, token=token, account=caller, to=to, amount=amount)
        self._execute([Move(amount, token, self.wallet, to, f"withdraw_{caller}")], "FeesWithdrawn", 0)

    @entry_point
    def withdraw_protocol_fees(self, token: str, to: str) -> Decimal:
        """
        Withdraw everything the protocol has earned in `token`.

        Returns:
            The amount withdrawn

        Raises:
            ZeroAmount: If the protocol has earned nothing
        """
        amount = self.fees_withdrawable(token, self.wallet)
        if amount <= 0:
            raise ZeroAmount(f"no protocol fees in {token}")
        self.withdrawable[token][self.wallet] = Decimal("0")
        self._emit("FeesWithdrawn", 0, token=token, account=self.wallet, to=to, amount=amount)
        self._execute([Move(amount, token, self.wallet, to, "withdraw_protocol_fees")], "FeesWithdrawn", 0)
        return amount

    def fees_withdrawable(self, token: str, account: str) -> Decimal:
        return self.withdrawable.get(token, {}).get(account, Decimal("0"))

    @entry_point
    def set_affiliate_splits(self, codes: Sequence[str], splits: Sequence[AffiliateSplit]) -> None:
        """Register affiliate splits; see AffiliateRegistry.set_splits."""
        self.affiliates.set_splits(codes, splits)
        for code, split in zip(codes, splits):
            self._emit("AffiliateSet", 0, code=code, affiliate=split.affiliate, split_bps=split.split_bps)

    # ========================================================================
    # SHUTDOWN
    # ========================================================================

    def shutdown(self) -> None:
        """
        Permanently stop new loans, rollovers, claims and nonce use.

        Repayment, redemption, withdrawals and nonce cancellation still work.
        There is no way back.
        """
        if not self._shutdown:
            self._shutdown = True
            self._emit("Shutdown", 0)

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    # ========================================================================
    # ACCESSORS
    # ========================================================================

    def get_loan(self, loan_id: int) -> LoanRecord:
        """
        Raises:
            LoanNotFound: If the id was never allocated
        """
        if loan_id not in self.loans:
            raise LoanNotFound(f"loan {loan_id} does not exist")
        return self.loans[loan_id]

    def note_receipt(self, loan_id: int) -> Optional[NoteReceipt]:
        return self.note_receipts.get(loan_id)

    def is_collateral_escrowed(self, collateral_address: str, collateral_id: int) -> bool:
        return (collateral_address, collateral_id) in self.collateral_in_use

    def obligations(self, token: str) -> Decimal:
        """Funds in `token` the loan core owes: withdrawable fees plus note receipts."""
        fees = sum(self.withdrawable.get(token, {}).values(), Decimal("0"))
        held = sum(
            (r.amount for r in self.note_receipts.values() if r.token == token),
            Decimal("0"),
        )
        return fees + held

    @property
    def next_loan_id(self) -> int:
        return self._next_loan_id
