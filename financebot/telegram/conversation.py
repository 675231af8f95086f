"""Menu-driven capture flow for connected chats.

Each message is classified into an ``InputKind``; ``TRANSITIONS`` maps the
current ``MenuStep`` and that kind to the action to run and the step that
follows it. Inputs the table does not name fall through to the per-step
entry in ``FALLBACKS``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from html import escape
from typing import Optional
from uuid import UUID

from pydantic import ValidationError

from ..errors import InputValidationError
from ..models.loan import LoanKind
from ..schemas.ledger import DESCRIPTION_MAX_LENGTH, LedgerEntry, LedgerKind
from ..schemas.session_state import ChatSessionRead, EntryAction, MenuState, MenuStep
from ..services.bank_accounts import match_by_name
from ..services.reports import RULE, render_statement, render_status
from . import keyboards
from .helpers import InboundMessage, Keyboard, Reply, format_amount, is_skip_token, parse_amount
from .media import MediaIntake
from .store import FinanceStore

logger = logging.getLogger(__name__)


class InputKind(str, Enum):
    START = "start"
    INCOME = "income"
    EXPENSE = "expense"
    LOAN_MENU = "loan_menu"
    LOAN_TAKE = "loan_take"
    LOAN_GIVE = "loan_give"
    STATUS = "status"
    REPORT = "report"
    DISCONNECT = "disconnect"
    BACK = "back"
    CASH = "cash"
    BANK = "bank"
    SKIP = "skip"
    YES = "yes"
    NO = "no"
    PHOTO = "photo"
    TEXT = "text"


class Action(str, Enum):
    SHOW_MENU = "show_menu"
    START_ENTRY = "start_entry"
    SHOW_LOAN_KINDS = "show_loan_kinds"
    SHOW_STATUS = "show_status"
    SHOW_STATEMENT = "show_statement"
    ASK_DISCONNECT = "ask_disconnect"
    ENTER_AMOUNT = "enter_amount"
    PAY_CASH = "pay_cash"
    PAY_BANK = "pay_bank"
    REPROMPT_PAYMENT = "reprompt_payment"
    ENTER_DESCRIPTION = "enter_description"
    SKIP_DESCRIPTION = "skip_description"
    ATTACH_IMAGE = "attach_image"
    FINALIZE = "finalize"
    REPROMPT_IMAGE = "reprompt_image"
    BACK_TO_MENU = "back_to_menu"
    DISCONNECT = "disconnect"
    CANCEL_DISCONNECT = "cancel_disconnect"
    REPROMPT_DISCONNECT = "reprompt_disconnect"


@dataclass(frozen=True)
class Transition:
    action: Action
    next_step: MenuStep


_EXACT_LABELS: dict[str, InputKind] = {
    keyboards.INCOME: InputKind.INCOME,
    keyboards.EXPENSE: InputKind.EXPENSE,
    keyboards.LOAN: InputKind.LOAN_MENU,
    keyboards.TAKE_LOAN: InputKind.LOAN_TAKE,
    keyboards.GIVE_LOAN: InputKind.LOAN_GIVE,
    keyboards.BANK_BALANCE: InputKind.STATUS,
    keyboards.STATUS: InputKind.STATUS,
    keyboards.REPORT: InputKind.REPORT,
    keyboards.DISCONNECT: InputKind.DISCONNECT,
    keyboards.BACK: InputKind.BACK,
    keyboards.CASH: InputKind.CASH,
    keyboards.SKIP_IMAGE: InputKind.SKIP,
    keyboards.CONFIRM_DISCONNECT: InputKind.YES,
    keyboards.CANCEL: InputKind.NO,
}

_BACK = Transition(Action.BACK_TO_MENU, MenuStep.IDLE)

TRANSITIONS: dict[tuple[MenuStep, InputKind], Transition] = {
    (MenuStep.IDLE, InputKind.INCOME): Transition(Action.START_ENTRY, MenuStep.AMOUNT),
    (MenuStep.IDLE, InputKind.EXPENSE): Transition(Action.START_ENTRY, MenuStep.AMOUNT),
    (MenuStep.IDLE, InputKind.LOAN_TAKE): Transition(Action.START_ENTRY, MenuStep.AMOUNT),
    (MenuStep.IDLE, InputKind.LOAN_GIVE): Transition(Action.START_ENTRY, MenuStep.AMOUNT),
    (MenuStep.IDLE, InputKind.LOAN_MENU): Transition(Action.SHOW_LOAN_KINDS, MenuStep.IDLE),
    (MenuStep.IDLE, InputKind.STATUS): Transition(Action.SHOW_STATUS, MenuStep.IDLE),
    (MenuStep.IDLE, InputKind.REPORT): Transition(Action.SHOW_STATEMENT, MenuStep.IDLE),
    (MenuStep.IDLE, InputKind.DISCONNECT): Transition(Action.ASK_DISCONNECT, MenuStep.CONFIRM_DISCONNECT),
    (MenuStep.IDLE, InputKind.BACK): _BACK,
    (MenuStep.AMOUNT, InputKind.BACK): _BACK,
    (MenuStep.PAYMENT, InputKind.CASH): Transition(Action.PAY_CASH, MenuStep.DESCRIPTION),
    (MenuStep.PAYMENT, InputKind.BANK): Transition(Action.PAY_BANK, MenuStep.DESCRIPTION),
    (MenuStep.PAYMENT, InputKind.BACK): _BACK,
    (MenuStep.DESCRIPTION, InputKind.SKIP): Transition(Action.SKIP_DESCRIPTION, MenuStep.IMAGE),
    (MenuStep.DESCRIPTION, InputKind.BACK): _BACK,
    (MenuStep.IMAGE, InputKind.PHOTO): Transition(Action.ATTACH_IMAGE, MenuStep.IDLE),
    (MenuStep.IMAGE, InputKind.SKIP): Transition(Action.FINALIZE, MenuStep.IDLE),
    (MenuStep.IMAGE, InputKind.BACK): _BACK,
    (MenuStep.CONFIRM_DISCONNECT, InputKind.YES): Transition(Action.DISCONNECT, MenuStep.IDLE),
    (MenuStep.CONFIRM_DISCONNECT, InputKind.NO): Transition(Action.CANCEL_DISCONNECT, MenuStep.IDLE),
}

FALLBACKS: dict[MenuStep, Transition] = {
    MenuStep.IDLE: Transition(Action.SHOW_MENU, MenuStep.IDLE),
    MenuStep.AMOUNT: Transition(Action.ENTER_AMOUNT, MenuStep.PAYMENT),
    MenuStep.PAYMENT: Transition(Action.REPROMPT_PAYMENT, MenuStep.PAYMENT),
    MenuStep.DESCRIPTION: Transition(Action.ENTER_DESCRIPTION, MenuStep.IMAGE),
    MenuStep.IMAGE: Transition(Action.REPROMPT_IMAGE, MenuStep.IMAGE),
    MenuStep.CONFIRM_DISCONNECT: Transition(Action.REPROMPT_DISCONNECT, MenuStep.CONFIRM_DISCONNECT),
}

_ENTRY_LABELS: dict[LedgerKind, tuple[str, str]] = {
    LedgerKind.INCOME: ("📥", "Income"),
    LedgerKind.EXPENSE: ("📤", "Expense"),
    LedgerKind.LOAN_TAKE: ("💰", "Loan (Borrowed)"),
    LedgerKind.LOAN_GIVE: ("🤝", "Loan (Lent)"),
}

_ENTRY_PROMPTS: dict[InputKind, tuple[EntryAction, Optional[LoanKind], str]] = {
    InputKind.INCOME: (EntryAction.INCOME, None, "📥 <b>Record Income</b>\n\nEnter the <b>amount</b> (numbers only):"),
    InputKind.EXPENSE: (EntryAction.EXPENSE, None, "📤 <b>Record Expense</b>\n\nEnter the <b>amount</b> (numbers only):"),
    InputKind.LOAN_TAKE: (EntryAction.LOAN, LoanKind.TAKE, "💰 Enter the amount you <b>borrowed</b> (numbers only):"),
    InputKind.LOAN_GIVE: (EntryAction.LOAN, LoanKind.GIVE, "🤝 Enter the amount you <b>lent</b> (numbers only):"),
}

FAILED_TO_SAVE = "❌ Failed to save. Please try again."
MENU_HINT = "Use the menu buttons below:"


def classify(message: InboundMessage) -> InputKind:
    if message.photo_file_id:
        return InputKind.PHOTO
    text = message.text
    if message.is_start_command:
        return InputKind.START
    if text in _EXACT_LABELS:
        return _EXACT_LABELS[text]
    if text.startswith(keyboards.BANK_PREFIX):
        return InputKind.BANK
    if is_skip_token(text):
        return InputKind.SKIP
    return InputKind.TEXT


def resolve(step: MenuStep, kind: InputKind) -> Transition:
    return TRANSITIONS.get((step, kind), FALLBACKS[step])


@dataclass
class Turn:
    chat_id: int
    account_id: UUID
    state: MenuState
    message: InboundMessage
    kind: InputKind
    next_step: MenuStep


class ConversationEngine:
    def __init__(self, store: FinanceStore, media: Optional[MediaIntake] = None) -> None:
        self.store = store
        self.media = media
        self._handlers = {
            Action.SHOW_MENU: self._show_menu,
            Action.START_ENTRY: self._start_entry,
            Action.SHOW_LOAN_KINDS: self._show_loan_kinds,
            Action.SHOW_STATUS: self._show_status,
            Action.SHOW_STATEMENT: self._show_statement,
            Action.ASK_DISCONNECT: self._ask_disconnect,
            Action.ENTER_AMOUNT: self._enter_amount,
            Action.PAY_CASH: self._pay_cash,
            Action.PAY_BANK: self._pay_bank,
            Action.REPROMPT_PAYMENT: self._reprompt_payment,
            Action.ENTER_DESCRIPTION: self._enter_description,
            Action.SKIP_DESCRIPTION: self._enter_description,
            Action.ATTACH_IMAGE: self._attach_image,
            Action.FINALIZE: self._skip_image,
            Action.REPROMPT_IMAGE: self._reprompt_image,
            Action.BACK_TO_MENU: self._back_to_menu,
            Action.DISCONNECT: self._disconnect,
            Action.CANCEL_DISCONNECT: self._cancel_disconnect,
            Action.REPROMPT_DISCONNECT: self._ask_disconnect,
        }

    async def handle(self, session: ChatSessionRead, message: InboundMessage) -> Reply:
        """Run one turn for a verified chat and return the reply to send."""
        state = session.state
        if not isinstance(state, MenuState):
            state = MenuState.idle()
        kind = classify(message)
        transition = resolve(state.step, kind)
        turn = Turn(
            chat_id=message.chat_id,
            account_id=session.account_id,
            state=state,
            message=message,
            kind=kind,
            next_step=transition.next_step,
        )
        try:
            return await self._handlers[transition.action](turn)
        except InputValidationError as exc:
            return Reply(str(exc), await self._keyboard_for(turn))

    async def _keyboard_for(self, turn: Turn) -> Keyboard:
        step = turn.state.step
        if step == MenuStep.PAYMENT:
            return keyboards.payment_methods(await self.store.list_bank_accounts(turn.account_id))
        if step == MenuStep.AMOUNT:
            return keyboards.back_only()
        if step == MenuStep.DESCRIPTION:
            return keyboards.description_options()
        if step == MenuStep.IMAGE:
            return keyboards.skip_image()
        if step == MenuStep.CONFIRM_DISCONNECT:
            return keyboards.confirm_disconnect()
        return keyboards.main_menu()

    async def _save(self, turn: Turn, state: MenuState) -> None:
        await self.store.set_state(turn.chat_id, state)

    async def _show_menu(self, turn: Turn) -> Reply:
        return Reply(MENU_HINT, keyboards.main_menu())

    async def _back_to_menu(self, turn: Turn) -> Reply:
        await self._save(turn, MenuState.idle())
        return Reply("Main menu:", keyboards.main_menu())

    async def _show_loan_kinds(self, turn: Turn) -> Reply:
        return Reply("💳 <b>Record Loan</b>\n\nSelect loan type:", keyboards.loan_kinds())

    async def _start_entry(self, turn: Turn) -> Reply:
        action, loan_kind, prompt = _ENTRY_PROMPTS[turn.kind]
        state = MenuState.idle().advance(turn.next_step, action=action, loan_kind=loan_kind)
        await self._save(turn, state)
        return Reply(prompt, keyboards.back_only())

    async def _show_status(self, turn: Turn) -> Reply:
        report = await self.store.load_status(turn.account_id)
        return Reply(render_status(report), keyboards.main_menu())

    async def _show_statement(self, turn: Turn) -> Reply:
        report = await self.store.load_statement(turn.account_id)
        return Reply(render_statement(report), keyboards.main_menu())

    async def _ask_disconnect(self, turn: Turn) -> Reply:
        await self._save(turn, turn.state.advance(MenuStep.CONFIRM_DISCONNECT))
        return Reply(
            "⚠️ <b>Disconnect Account?</b>\n\n"
            "Are you sure you want to disconnect your Telegram from Finance Manager?\n\n"
            "You will need to authenticate again to use the bot.",
            keyboards.confirm_disconnect(),
        )

    async def _disconnect(self, turn: Turn) -> Reply:
        await self.store.delete_session(turn.chat_id)
        logger.info("Chat %s disconnected from account %s.", turn.chat_id, turn.account_id)
        return Reply(
            "✅ <b>Account Disconnected Successfully!</b>\n\n"
            "Your Telegram has been unlinked from Finance Manager.\n\n"
            "You can connect again anytime by sending /start\n\n"
            "Goodbye! 👋",
            keyboards.remove(),
        )

    async def _cancel_disconnect(self, turn: Turn) -> Reply:
        await self._save(turn, MenuState.idle())
        return Reply("Disconnect cancelled. You're still connected! ✅", keyboards.main_menu())

    async def _enter_amount(self, turn: Turn) -> Reply:
        amount = parse_amount(turn.message.text)
        bank_accounts = await self.store.list_bank_accounts(turn.account_id)
        await self._save(turn, turn.state.advance(turn.next_step, amount=amount))
        return Reply(
            f"Amount: <b>{format_amount(amount)}</b>\n\n💳 <b>Select payment method:</b>",
            keyboards.payment_methods(bank_accounts),
        )

    async def _reprompt_payment(self, turn: Turn) -> Reply:
        bank_accounts = await self.store.list_bank_accounts(turn.account_id)
        return Reply("💳 <b>Select payment method:</b>", keyboards.payment_methods(bank_accounts))

    def _description_prompt(self, state: MenuState, payment: str) -> Reply:
        amount = format_amount(state.amount) if state.amount is not None else "?"
        return Reply(
            f"Payment: <b>{escape(payment)}</b>\nAmount: <b>{amount}</b>\n\n"
            "Enter a <b>description/remarks</b> (or type <code>skip</code>):",
            keyboards.description_options(),
        )

    async def _pay_cash(self, turn: Turn) -> Reply:
        state = turn.state.advance(turn.next_step, bank_account_id=None, bank_name=None)
        await self._save(turn, state)
        return self._description_prompt(state, keyboards.CASH)

    async def _pay_bank(self, turn: Turn) -> Reply:
        name = turn.message.text[len(keyboards.BANK_PREFIX):]
        bank = match_by_name(await self.store.list_bank_accounts(turn.account_id), name)
        if bank is None:
            raise InputValidationError("❌ Bank not found. Please try again.")
        state = turn.state.advance(turn.next_step, bank_account_id=bank.id, bank_name=bank.name)
        await self._save(turn, state)
        return self._description_prompt(state, keyboards.bank_label(bank.name))

    async def _enter_description(self, turn: Turn) -> Reply:
        text = turn.message.text
        if turn.kind == InputKind.SKIP or is_skip_token(text):
            description = None
        elif text:
            description = text
        else:
            raise InputValidationError("📝 Please type a description or tap Skip.")
        if description and len(description.strip()) > DESCRIPTION_MAX_LENGTH:
            raise InputValidationError(
                f"📝 Description is too long. Please use at most {DESCRIPTION_MAX_LENGTH} characters."
            )
        await self._save(turn, turn.state.advance(turn.next_step, description=description))
        return Reply(
            f"📝 Description: <b>{escape(description or 'N/A')}</b>\n\n"
            "📷 <b>Upload proof/screenshot</b> (optional)\n\n"
            f"Send an image or tap \"{keyboards.SKIP_IMAGE}\" to finish:",
            keyboards.skip_image(),
        )

    async def _reprompt_image(self, turn: Turn) -> Reply:
        return Reply(
            f"📷 Send an image or tap \"{keyboards.SKIP_IMAGE}\" to finish:",
            keyboards.skip_image(),
        )

    async def _attach_image(self, turn: Turn) -> Reply:
        image_url: Optional[str] = None
        if self.media is not None and turn.message.photo_file_id:
            image_url = await self.media.capture(turn.account_id, turn.message.photo_file_id)
        return await self.finalize(turn, image_url)

    async def _skip_image(self, turn: Turn) -> Reply:
        return await self.finalize(turn, None)

    async def finalize(self, turn: Turn, image_url: Optional[str]) -> Reply:
        """Write the entry described by the state, then return to the idle menu."""
        state = turn.state
        try:
            kind = state.ledger_kind()
            entry = LedgerEntry(
                account_id=turn.account_id,
                kind=kind,
                amount=state.amount,
                description=state.description,
                bank_account_id=state.bank_account_id,
                image_url=image_url,
            )
        except (ValidationError, ValueError) as exc:
            logger.warning("Chat %s reached finalize with an unusable entry; resetting: %s", turn.chat_id, exc)
            await self._save(turn, MenuState.idle())
            return Reply(FAILED_TO_SAVE, keyboards.main_menu())

        result = await self.store.commit_entry(entry)
        await self._save(turn, MenuState.idle())

        if not result.success:
            return Reply(FAILED_TO_SAVE, keyboards.main_menu())

        emoji, label = _ENTRY_LABELS[kind]
        payment = keyboards.bank_label(state.bank_name or "") if state.bank_account_id else keyboards.CASH
        proof = "\n📷 Proof: Uploaded ✓" if image_url else ""
        return Reply(
            f"✅ <b>{label} Recorded!</b>\n\n"
            f"{RULE}\n"
            f"{emoji} <b>Amount:</b> {format_amount(entry.amount)}\n"
            f"💳 <b>Payment:</b> {escape(payment)}\n"
            f"📝 <b>Description:</b> {escape(entry.description or 'N/A')}{proof}\n"
            f"{RULE}\n\n"
            "✨ Transaction synced to Dashboard!\n"
            "Use 📊 Report to see all transactions.",
            keyboards.main_menu(),
        )
