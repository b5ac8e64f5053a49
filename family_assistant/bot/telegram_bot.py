"""
Family Assistant — Telegram Bot.

Telegram is the chat transport for the family assistant. Text and voice
messages become chat turns; a reply that proposes an action gets an inline
Confirm / Cancel keyboard, and only a Confirm tap reaches the execution
engine.

Security-first: users who are not registered family members are silently
ignored, and the caller's identity is re-resolved on every update.
"""

from __future__ import annotations

import logging
import tempfile
import time
import uuid
from functools import wraps
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Coroutine

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.error import BadRequest
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from family_assistant.config import settings
from family_assistant.core.assistant import ChatError
from family_assistant.core.locales import LOCALES, t
from family_assistant.core.parser import strip_marker
from family_assistant.ports.store_port import StoreError

if TYPE_CHECKING:
    from limits.aio.storage import Storage

    from family_assistant.core.action_service import ActionService
    from family_assistant.core.assistant import AssistantService
    from family_assistant.core.rate_limit import RateLimiter
    from family_assistant.data.models import Identity
    from family_assistant.ports.conversation_port import ConversationPort
    from family_assistant.ports.identity_port import IdentityPort
    from family_assistant.ports.store_port import FamilyStorePort

logger = logging.getLogger(__name__)

# Telegram rejects longer message bodies
MAX_MESSAGE_CHARS = 4096
# Minimum gap between progressive edits of a streaming reply
EDIT_INTERVAL_SECONDS = 1.0
# Unanswered proposals kept per user; the oldest is dropped beyond this
MAX_PENDING_ACTIONS = 10
# Conversations listed by /history and messages shown when one is reopened
HISTORY_LIMIT = 10
HISTORY_PREVIEW_MESSAGES = 6


# ---------------------------------------------------------------------------
# Security: silent-ignore decorator
# ---------------------------------------------------------------------------


def authorized_only(
    func: Callable[..., Coroutine[Any, Any, None]],
) -> Callable[..., Coroutine[Any, Any, None]]:
    """Decorator that silently ignores updates from non-members.

    Resolves the Telegram user to an Identity and stores it in
    context.user_data["identity"] for the handler. Does NOT send any
    response to strangers.
    """

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        user = update.effective_user
        identity = None
        if user is not None:
            resolver: IdentityPort = context.bot_data["identity"]
            identity = await resolver.resolve_telegram_user(user.id)
        if identity is None:
            uid = user.id if user else "unknown"
            logger.warning("Unauthorized access attempt from user_id=%s", uid)
            return  # Silent ignore
        context.user_data["identity"] = identity
        return await func(update, context)

    return wrapper


def _language(context: ContextTypes.DEFAULT_TYPE) -> str:
    return context.user_data.get("language") or settings.DEFAULT_LANGUAGE


async def _ensure_conversation(identity: Identity, context: ContextTypes.DEFAULT_TYPE) -> str:
    conversation_id = context.user_data.get("conversation_id")
    if conversation_id:
        return conversation_id
    assistant: AssistantService = context.bot_data["assistant"]
    conversation = await assistant.start_conversation(identity)
    context.user_data["conversation_id"] = conversation.id
    return conversation.id


async def _safe_edit(message: Any, text: str, **kwargs: Any) -> None:
    """Edit a message, ignoring "message is not modified" style rejections."""
    try:
        await message.edit_text(text[:MAX_MESSAGE_CHARS] or "…", **kwargs)
    except BadRequest as exc:
        logger.debug("Edit skipped: %s", exc)


def _confirm_keyboard(language: str, token: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([[
        InlineKeyboardButton(t(language, "confirm"), callback_data=f"action:confirm:{token}"),
        InlineKeyboardButton(t(language, "cancel"), callback_data=f"action:cancel:{token}"),
    ]])


def _remember_proposal(context: ContextTypes.DEFAULT_TYPE, pending: dict[str, Any]) -> str:
    """Hold a proposal under a fresh token until its own keyboard is tapped."""
    proposals: dict[str, dict[str, Any]] = context.user_data.setdefault("pending_actions", {})
    token = uuid.uuid4().hex[:16]
    proposals[token] = pending
    while len(proposals) > MAX_PENDING_ACTIONS:
        proposals.pop(next(iter(proposals)))
    return token


# ---------------------------------------------------------------------------
# Chat turn: stream the reply, offer the proposal
# ---------------------------------------------------------------------------


async def _process_text(
    text: str, update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Shared logic: run one chat turn and render it into a single message."""
    identity: Identity = context.user_data["identity"]
    language = _language(context)

    limiter: RateLimiter = context.bot_data["rate_limiter"]
    if not await limiter.hit(identity.user_id):
        await update.message.reply_text(t(language, "rate_limited"))
        return

    assistant: AssistantService = context.bot_data["assistant"]
    try:
        conversation_id = await _ensure_conversation(identity, context)
    except StoreError as exc:
        logger.error("Could not start a conversation for %s: %s", identity.user_id, exc)
        await update.message.reply_text(t(language, "chat_failed"))
        return
    placeholder = await update.message.reply_text(t(language, "thinking"))

    try:
        events = await assistant.chat(identity, conversation_id, text, language)
    except ChatError as exc:
        await _safe_edit(placeholder, str(exc))
        return

    parts: list[str] = []
    terminal = None
    last_edit = time.monotonic()
    async for event in events:
        if event.is_terminal:
            terminal = event
            continue
        parts.append(event.content)
        now = time.monotonic()
        if now - last_edit >= EDIT_INTERVAL_SECONDS:
            await _safe_edit(placeholder, "".join(parts))
            last_edit = now

    if terminal is None or terminal.error:
        await _safe_edit(placeholder, terminal.error if terminal else t(language, "stream_failed"))
        return

    reply = strip_marker("".join(parts))
    proposal = terminal.proposed_action
    if proposal is None:
        await _safe_edit(placeholder, reply)
        return

    # The proposal lives only here until the user taps Confirm under this reply
    token = _remember_proposal(context, {
        "type": proposal.type,
        "data": proposal.data,
        "conversation_id": conversation_id,
    })
    logger.info("Proposed %s to user %s", proposal.type, identity.user_id)
    await _safe_edit(placeholder, reply, reply_markup=_confirm_keyboard(language, token))


@authorized_only
async def _handle_action_callback(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Handle Confirm / Cancel taps on a proposed action."""
    query = update.callback_query
    await query.answer()

    identity: Identity = context.user_data["identity"]
    language = _language(context)
    _, action, token = query.data.split(":", 2)
    # Popped first so a double tap cannot execute twice
    pending = context.user_data.get("pending_actions", {}).pop(token, None)
    if not pending:
        await query.edit_message_text(t(language, "no_pending"))
        return

    original = query.message.text if query.message and query.message.text else ""

    if action != "confirm":
        await query.edit_message_text(f"{original}\n\n{t(language, 'cancelled')}".strip())
        return

    service: ActionService = context.bot_data["actions"]
    result = await service.confirm_action(
        identity,
        pending["type"],
        pending["data"],
        conversation_id=pending.get("conversation_id"),
        language=language,
    )
    prefix = "✅" if result.success else "❌"
    await query.edit_message_text(f"{original}\n\n{prefix} {result.message}".strip())


@authorized_only
async def _handle_conversation_callback(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Handle a tap on a conversation listed by /history."""
    query = update.callback_query
    await query.answer()

    identity: Identity = context.user_data["identity"]
    language = _language(context)
    conversation_id = query.data.split(":", 1)[1]
    assistant: AssistantService = context.bot_data["assistant"]

    try:
        conversation, messages = await assistant.open_conversation(
            identity, conversation_id, language, limit=HISTORY_PREVIEW_MESSAGES,
        )
    except ChatError as exc:
        await query.edit_message_text(str(exc))
        return
    except StoreError as exc:
        logger.error("Could not open conversation %s: %s", conversation_id, exc)
        await query.edit_message_text(t(language, "chat_failed"))
        return

    context.user_data["conversation_id"] = conversation.id
    lines = [t(language, "conversation_opened", title=conversation.title or t(language, "untitled"))]
    for message in messages:
        icon = "👤" if message.role == "user" else "🤖"
        lines.append(f"{icon} {strip_marker(message.content)}")
    await query.edit_message_text("\n\n".join(lines)[:MAX_MESSAGE_CHARS])


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start — welcome message."""
    identity: Identity = context.user_data["identity"]
    store: FamilyStorePort = context.bot_data["store"]
    member = await store.get_member(identity.user_id)
    if member is not None and "language" not in context.user_data:
        context.user_data["language"] = member.language
    language = _language(context)
    name = member.name if member else update.effective_user.first_name
    await update.message.reply_text(t(language, "welcome", name=name))


@authorized_only
async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help — list available commands."""
    await update.message.reply_text(t(_language(context), "help"), parse_mode="Markdown")


@authorized_only
async def cmd_new(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /new — start a fresh conversation."""
    identity: Identity = context.user_data["identity"]
    assistant: AssistantService = context.bot_data["assistant"]
    conversation = await assistant.start_conversation(identity)
    context.user_data["conversation_id"] = conversation.id
    context.user_data.pop("pending_actions", None)
    await update.message.reply_text(t(_language(context), "new_conversation"))


@authorized_only
async def cmd_history(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /history — list recent conversations to resume."""
    identity: Identity = context.user_data["identity"]
    language = _language(context)
    assistant: AssistantService = context.bot_data["assistant"]

    conversations = await assistant.list_conversations(identity, HISTORY_LIMIT)
    if not conversations:
        await update.message.reply_text(t(language, "history_empty"))
        return

    current = context.user_data.get("conversation_id")
    buttons = []
    for conversation in conversations:
        label = conversation.title or t(language, "untitled")
        if conversation.id == current:
            label = f"• {label}"
        buttons.append([InlineKeyboardButton(label[:60], callback_data=f"conv:{conversation.id}")])
    await update.message.reply_text(
        t(language, "history_header"), reply_markup=InlineKeyboardMarkup(buttons),
    )


@authorized_only
async def cmd_delete(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /delete — delete the current conversation and its messages."""
    identity: Identity = context.user_data["identity"]
    language = _language(context)
    conversation_id = context.user_data.get("conversation_id")
    if not conversation_id:
        await update.message.reply_text(t(language, "no_conversation"))
        return

    assistant: AssistantService = context.bot_data["assistant"]
    try:
        deleted = await assistant.delete_conversation(identity, conversation_id)
    except StoreError as exc:
        logger.error("Could not delete conversation %s: %s", conversation_id, exc)
        await update.message.reply_text(t(language, "chat_failed"))
        return

    context.user_data.pop("conversation_id", None)
    # Proposals made in the deleted conversation can no longer be confirmed
    proposals = context.user_data.get("pending_actions", {})
    for token in [k for k, v in proposals.items() if v.get("conversation_id") == conversation_id]:
        proposals.pop(token)
    await update.message.reply_text(
        t(language, "conversation_deleted" if deleted else "no_conversation"),
    )


@authorized_only
async def cmd_lang(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /lang it|en — switch reply language."""
    args = context.args or []
    if len(args) != 1 or args[0].lower() not in LOCALES:
        await update.message.reply_text(t(_language(context), "language_usage"))
        return
    context.user_data["language"] = args[0].lower()
    await update.message.reply_text(t(_language(context), "language_set"))


# ---------------------------------------------------------------------------
# Message handlers
# ---------------------------------------------------------------------------


@authorized_only
async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle plain text messages — one chat turn."""
    await _process_text(update.message.text, update, context)


@authorized_only
async def handle_voice(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle voice messages — transcribe via Whisper, then run a chat turn."""
    from family_assistant.core.transcriber import transcribe_audio

    language = _language(context)
    voice = update.message.voice
    tmp_path: str | None = None

    try:
        # Download voice file to a temp directory
        voice_file = await context.bot.get_file(voice.file_id)
        with tempfile.NamedTemporaryFile(suffix=".ogg", delete=False) as tmp:
            tmp_path = tmp.name
        await voice_file.download_to_drive(tmp_path)

        text = await transcribe_audio(tmp_path, language)
        logger.info("Voice transcribed: %s", text[:80])
    except Exception as exc:
        logger.error("Voice handling error: %s", exc)
        await update.message.reply_text(t(language, "voice_failed"))
        return
    finally:
        if tmp_path:
            try:
                Path(tmp_path).unlink(missing_ok=True)
            except OSError:
                pass

    await update.message.reply_text(t(language, "voice_heard", text=text))
    await _process_text(text, update, context)


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def build_app(
    store: FamilyStorePort | None = None,
    conversations: ConversationPort | None = None,
    logs: Any = None,
    rate_limit_storage: Storage | None = None,
) -> Application:
    """Build and configure the Telegram Application with all handlers.

    Args:
        store: Family store; also used as the identity resolver.
            Defaults to SQLiteFamilyStore.
        conversations: Conversation history. Defaults to SQLiteConversationStore.
        logs: Audit and usage sink. Defaults to SQLiteLogSink.
        rate_limit_storage: `limits` async storage for chat rate limits.
            Defaults to the one named by RATE_LIMIT_STORAGE_URI.
    """
    from family_assistant.core.action_service import ActionService
    from family_assistant.core.assistant import AssistantService
    from family_assistant.core.rate_limit import RateLimiter, storage_from_uri

    app = ApplicationBuilder().token(settings.TELEGRAM_BOT_TOKEN).build()

    # Wire default adapters if not provided
    if store is None or conversations is None or logs is None:
        from family_assistant.adapters.sqlite_store import (
            SQLiteConversationStore,
            SQLiteFamilyStore,
            SQLiteLogSink,
        )
        store = store or SQLiteFamilyStore()
        conversations = conversations or SQLiteConversationStore()
        logs = logs or SQLiteLogSink()

    if rate_limit_storage is None:
        rate_limit_storage = storage_from_uri(settings.RATE_LIMIT_STORAGE_URI)

    # Store services in bot_data for handler access
    app.bot_data["store"] = store
    app.bot_data["identity"] = store
    app.bot_data["assistant"] = AssistantService(store, conversations, logs)
    app.bot_data["actions"] = ActionService(store, logs, logs, conversations)
    app.bot_data["rate_limiter"] = RateLimiter(
        rate_limit_storage, settings.CHAT_RATE_LIMIT, settings.CHAT_RATE_WINDOW_SECONDS,
    )

    # Commands
    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("new", cmd_new))
    app.add_handler(CommandHandler("history", cmd_history))
    app.add_handler(CommandHandler("delete", cmd_delete))
    app.add_handler(CommandHandler("lang", cmd_lang))
    app.add_handler(CallbackQueryHandler(_handle_action_callback, pattern=r"^action:(confirm|cancel):\w+$"))
    app.add_handler(CallbackQueryHandler(_handle_conversation_callback, pattern=r"^conv:[\w-]+$"))

    # Text messages (non-command)
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_text))

    # Voice messages
    app.add_handler(MessageHandler(filters.VOICE, handle_voice))

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def main() -> None:
    """Entry point: build the app and start polling."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting Family Assistant bot...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    main()
