"""
telegram_bot.py — MerchAI Studio Telegram Bot

Logo upload → product picking → parallel mockup generation → AI editing.

Conversation flow:
  /start
    → LOGO     (photo or image document; anything else is ignored)
    → PICK     (inline keyboard toggles products, text = extra instruction,
                "Generate" runs one batch)
    → GALLERY  (each mockup arrives with an "Edit with AI" button;
                a new logo or /products goes back to picking)
    → EDITING  (text = edit instruction; Save copy / Download / Close)

Commands:
  /start    — start a new studio (clears logo, selection and gallery)
  /products — back to the product picker
  /gallery  — re-send the newest mockups
  /cancel   — end the conversation
"""

from __future__ import annotations

import logging
from typing import List, Optional

from telegram import (
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    Update,
)
from telegram.constants import ChatAction, ParseMode
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    ConversationHandler,
    MessageHandler,
    filters,
)

from merchai.client import MockupClient
from merchai.codec import decode_payload, is_image_mime
from merchai.config import Settings
from merchai.errors import EditorBusy, MerchAIError, SessionStateError, UnsupportedMediaKind
from merchai.models import BatchFailure, GeneratedImage
from merchai.products import PRODUCT_CATALOG, ProductType
from merchai.session import EditState, Studio

logger = logging.getLogger(__name__)

# ── Conversation states ───────────────────────────────────────────────────────

(
    LOGO,
    PICK,
    GALLERY,
    EDITING,
) = range(4)

# ── Context keys ──────────────────────────────────────────────────────────────

SETTINGS_KEY = "settings"
STUDIO_KEY = "studio"
INSTRUCTION_KEY = "custom_instruction"

GALLERY_RESEND_LIMIT = 10

# ── Keyboards ─────────────────────────────────────────────────────────────────

EDITOR_KEYBOARD = InlineKeyboardMarkup([
    [
        InlineKeyboardButton("💾 Save Copy", callback_data="editor_save"),
        InlineKeyboardButton("⬇️ Download", callback_data="editor_download"),
    ],
    [InlineKeyboardButton("✖️ Close", callback_data="editor_close")],
])


def product_keyboard(studio: Studio) -> InlineKeyboardMarkup:
    """Two products per row, ✅ on selected ones, Generate button last."""
    buttons = [
        InlineKeyboardButton(
            f"{'✅ ' if product in studio.selection else ''}{info.icon} {info.label}",
            callback_data=f"product_{product.value}",
        )
        for product, info in PRODUCT_CATALOG.items()
    ]
    rows = [buttons[i:i + 2] for i in range(0, len(buttons), 2)]
    count = len(studio.selection)
    rows.append([
        InlineKeyboardButton(
            f"✨ Generate{f' ({count})' if count else ''} Mockups",
            callback_data="generate",
        )
    ])
    if count:
        rows.append([InlineKeyboardButton("🧹 Clear selection", callback_data="clear")])
    return InlineKeyboardMarkup(rows)


def edit_button(image: GeneratedImage) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [InlineKeyboardButton("✏️ Edit with AI", callback_data=f"edit_{image.id}")]
    ])


# ── Helpers ───────────────────────────────────────────────────────────────────

def escape_md(text: str) -> str:
    """Escape special chars for Telegram MarkdownV2."""
    special = r"\_*[]()~`>#+-=|{}.!"
    return "".join(f"\\{c}" if c in special else c for c in text)


def mockup_caption(image: GeneratedImage) -> str:
    product = image.product_type
    return f"{product.icon} *{escape_md(product.label)}*\n_{escape_md(image.source_prompt)}_"


def failure_summary(failures: List[BatchFailure], requested: int) -> str:
    names = ", ".join(f.product_type.label for f in failures)
    return escape_md(f"⚠️ {len(failures)} of {requested} mockup(s) could not be generated: {names}.")


def get_studio(context: ContextTypes.DEFAULT_TYPE) -> Studio:
    if STUDIO_KEY not in context.user_data:
        settings: Settings = context.bot_data[SETTINGS_KEY]
        context.user_data[STUDIO_KEY] = Studio(MockupClient.from_settings(settings))
    return context.user_data[STUDIO_KEY]


def reset_studio(context: ContextTypes.DEFAULT_TYPE) -> Studio:
    context.user_data.pop(STUDIO_KEY, None)
    context.user_data.pop(INSTRUCTION_KEY, None)
    return get_studio(context)


async def send_typing(update: Update, action: str = ChatAction.TYPING) -> None:
    await update.effective_chat.send_action(action)


async def _download_logo(update: Update, context: ContextTypes.DEFAULT_TYPE) -> Optional[tuple]:
    """Return (bytes, mime_type) for the photo/document in the message, or None."""
    message = update.message
    if message.photo:
        file = await context.bot.get_file(message.photo[-1].file_id)
        return bytes(await file.download_as_bytearray()), "image/jpeg"
    if message.document:
        file = await context.bot.get_file(message.document.file_id)
        return bytes(await file.download_as_bytearray()), message.document.mime_type
    return None


async def _send_mockup(
    context: ContextTypes.DEFAULT_TYPE,
    chat_id: int,
    image: GeneratedImage,
) -> None:
    await context.bot.send_photo(
        chat_id=chat_id,
        photo=decode_payload(image.image_data),
        caption=mockup_caption(image),
        parse_mode=ParseMode.MARKDOWN_V2,
        reply_markup=edit_button(image),
    )


# ── /start ────────────────────────────────────────────────────────────────────

async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    reset_studio(context)
    await update.message.reply_text(
        "👋 Welcome to *MerchAI Studio*\\!\n\n"
        "Turn your logo into real products: t\\-shirts, mugs, tote bags and more\\.\n\n"
        "*Send me your logo* as a photo or an image file \\(PNG, JPG\\)\\.",
        parse_mode=ParseMode.MARKDOWN_V2,
    )
    return LOGO


# ── /cancel ───────────────────────────────────────────────────────────────────

async def cmd_cancel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    context.user_data.pop(STUDIO_KEY, None)
    context.user_data.pop(INSTRUCTION_KEY, None)
    await update.message.reply_text(
        "👋 Session closed\\. Type /start to begin again\\.",
        parse_mode=ParseMode.MARKDOWN_V2,
    )
    return ConversationHandler.END


# ── Step 1: Logo ──────────────────────────────────────────────────────────────

async def step_logo(update: Update, context: ContextTypes.DEFAULT_TYPE) -> Optional[int]:
    studio = get_studio(context)
    document = update.message.document
    if document is not None and not is_image_mime(document.mime_type):
        logger.info("Ignoring non-image upload: %s", document.mime_type)
        return None

    upload = await _download_logo(update, context)
    if upload is None:
        return None

    raw, mime = upload
    try:
        studio.upload_logo(raw, mime)
    except UnsupportedMediaKind as exc:
        logger.info("Ignoring non-image upload: %s", exc.mime_type)
        return None

    await update.message.reply_text(
        "✅ Logo received\\.\n\n"
        "*Choose products* below, then tap Generate\\.\n"
        "_Optional: send a message with extra instructions, e\\.g\\. 'on a marble desk'\\._",
        parse_mode=ParseMode.MARKDOWN_V2,
        reply_markup=product_keyboard(studio),
    )
    return PICK


# ── Step 2: Products ──────────────────────────────────────────────────────────

async def cmd_products(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    studio = get_studio(context)
    if not studio.has_logo:
        await update.message.reply_text("📤 Send your logo first\\.", parse_mode=ParseMode.MARKDOWN_V2)
        return LOGO
    if studio.editor is not None:
        await update.message.reply_text(
            "✏️ Finish the open edit first: *Save Copy* or *Close*\\.",
            parse_mode=ParseMode.MARKDOWN_V2,
            reply_markup=EDITOR_KEYBOARD,
        )
        return EDITING
    await update.message.reply_text(
        "*Choose products:*",
        parse_mode=ParseMode.MARKDOWN_V2,
        reply_markup=product_keyboard(studio),
    )
    return PICK


async def step_product_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()
    studio = get_studio(context)

    if query.data == "clear":
        studio.clear_selection()
    else:
        studio.toggle_product(ProductType(query.data[len("product_"):]))

    await query.edit_message_reply_markup(reply_markup=product_keyboard(studio))
    return PICK


async def step_instruction_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    text = (update.message.text or "").strip()
    context.user_data[INSTRUCTION_KEY] = text
    await update.message.reply_text(
        f"📝 Extra instructions set: _{escape_md(text)}_",
        parse_mode=ParseMode.MARKDOWN_V2,
        reply_markup=product_keyboard(get_studio(context)),
    )
    return PICK


async def step_generate_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    studio = get_studio(context)

    if not len(studio.selection):
        await query.answer("Choose at least one product first.", show_alert=True)
        return PICK
    if studio.is_generating:
        await query.answer("Still generating, hang on…", show_alert=True)
        return PICK
    await query.answer()

    chat_id = update.effective_chat.id
    requested = studio.selection.ordered()
    await query.edit_message_text(
        f"⏳ *Generating {len(requested)} mockup\\(s\\)\\.\\.\\.*\n"
        + escape_md(", ".join(p.label for p in requested)),
        parse_mode=ParseMode.MARKDOWN_V2,
    )
    await send_typing(update, ChatAction.UPLOAD_PHOTO)

    result = await studio.generate(
        context.user_data.get(INSTRUCTION_KEY, ""),
        on_failure=lambda f: logger.warning("Mockup for %s failed: %r", f.product_type.label, f.error),
    )

    for image in result.images:
        await _send_mockup(context, chat_id, image)

    if not result.images:
        await context.bot.send_message(
            chat_id=chat_id,
            text="❌ No mockups could be generated\\. Tap Generate to try again\\.",
            parse_mode=ParseMode.MARKDOWN_V2,
            reply_markup=product_keyboard(studio),
        )
        return PICK

    if result.partial:
        await context.bot.send_message(
            chat_id=chat_id,
            text=failure_summary(result.failures, len(result.requested)),
            parse_mode=ParseMode.MARKDOWN_V2,
        )

    await context.bot.send_message(
        chat_id=chat_id,
        text=(
            f"🎉 {len(result.images)} mockup\\(s\\) ready\\. "
            "Tap *Edit with AI* under any image, /products for more, or send a new logo\\."
        ),
        parse_mode=ParseMode.MARKDOWN_V2,
    )
    return GALLERY


# ── Gallery ───────────────────────────────────────────────────────────────────

async def cmd_gallery(update: Update, context: ContextTypes.DEFAULT_TYPE) -> Optional[int]:
    studio = get_studio(context)
    latest = studio.gallery.latest(GALLERY_RESEND_LIMIT)
    if not latest:
        await update.message.reply_text("🖼 Your gallery is empty\\.", parse_mode=ParseMode.MARKDOWN_V2)
        return None

    # One photo per mockup so each keeps its edit button.
    for image in latest:
        await _send_mockup(context, update.effective_chat.id, image)
    await update.message.reply_text(
        f"🖼 {len(latest)} of {len(studio.gallery)} mockup\\(s\\), newest first\\.",
        parse_mode=ParseMode.MARKDOWN_V2,
    )
    return None


# ── Step 3: Editor ────────────────────────────────────────────────────────────

async def step_open_editor_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> Optional[int]:
    query = update.callback_query
    studio = get_studio(context)
    image_id = query.data[len("edit_"):]

    try:
        editor = studio.open_editor(image_id)
    except EditorBusy:
        await query.answer("Finish the open edit first: Save Copy or Close.", show_alert=True)
        return EDITING
    except SessionStateError:
        await query.answer("That mockup is no longer available. Type /start to begin again.", show_alert=True)
        return None
    await query.answer()

    await query.message.reply_text(
        f"✏️ *Editing {escape_md(editor.origin.product_type.label)}*\n\n"
        "Describe a change, e\\.g\\. _'Add a vintage film filter'_, "
        "_'Place it on a wooden table'_, _'Add neon lighting'_\\.\n\n"
        "_Tip: try changing the background context or the lighting style\\._",
        parse_mode=ParseMode.MARKDOWN_V2,
        reply_markup=EDITOR_KEYBOARD,
    )
    return EDITING


async def step_edit_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    studio = get_studio(context)
    instruction = (update.message.text or "").strip()
    if not instruction:
        return EDITING

    await send_typing(update, ChatAction.UPLOAD_PHOTO)
    try:
        payload = await studio.apply_edit(instruction)
    except MerchAIError as exc:
        logger.warning("Edit failed: %s", exc)
        await update.message.reply_text(
            "❌ Failed to edit image\\. Please try again\\.",
            parse_mode=ParseMode.MARKDOWN_V2,
            reply_markup=EDITOR_KEYBOARD,
        )
        return EDITING

    await update.message.reply_photo(
        photo=decode_payload(payload),
        caption=f"✨ _{escape_md(instruction)}_",
        parse_mode=ParseMode.MARKDOWN_V2,
        reply_markup=EDITOR_KEYBOARD,
    )
    return EDITING


async def step_editor_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    studio = get_studio(context)
    action = query.data

    if studio.editor is None:
        await query.answer("No mockup is open for editing.", show_alert=True)
        return GALLERY
    if studio.editor.state is EditState.EDITING:
        await query.answer("AI is editing, hang on…", show_alert=True)
        return EDITING
    await query.answer()

    if action == "editor_download":
        filename, data = studio.export_current()
        await query.message.reply_document(document=data, filename=filename)
        return EDITING

    if action == "editor_save":
        saved = studio.save_edit()
        await query.message.reply_text("💾 Saved as a new mockup in your gallery\\.", parse_mode=ParseMode.MARKDOWN_V2)
        await _send_mockup(context, update.effective_chat.id, saved)
        return GALLERY

    studio.close_editor()
    await query.message.reply_text("✖️ Closed without saving\\.", parse_mode=ParseMode.MARKDOWN_V2)
    return GALLERY


# ── Error handler ─────────────────────────────────────────────────────────────

async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    logger.error("Exception while handling update:", exc_info=context.error)
    if isinstance(update, Update) and update.effective_message:
        await update.effective_message.reply_text(
            "⚠️ Something went wrong\\. Type /cancel then /start to try again\\.",
            parse_mode=ParseMode.MARKDOWN_V2,
        )


# ── App builder ───────────────────────────────────────────────────────────────

def build_app(settings: Settings) -> Application:
    app = Application.builder().token(settings.telegram_token).build()
    app.bot_data[SETTINGS_KEY] = settings

    # Whitelist applies to the entry point; without /start nothing else is reachable.
    start_filter = filters.Chat(chat_id=list(settings.allowed_chat_ids)) if settings.allowed_chat_ids else None

    logo_handlers = [
        MessageHandler(filters.PHOTO, step_logo),
        MessageHandler(filters.Document.ALL, step_logo),
    ]

    conv = ConversationHandler(
        entry_points=[CommandHandler("start", cmd_start, filters=start_filter)],
        states={
            LOGO: logo_handlers,
            PICK: [
                CallbackQueryHandler(step_product_callback, pattern="^(product_|clear$)"),
                CallbackQueryHandler(step_generate_callback, pattern="^generate$"),
                MessageHandler(filters.TEXT & ~filters.COMMAND, step_instruction_text),
                *logo_handlers,
            ],
            GALLERY: [
                CommandHandler("products", cmd_products),
                *logo_handlers,
            ],
            EDITING: [
                CallbackQueryHandler(step_editor_callback, pattern="^editor_"),
                MessageHandler(filters.TEXT & ~filters.COMMAND, step_edit_text),
            ],
        },
        # Edit buttons stay live under every earlier mockup, whatever the state.
        fallbacks=[
            CallbackQueryHandler(step_open_editor_callback, pattern="^edit_"),
            CommandHandler("cancel", cmd_cancel),
            CommandHandler("gallery", cmd_gallery),
            CommandHandler("products", cmd_products),
        ],
        allow_reentry=True,
        conversation_timeout=1800,  # 30 min timeout
    )

    app.add_handler(conv)
    app.add_error_handler(error_handler)
    return app
