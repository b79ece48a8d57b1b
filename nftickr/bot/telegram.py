"""
NFTickr - Telegram Chat Bot

Chat front-end over the analysis layer. Users send an NFT name, an OpenSea
URL, a contract address + token id, or a photo, and get the price analysis
back as an HTML message. Each chat gets its own AnalysisSession, so a chat
cannot start a second analysis while one is in flight.
"""

from __future__ import annotations

import html
import re
from collections import OrderedDict
from typing import Any, Awaitable

import structlog
from telegram import LinkPreviewOptions, Update
from telegram.constants import ParseMode
from telegram.ext import (
    Application,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from nftickr.analysis import AnalysisSession, NFTAnalyzer
from nftickr.config import POPULAR_COLLECTIONS
from nftickr.errors import NFTickrError
from nftickr.models import AnalysisResult, AssetRecord, CollectionStats
from nftickr.pipeline.gemini import GeminiClient
from nftickr.pipeline.opensea import OpenSeaClient

logger = structlog.get_logger(__name__)

_OPENSEA_URL_RE: re.Pattern[str] = re.compile(r"\S*opensea\.io/assets/\S+", re.IGNORECASE)
_CONTRACT_TOKEN_RE: re.Pattern[str] = re.compile(
    r"(0x[a-fA-F0-9]{40})\s*(?:[/#:]\s*|\s+)#?(\d+)"
)
_COLLECTION_KEYWORDS_RE: re.Pattern[str] = re.compile(
    r"\b(collection|floor|stats|price|of|the|for|what|is|show|me)\b|[?!.,]",
    re.IGNORECASE,
)

WELCOME_TEXT = (
    "🤖 <b>Welcome to NFT Price Oracle!</b>\n\n"
    "I can help you analyze NFT prices and predict future values.\n\n"
    "<b>Commands:</b>\n"
    "• Send an NFT image for analysis\n"
    "• Type an NFT name or collection\n"
    "• /ask - Ask a general NFT question\n"
    "• /help - Show this help message\n\n"
    "Try sending me an NFT image or name!"
)

HELP_TEXT = (
    "<b>NFT Price Oracle Commands:</b>\n\n"
    "📸 <b>Image Analysis:</b> Send any NFT image\n"
    "🔍 <b>Name Search:</b> Type \"Bored Ape #1234\"\n"
    "🔗 <b>Direct Lookup:</b> Paste an OpenSea URL or \"0x… 1234\"\n"
    "📊 <b>Collection Analysis:</b> Type \"Azuki collection\"\n"
    "💰 <b>Price Predictions:</b> Get future price estimates\n"
    "❓ <b>Questions:</b> /ask what makes an NFT rare?\n\n"
    "<b>Examples:</b>\n"
    "• \"CryptoPunks #7804\"\n"
    "• \"Bored Ape Yacht Club floor\"\n"
    "• Send an image directly"
)

COLLECTION_HELP_TEXT = (
    "🏢 <b>Collection Information</b>\n\n"
    "I couldn't find stats for that collection. Try its OpenSea slug, "
    "for example \"boredapeyachtclub collection\"."
)

ASK_FALLBACK_TEXT = (
    "🤖 <b>NFT Information</b>\n\n"
    "I'm your AI assistant for all things NFT! I can help with price analysis "
    "and predictions, collection stats, and image identification. "
    "Try again in a moment or send me an NFT name."
)

GENERIC_ERROR_TEXT = (
    "Sorry, I encountered an error processing your request. Please try again."
)

# Idle chat sessions beyond this are evicted, least recently used first.
MAX_CHAT_SESSIONS = 1000
COLLECTION_SAMPLE_SIZE = 3


# ---------------------------------------------------------------------------
# Message routing & formatting
# ---------------------------------------------------------------------------


def route_text(text: str) -> tuple[str, tuple[str, ...]]:
    """
    Decide what a free-text message asks for.

    Returns (kind, args) where kind is one of "url", "contract",
    "collection" or "name".
    """
    stripped = text.strip()

    url_match = _OPENSEA_URL_RE.search(stripped)
    if url_match:
        return "url", (url_match.group(0),)

    contract_match = _CONTRACT_TOKEN_RE.search(stripped)
    if contract_match:
        return "contract", (contract_match.group(1), contract_match.group(2))

    lowered = stripped.lower()
    if "collection" in lowered or "floor" in lowered:
        name = " ".join(_COLLECTION_KEYWORDS_RE.sub(" ", stripped).split())
        if name:
            return "collection", (name,)

    return "name", (stripped,)


def collection_slug(name: str) -> str:
    return re.sub(r"\s+", "-", name.strip().lower())


def known_collection(name: str) -> dict[str, str] | None:
    """Bundled collection whose name or slug matches `name`, case-insensitively."""
    wanted = name.strip().lower()
    for collection in POPULAR_COLLECTIONS:
        if wanted in (collection["name"].lower(), collection["slug"]):
            return collection
    return None


def _first_collection_match(entries: list[dict[str, Any]]) -> tuple[str, str] | None:
    for entry in entries:
        slug = entry.get("slug")
        if isinstance(slug, str) and slug:
            return str(entry.get("name") or slug), slug
    return None


def _fmt_price(value: float) -> str:
    return f"{value:,.4f}".rstrip("0").rstrip(".")


def _fmt_analysis_html(result: AnalysisResult) -> str:
    """Summary of an analysis: current price and the nearest prediction."""
    prediction = result.predictions[0]
    name = html.escape(result.name)
    collection = html.escape(result.collection or "Unknown collection")

    lines = [
        f"💎 <b>{name}</b>",
        f"🏢 {collection}\n",
        f"💰 <b>Current Price:</b> {_fmt_price(result.current_price)} ETH\n",
        f"📈 <b>Prediction for {prediction.date.isoformat()}:</b>",
        f"• Price: {_fmt_price(prediction.price)} ETH",
    ]

    if result.current_price > 0:
        change = (prediction.price - result.current_price) / result.current_price * 100
        lines.append(f"• Change: {change:+.1f}%")
    if prediction.confidence is not None:
        lines.append(f"• Confidence: {prediction.confidence * 100:.0f}%")

    if prediction.factors:
        lines.append("\n🎯 <b>Factors:</b>")
        lines.extend(f"• {html.escape(f)}" for f in prediction.factors)

    if len(result.predictions) > 1:
        last = result.predictions[-1]
        lines.append(
            f"\n🔭 <b>Outlook {last.date.isoformat()}:</b> {_fmt_price(last.price)} ETH"
        )

    return "\n".join(lines)


def _fmt_collection_stats_html(
    name: str,
    stats: CollectionStats,
    samples: list[AssetRecord] | None = None,
) -> str:
    text = (
        f"🏢 <b>{html.escape(name)} Collection Stats</b>\n\n"
        f"💰 <b>Floor Price:</b> {_fmt_price(stats.floor_price)} ETH\n"
        f"📊 <b>Market Cap:</b> {_fmt_price(stats.market_cap)} ETH\n"
        f"👥 <b>Owners:</b> {stats.num_owners:,}\n"
        f"📦 <b>Total Supply:</b> {stats.total_supply:,}\n"
        f"💎 <b>Total Volume:</b> {_fmt_price(stats.total_volume)} ETH\n"
        f"📈 <b>Total Sales:</b> {stats.total_sales:,}"
    )
    if samples:
        text += "\n\n🖼 <b>Items:</b>\n" + "\n".join(
            f"• {html.escape(asset.name)}" for asset in samples
        )
    return text


# ---------------------------------------------------------------------------
# Bot
# ---------------------------------------------------------------------------


class NFTChatBot:
    """
    Telegram handlers bound to one shared analyzer and client pair.

        bot = NFTChatBot(analyzer, opensea, gemini)
        application = bot.build_application(token)
    """

    def __init__(
        self,
        analyzer: NFTAnalyzer,
        opensea: OpenSeaClient,
        gemini: GeminiClient,
    ) -> None:
        self._analyzer = analyzer
        self._opensea = opensea
        self._gemini = gemini
        self._sessions: OrderedDict[int, AnalysisSession] = OrderedDict()

    def session_for(self, chat_id: int) -> AnalysisSession:
        session = self._sessions.get(chat_id)
        if session is None:
            session = AnalysisSession(self._analyzer)
            self._sessions[chat_id] = session
            self._evict_idle_sessions(keep=chat_id)
        else:
            self._sessions.move_to_end(chat_id)
        return session

    def _evict_idle_sessions(self, keep: int) -> None:
        """Drop least recently used idle sessions until the map fits MAX_CHAT_SESSIONS."""
        excess = len(self._sessions) - MAX_CHAT_SESSIONS
        if excess <= 0:
            return
        idle = [
            chat_id
            for chat_id, session in self._sessions.items()
            if chat_id != keep and not session.is_loading
        ][:excess]
        for chat_id in idle:
            del self._sessions[chat_id]
        logger.debug("bot_sessions_evicted", count=len(idle), remaining=len(self._sessions))

    def build_application(self, token: str) -> Application:
        application = Application.builder().token(token).concurrent_updates(True).build()
        application.add_handler(CommandHandler("start", self.handle_start))
        application.add_handler(CommandHandler("help", self.handle_help))
        application.add_handler(CommandHandler("ask", self.handle_ask))
        application.add_handler(MessageHandler(filters.PHOTO, self.handle_photo))
        application.add_handler(
            MessageHandler(filters.TEXT & ~filters.COMMAND, self.handle_text)
        )
        application.add_error_handler(self.handle_error)
        return application

    # -----------------------------------------------------------------------
    # Handlers
    # -----------------------------------------------------------------------

    async def handle_start(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        await update.effective_message.reply_text(WELCOME_TEXT, parse_mode=ParseMode.HTML)

    async def handle_help(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        await update.effective_message.reply_text(HELP_TEXT, parse_mode=ParseMode.HTML)

    async def handle_ask(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        question = " ".join(context.args or []).strip()
        message = update.effective_message
        if not question:
            await message.reply_text("Usage: /ask <your NFT question>")
            return

        try:
            answer = await self._gemini.answer_question(question)
        except NFTickrError as e:
            logger.warning("bot_ask_failed", error=e.message, source="telegram")
            await message.reply_text(ASK_FALLBACK_TEXT, parse_mode=ParseMode.HTML)
            return

        await message.reply_text(answer or ASK_FALLBACK_TEXT)

    async def handle_photo(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        message = update.effective_message
        photo = message.photo[-1]  # highest resolution

        await message.reply_text("🔍 Analyzing your NFT image... This may take a moment.")

        telegram_file = await photo.get_file()
        image = bytes(await telegram_file.download_as_bytearray())

        session = self.session_for(update.effective_chat.id)
        await self._reply_with_analysis(update, session.analyze_by_image(image))

    async def handle_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        message = update.effective_message
        kind, args = route_text(message.text or "")
        session = self.session_for(update.effective_chat.id)

        logger.info("bot_text_routed", kind=kind, chat_id=update.effective_chat.id, source="telegram")

        if kind == "collection":
            await self._reply_with_collection(update, args[0])
            return

        label = " #".join(args) if kind == "contract" else args[0]
        await message.reply_text(f"🔍 Searching for \"{label}\"... Please wait.")

        if kind == "url":
            await self._reply_with_analysis(update, session.analyze_by_url(args[0]))
        elif kind == "contract":
            await self._reply_with_analysis(update, session.analyze_by_contract(*args))
        else:
            await self._reply_with_analysis(update, session.analyze_by_name(args[0]))

    async def handle_error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        logger.error(
            "bot_update_failed",
            error=str(context.error),
            error_type=type(context.error).__name__,
            source="telegram",
        )
        if isinstance(update, Update) and update.effective_message is not None:
            await update.effective_message.reply_text(GENERIC_ERROR_TEXT)

    # -----------------------------------------------------------------------
    # Replies
    # -----------------------------------------------------------------------

    async def _reply_with_analysis(self, update: Update, pending: Awaitable[AnalysisResult]) -> None:
        message = update.effective_message
        try:
            result = await pending
        except NFTickrError as e:
            await message.reply_text(f"❌ {e.message}")
            return

        await message.reply_text(
            _fmt_analysis_html(result),
            parse_mode=ParseMode.HTML,
            link_preview_options=LinkPreviewOptions(is_disabled=True),
        )
        logger.info(
            "bot_analysis_sent",
            chat_id=update.effective_chat.id,
            asset_name=result.name,
            source="telegram",
        )

    async def _resolve_collection(self, name: str) -> tuple[str, str]:
        """
        (display name, slug) for a free-text collection name.

        Bundled collections first, then the marketplace collection search,
        then the name itself turned into a slug.
        """
        known = known_collection(name)
        if known is not None:
            return known["name"], known["slug"]

        match = _first_collection_match(await self._opensea.search_collections(name))
        if match is not None:
            return match

        return name, collection_slug(name)

    async def _reply_with_collection(self, update: Update, name: str) -> None:
        display_name, slug = await self._resolve_collection(name)
        logger.info("bot_collection_resolved", query=name, slug=slug, source="telegram")

        stats = await self._opensea.get_collection_stats(slug)
        if stats.is_empty:
            await update.effective_message.reply_text(
                COLLECTION_HELP_TEXT, parse_mode=ParseMode.HTML
            )
            return

        samples = await self._opensea.get_collection_assets(slug, limit=COLLECTION_SAMPLE_SIZE)
        await update.effective_message.reply_text(
            _fmt_collection_stats_html(display_name, stats, samples),
            parse_mode=ParseMode.HTML,
        )
