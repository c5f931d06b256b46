"""
Discord Bot Module

Discord front end for the chatbot gateway.

Features:
- "!chat <message>" prefix command, mentions and DMs
- /ask, /status and /help slash commands
- Recent channel messages passed along as conversation history
- Every meaningful channel message recorded for retrieval context
- Long replies split under Discord's 2000 character limit
- Per-user rate limiting

Usage:
    from src.discord_bot import create_bot
    bot = create_bot(chatbot=Chatbot())
    bot.run_bot()
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import discord
from discord import app_commands
from discord.ext import commands

from config.settings import get_settings
from src.chatbot import Chatbot
from src.models import ChatResponse, DiscordMessage, HistoryEntry

logger = logging.getLogger(__name__)

DISCORD_MESSAGE_LIMIT = 2000
SPLIT_LENGTH = 1900
CONTINUED_PREFIX = "...continued:\n"
CONTINUES_SUFFIX = "\n..."

# Channel messages shorter than this are not worth passing as history
MIN_HISTORY_CHARS = 10


def split_message(message: str, max_length: int = SPLIT_LENGTH) -> List[str]:
    """
    Split text into pieces of at most `max_length` characters.

    Splits at the last space when it falls in the second half of the
    window, otherwise hard-splits.
    """
    if len(message) <= max_length:
        return [message]

    chunks = []
    while len(message) > max_length:
        split_index = max_length
        space_index = message.rfind(" ", 0, max_length)
        if space_index > max_length // 2:
            split_index = space_index

        chunks.append(message[:split_index])
        message = message[split_index:]
        if message.startswith(" "):
            message = message[1:]

    if message:
        chunks.append(message)
    return chunks


def format_reply_chunks(message: str) -> List[str]:
    """Reply text as Discord-sized messages with continuation markers."""
    if len(message) <= DISCORD_MESSAGE_LIMIT:
        return [message]

    chunks = split_message(message, SPLIT_LENGTH)
    formatted = []
    for i, chunk in enumerate(chunks):
        if i > 0:
            chunk = CONTINUED_PREFIX + chunk
        if i < len(chunks) - 1:
            chunk = chunk + CONTINUES_SUFFIX
        formatted.append(chunk)
    return formatted


def session_id_for(user_id: Any, channel_id: Any) -> str:
    return f"discord_{user_id}_{channel_id}"


def history_from_messages(messages: Sequence[discord.Message], command_prefix: str) -> List[HistoryEntry]:
    """
    Convert fetched channel messages (newest first) into history.

    Commands and short messages are dropped. Bot messages become assistant
    turns, everything else "username: content" user turns. Oldest first.
    """
    history = []
    for msg in messages:
        content = msg.content or ""
        if content.startswith(command_prefix) or len(content.strip()) < MIN_HISTORY_CHARS:
            continue
        if msg.author.bot:
            history.append(HistoryEntry(role="assistant", content=content, timestamp=msg.created_at))
        else:
            history.append(
                HistoryEntry(role="user", content=f"{msg.author.name}: {content}", timestamp=msg.created_at)
            )
    history.reverse()
    return history


class DiscordBot(commands.Bot):
    """
    Discord client that forwards chat turns to the Chatbot orchestrator.

    The orchestrator is synchronous, so every turn runs in the default
    executor to keep the gateway heartbeat responsive.
    """

    def __init__(
        self,
        chatbot: Optional[Chatbot] = None,
        command_prefix: Optional[str] = None,
        **kwargs
    ):
        """
        Initialize the Discord Bot.

        Args:
            chatbot: Orchestrator (created lazily when omitted)
            command_prefix: Chat prefix (default from config, "!chat ")
            **kwargs: Additional arguments for commands.Bot
        """
        # MESSAGE_CONTENT is a privileged intent (enable it in the Developer Portal)
        intents = discord.Intents.default()
        intents.message_content = True
        intents.guilds = True

        self.settings = get_settings()
        self.chat_prefix = command_prefix or self.settings.discord.command_prefix

        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
            help_command=None,
            **kwargs
        )

        self._chatbot = chatbot
        self._is_ready = False

        # Rate limiting (simple in-memory)
        self._rate_limits: Dict[int, datetime] = {}
        self._rate_limit_seconds = 3

        self._stats = {
            "messages_answered": 0,
            "errors": 0,
            "start_time": None,
        }

        logger.info(f"DiscordBot initialized (prefix={self.chat_prefix!r})")

    @property
    def chatbot(self) -> Chatbot:
        """Get the orchestrator, creating it if needed."""
        if self._chatbot is None:
            logger.info("Initializing Chatbot...")
            self._chatbot = Chatbot()
        return self._chatbot

    async def setup_hook(self):
        """Called when the bot is starting up."""
        await self._register_commands()
        logger.info("Slash commands registered")

    async def _register_commands(self):
        """Register slash commands with Discord."""

        @self.tree.command(name="ask", description="Ask the chatbot a question")
        @app_commands.describe(question="Your question")
        async def ask_command(interaction: discord.Interaction, question: str):
            await self._handle_question(interaction, question)

        @self.tree.command(name="help", description="How to use the chatbot")
        async def help_command(interaction: discord.Interaction):
            await self._send_help(interaction)

        @self.tree.command(name="status", description="Check bot and provider status")
        async def status_command(interaction: discord.Interaction):
            await self._send_status(interaction)

        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync commands: {e}")

    async def on_ready(self):
        """Called when the bot is ready and connected."""
        self._is_ready = True
        self._stats["start_time"] = datetime.now()

        logger.info(f"Bot is ready! Logged in as {self.user}")
        logger.info(f"Connected to {len(self.guilds)} guild(s)")

        activity = discord.Activity(
            type=discord.ActivityType.listening,
            name=f"{self.chat_prefix.strip()} | /ask"
        )
        await self.change_presence(activity=activity)

    def _record(self, message: discord.Message) -> None:
        """Store a channel message in the recent-message buffer."""
        content = message.content or ""
        if not content.strip() or content.startswith(self.chat_prefix):
            return
        self.chatbot.record_channel_message(
            DiscordMessage(
                id=str(message.id),
                channel_id=str(message.channel.id),
                content=content,
                author=message.author.name,
                timestamp=message.created_at,
                is_bot=message.author.bot,
            )
        )

    def _extract_prompt(self, message: discord.Message) -> Optional[str]:
        """
        The chat text addressed to the bot, or None if it isn't addressed.

        Returns "" for a bare prefix or mention.
        """
        content = message.content or ""
        if content.startswith(self.chat_prefix):
            return content[len(self.chat_prefix):].strip()
        if content.strip() == self.chat_prefix.strip():
            return ""

        is_mentioned = self.user is not None and self.user in message.mentions
        is_dm = isinstance(message.channel, discord.DMChannel)
        if is_mentioned:
            content = content.replace(f"<@{self.user.id}>", "").replace(f"<@!{self.user.id}>", "")
            return content.strip()
        if is_dm:
            return content.strip()
        return None

    async def on_message(self, message: discord.Message):
        """Handle incoming messages."""
        self._record(message)

        if message.author.bot:
            return

        prompt = self._extract_prompt(message)
        if prompt is None:
            return
        if not prompt:
            await message.channel.send(f"Please provide a message after `{self.chat_prefix.strip()}`")
            return

        if not self._check_rate_limit(message.author.id):
            await message.reply(
                "Please wait a few seconds before sending another message.",
                delete_after=5
            )
            return

        async with message.channel.typing():
            history = await self._fetch_history(message)
            response = await self._get_response(
                prompt,
                session_id_for(message.author.id, message.channel.id),
                history,
            )

        await self._send_chunks(message.channel, response.message)
        self._stats["messages_answered"] += 1
        logger.info(
            f"Discord chat: user {message.author.name} ({message.author.id}) "
            f"in channel {message.channel.id} via {response.provider}"
        )

    async def _fetch_history(self, message: discord.Message) -> List[HistoryEntry]:
        """Recent channel messages before `message`, as history."""
        limit = self.settings.discord.history_limit
        try:
            recent = [m async for m in message.channel.history(limit=limit, before=message)]
        except discord.HTTPException as e:
            logger.warning(f"Failed to get recent messages for context: {e}")
            return []
        return history_from_messages(recent, self.chat_prefix)

    async def _get_response(self, text: str, session_id: str, history: List[HistoryEntry]) -> ChatResponse:
        """Run the synchronous orchestrator in the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            lambda: self.chatbot.process_message(text, session_id, history),
        )

    async def _send_chunks(self, channel, text: str):
        chunks = format_reply_chunks(text)
        for i, chunk in enumerate(chunks):
            try:
                await channel.send(chunk)
            except discord.HTTPException as e:
                logger.error(f"Error sending Discord message chunk: {e}")
                self._stats["errors"] += 1
            if i < len(chunks) - 1:
                # Stay under the channel send rate limit
                await asyncio.sleep(0.2)

    async def _handle_question(self, interaction: discord.Interaction, question: str):
        """Handle a question from the /ask slash command."""
        if not self._check_rate_limit(interaction.user.id):
            await interaction.response.send_message(
                "Please wait a few seconds before asking another question.",
                ephemeral=True
            )
            return

        question = (question or "").strip()
        if not question:
            await interaction.response.send_message("Please provide a question.", ephemeral=True)
            return

        # Defer the response (shows "thinking...")
        await interaction.response.defer()

        response = await self._get_response(
            question,
            session_id_for(interaction.user.id, interaction.channel_id),
            [],
        )
        for chunk in format_reply_chunks(response.message):
            await interaction.followup.send(chunk)
        self._stats["messages_answered"] += 1

    def _build_help_embed(self) -> discord.Embed:
        prefix = self.chat_prefix.strip()
        embed = discord.Embed(
            title="Chatbot - Help",
            description="I answer questions using a local or hosted language model, your documents and, when useful, the web.",
            color=discord.Color.blue()
        )
        embed.add_field(
            name="How to Ask",
            value=(
                f"**Option 1:** `{prefix} your message`\n"
                "**Option 2:** Use the `/ask` command\n"
                "**Option 3:** Mention me or send me a DM"
            ),
            inline=False
        )
        embed.add_field(
            name="Commands",
            value=(
                "`/ask` - Ask a question\n"
                "`/status` - Provider and bot status\n"
                "`/help` - Show this help message"
            ),
            inline=False
        )
        embed.set_footer(text="Recent channel messages are used as context")
        return embed

    async def _send_help(self, interaction: discord.Interaction):
        await interaction.response.send_message(embed=self._build_help_embed())

    def _uptime(self) -> str:
        if not self._stats["start_time"]:
            return "N/A"
        delta = datetime.now() - self._stats["start_time"]
        hours, remainder = divmod(int(delta.total_seconds()), 3600)
        minutes, seconds = divmod(remainder, 60)
        return f"{hours}h {minutes}m {seconds}s"

    async def _send_status(self, interaction: discord.Interaction):
        """Send bot and provider status."""
        loop = asyncio.get_running_loop()
        status = await loop.run_in_executor(None, self.chatbot.get_status)

        embed = discord.Embed(
            title="Bot Status",
            color=discord.Color.green() if self._is_ready else discord.Color.red()
        )
        embed.add_field(name="Status", value="Online" if self._is_ready else "Initializing...", inline=True)
        embed.add_field(name="Uptime", value=self._uptime(), inline=True)
        embed.add_field(name="Servers", value=str(len(self.guilds)), inline=True)
        embed.add_field(name="Provider", value=status["current_provider"], inline=True)
        embed.add_field(name="Mode", value=status["mode"], inline=True)
        embed.add_field(name="Messages Answered", value=str(self._stats["messages_answered"]), inline=True)
        embed.add_field(
            name="Documents",
            value=str(status["rag_status"].get("documents", 0)),
            inline=True
        )
        embed.add_field(
            name="Web Search",
            value="enabled" if status["search_status"].get("enabled") else "disabled",
            inline=True
        )

        await interaction.response.send_message(embed=embed)

    def _check_rate_limit(self, user_id: int) -> bool:
        """Check if user is rate limited."""
        now = datetime.now()

        if user_id in self._rate_limits:
            elapsed = (now - self._rate_limits[user_id]).total_seconds()
            if elapsed < self._rate_limit_seconds:
                return False

        self._rate_limits[user_id] = now
        return True

    def get_status(self) -> Dict[str, Any]:
        """Connection status for the /health endpoint."""
        status: Dict[str, Any] = {
            "enabled": True,
            "command_prefix": self.chat_prefix,
            "uptime": self._uptime(),
            "messages_answered": self._stats["messages_answered"],
        }
        if self._is_ready and self.user is not None:
            status["status"] = "connected"
            status["user"] = {"id": str(self.user.id), "username": self.user.name}
            status["guilds"] = len(self.guilds)
        else:
            status["status"] = "initialized_not_started"
        return status

    def run_bot(self, token: Optional[str] = None):
        """
        Run the bot with the given token.

        Args:
            token: Discord bot token (or from settings)
        """
        token = token or self.settings.discord.token
        if not token:
            raise ValueError(
                "Discord bot token not provided. "
                "Set DISCORD_BOT_TOKEN environment variable or pass token directly."
            )

        logger.info("Starting Discord bot...")
        self.run(token.strip('"').strip("'"), log_handler=None)


def create_bot(**kwargs) -> DiscordBot:
    """
    Factory function to create a configured Discord bot.

    Args:
        **kwargs: Arguments to pass to DiscordBot

    Returns:
        Configured DiscordBot instance
    """
    return DiscordBot(**kwargs)
