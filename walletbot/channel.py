"""
Conversation channel

What the flow engine and router need from the chat transport, and the
python-telegram-bot implementation of it. Menus are passed around as rows of
(label, callback_data) pairs so nothing above this module touches telegram
types.
"""

import logging
from typing import List, Optional, Tuple

from telegram import InlineKeyboardButton, InlineKeyboardMarkup
from telegram.error import BadRequest, TelegramError

logger = logging.getLogger(__name__)


def build_keyboard(rows: List[List[Tuple[str, str]]]) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([
        [InlineKeyboardButton(label, callback_data=data) for label, data in row]
        for row in rows
    ])


class ConversationChannel:
    async def send_text(self, conversation_id, text: str, formatting: Optional[str] = "Markdown") -> int:
        raise NotImplementedError

    async def send_menu(self, conversation_id, prompt: str, options, formatting: Optional[str] = "Markdown") -> int:
        raise NotImplementedError

    async def edit_menu(self, conversation_id, message_id: int, prompt: str, options,
                        formatting: Optional[str] = "Markdown"):
        raise NotImplementedError

    async def delete_message(self, conversation_id, message_id: int):
        raise NotImplementedError


class TelegramChannel(ConversationChannel):
    def __init__(self, bot):
        self.bot = bot

    async def send_text(self, conversation_id, text, formatting="Markdown"):
        message = await self.bot.send_message(
            chat_id=conversation_id,
            text=text,
            parse_mode=formatting,
            disable_web_page_preview=True,
        )
        return message.message_id

    async def send_menu(self, conversation_id, prompt, options, formatting="Markdown"):
        message = await self.bot.send_message(
            chat_id=conversation_id,
            text=prompt,
            reply_markup=build_keyboard(options),
            parse_mode=formatting,
            disable_web_page_preview=True,
        )
        return message.message_id

    async def edit_menu(self, conversation_id, message_id, prompt, options, formatting="Markdown"):
        try:
            await self.bot.edit_message_text(
                chat_id=conversation_id,
                message_id=message_id,
                text=prompt,
                reply_markup=build_keyboard(options),
                parse_mode=formatting,
                disable_web_page_preview=True,
            )
        except BadRequest as e:
            # pressing the same button twice re-renders identical content
            if "not modified" not in str(e).lower():
                raise

    async def delete_message(self, conversation_id, message_id):
        try:
            await self.bot.delete_message(chat_id=conversation_id, message_id=message_id)
        except TelegramError as e:
            logger.warning(f"Could not delete message {message_id} in chat {conversation_id}: {e}")
