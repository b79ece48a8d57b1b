"""NFTickr - Chat front-ends"""

from nftickr.bot.telegram import NFTChatBot, route_text

__all__ = ["NFTChatBot", "route_text"]
