"""TableBridge collaborators: menu search and SMS delivery.

Usage:
    from tablebridge.services import MenuIndex, TwilioMessenger

    menu = MenuIndex(config.menu_sources)
    await menu.ingest()
    messenger = TwilioMessenger(config.twilio)
"""

from tablebridge.services.menu import MenuIndex, MenuLine, format_menu_answer
from tablebridge.services.messaging import MenuLookup, Messenger, TwilioMessenger

__all__ = [
    "MenuIndex",
    "MenuLine",
    "format_menu_answer",
    "MenuLookup",
    "Messenger",
    "TwilioMessenger",
]
