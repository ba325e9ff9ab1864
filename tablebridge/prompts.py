"""Restaurant persona scripts sent to the agent.

The greeting is spoken once per call when both legs are ready. The
instructions go out in the initial ``session.update`` and teach the agent
the inline command-token grammar the scanner recognises.
"""

from __future__ import annotations

from tablebridge.config import BridgeConfig


def greeting_script(config: BridgeConfig) -> str:
    """Build the opening line spoken to every caller."""
    r = config.restaurant
    if r.greeting:
        return r.greeting
    return (
        f"Thank you for calling {r.name}, located at {r.address} in {r.city}. "
        f"{r.hours} {r.happy_hour} "
        "You can ask me about menu items, prices, wine pairings, reservations, "
        "to-go orders, hours, or parking."
    )


def agent_instructions(config: BridgeConfig) -> str:
    """Build the system instructions, including the command-token grammar."""
    r = config.restaurant
    if r.instructions:
        return r.instructions

    links = config.links
    send_menu = " ".join(
        token
        for token, url in (
            ("[[SEND:MENU_DAY]]", links.day_menu),
            ("[[SEND:MENU_DINNER]]", links.dinner_menu),
            ("[[SEND:MENU_BEVERAGE]]", links.beverage_menu),
        )
        if url
    )

    lines = [
        f"You are the friendly host for {r.name}. "
        "Speak naturally and briefly. Never invent prices or availability.",
        "",
        f"Facts you may share: the address is {r.address} in {r.city}. {r.hours} "
        f"{r.happy_hour} Parking: {r.parking}",
        "",
        "To look up menu items or prices, emit one token line:",
        "[[MENU_SEARCH: <query>]]",
        "Examples: [[MENU_SEARCH: salmon]]  [[MENU_SEARCH: old fashioned]]  "
        "[[MENU_SEARCH: ribeye]]",
        "",
    ]
    if send_menu:
        lines += ["If caller wants links, emit one of:", send_menu]
    lines += [
        "For reservations or to-go: [[SEND:OPENTABLE]] [[SEND:TOAST]]",
        "",
        "After emitting a token, continue with a concise spoken answer. "
        "Always note that items and prices may change.",
    ]
    return "\n".join(lines)
