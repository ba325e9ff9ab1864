"""Tests for the greeting and agent instruction scripts."""

from tablebridge.config import BridgeConfig
from tablebridge.prompts import agent_instructions, greeting_script


class TestGreeting:

    def test_uses_restaurant_facts(self, config):
        greeting = greeting_script(config)
        assert greeting.startswith("Thank you for calling Sip & Sizzle")
        assert "2236 First Street" in greeting
        assert "Happy Hour" in greeting

    def test_override(self):
        config = BridgeConfig.from_dict({"restaurant": {"greeting": "Hi there!"}})
        assert greeting_script(config) == "Hi there!"


class TestInstructions:

    def test_grammar_and_configured_links(self, config):
        text = agent_instructions(config)
        assert "[[MENU_SEARCH: <query>]]" in text
        assert "[[SEND:MENU_DAY]]" in text
        assert "[[SEND:MENU_DINNER]]" in text
        assert "[[SEND:MENU_BEVERAGE]]" not in text
        assert "[[SEND:OPENTABLE]]" in text
        assert text.endswith("Always note that items and prices may change.")

    def test_no_menu_links(self):
        text = agent_instructions(BridgeConfig())
        assert "[[SEND:MENU_" not in text
        assert "[[SEND:TOAST]]" in text

    def test_override(self):
        config = BridgeConfig.from_dict({"restaurant": {"instructions": "Be brief."}})
        assert agent_instructions(config) == "Be brief."
