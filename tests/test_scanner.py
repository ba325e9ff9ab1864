"""Tests for the command-token scanner."""

from tablebridge.pipeline.scanner import Command, CommandKind, CommandScanner, LinkKind


def feed_all(scanner, *fragments):
    commands = []
    for fragment in fragments:
        commands += scanner.feed(fragment)
    return commands


class TestMenuSearch:

    def test_single_fragment(self):
        scanner = CommandScanner()
        commands = scanner.feed("Let me check. [[MENU_SEARCH: salmon]] One moment.")
        assert commands == [Command(CommandKind.MENU_SEARCH, "salmon")]
        assert "MENU_SEARCH" not in scanner.buffer
        assert scanner.buffer == "Let me check.  One moment."

    def test_split_across_three_fragments(self):
        scanner = CommandScanner()
        commands = feed_all(scanner, "Sure [[MENU_SE", "ARCH: rib", "eye]] coming up")
        assert commands == [Command(CommandKind.MENU_SEARCH, "ribeye")]
        assert "[[" not in scanner.buffer
        assert "ribeye" not in scanner.buffer

    def test_extracted_once_while_more_text_arrives(self):
        scanner = CommandScanner()
        commands = feed_all(scanner, "[[MENU_SEARCH: ribeye]]", " it is", " great", "]]")
        assert len(commands) == 1

    def test_incomplete_token_waits(self):
        scanner = CommandScanner()
        assert scanner.feed("[[MENU_SEARCH: ribeye]") == []
        assert scanner.feed("]") == [Command(CommandKind.MENU_SEARCH, "ribeye")]

    def test_empty_query_is_dropped(self):
        scanner = CommandScanner()
        assert scanner.feed("Hmm [[MENU_SEARCH: ]] ok") == []
        assert "MENU_SEARCH" not in scanner.buffer

    def test_empty_query_does_not_block_real_search(self):
        scanner = CommandScanner()
        commands = scanner.feed("[[MENU_SEARCH:   ]][[MENU_SEARCH: salmon]]")
        assert commands == [Command(CommandKind.MENU_SEARCH, "salmon")]

    def test_keyword_is_case_insensitive(self):
        scanner = CommandScanner()
        commands = scanner.feed("[[menu_search:  old fashioned  ]]")
        assert commands == [Command(CommandKind.MENU_SEARCH, "old fashioned")]

    def test_second_search_in_one_pass_is_dropped(self):
        scanner = CommandScanner()
        commands = scanner.feed("[[MENU_SEARCH: salmon]] and [[MENU_SEARCH: ribeye]]")
        assert commands == [Command(CommandKind.MENU_SEARCH, "salmon")]
        assert "MENU_SEARCH" not in scanner.buffer

    def test_later_search_in_new_pass_is_extracted(self):
        scanner = CommandScanner()
        scanner.feed("[[MENU_SEARCH: salmon]]")
        assert scanner.feed(" then [[MENU_SEARCH: ribeye]]") == [
            Command(CommandKind.MENU_SEARCH, "ribeye")
        ]


class TestSend:

    def test_all_sends_in_buffer_order(self):
        scanner = CommandScanner()
        commands = scanner.feed("[[SEND:TOAST]] ok [[SEND:MENU_DAY]] [[SEND:OPENTABLE]]")
        assert [c.payload for c in commands] == ["TOAST", "MENU_DAY", "OPENTABLE"]
        assert all(c.kind is CommandKind.SEND for c in commands)
        assert "SEND" not in scanner.buffer

    def test_split_send(self):
        scanner = CommandScanner()
        commands = feed_all(scanner, "[[SEND:MENU_", "BEVERAGE]", "]")
        assert commands == [Command(CommandKind.SEND, LinkKind.MENU_BEVERAGE.value)]

    def test_lowercase_kind_is_normalised(self):
        scanner = CommandScanner()
        assert scanner.feed("[[send:menu_dinner]]") == [Command(CommandKind.SEND, "MENU_DINNER")]

    def test_unknown_kind_is_left_alone(self):
        scanner = CommandScanner()
        assert scanner.feed("[[SEND:PARKING]]") == []
        assert scanner.buffer == "[[SEND:PARKING]]"

    def test_search_and_send_together(self):
        scanner = CommandScanner()
        commands = scanner.feed("[[SEND:MENU_DAY]][[MENU_SEARCH: eggs]]")
        assert {c.kind for c in commands} == {CommandKind.SEND, CommandKind.MENU_SEARCH}
        assert scanner.buffer == ""


class TestBuffer:

    def test_plain_text_accumulates(self):
        scanner = CommandScanner()
        feed_all(scanner, "Hello ", "there")
        assert scanner.buffer == "Hello there"

    def test_empty_fragment(self):
        scanner = CommandScanner()
        assert scanner.feed("") == []

    def test_end_turn_clears(self):
        scanner = CommandScanner()
        scanner.feed("half a token [[SEND:MENU")
        scanner.end_turn()
        assert scanner.buffer == ""
        # The stale half token cannot complete in the next turn
        assert scanner.feed("_DAY]]") == []
