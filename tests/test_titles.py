from kotatsu_core.commands import MANAGED_COMMANDS, title_prefixes
from kotatsu_core.titles import apply_title_prefix, strip_managed_prefixes

PREFIXES = title_prefixes(MANAGED_COMMANDS)


def test_prefix_added_once():
    assert apply_title_prefix("Game crashes on boot", "[Solved]", PREFIXES) == "[Solved] Game crashes on boot"


def test_idempotent():
    once = apply_title_prefix("Game crashes on boot", "[Solved]", PREFIXES)
    twice = apply_title_prefix(once, "[Solved]", PREFIXES)
    assert once == twice


def test_replaces_previous_prefix():
    first = apply_title_prefix("Game crashes on boot", "[Duplicate]", PREFIXES)
    second = apply_title_prefix(first, "[Solved]", PREFIXES)
    assert second == "[Solved] Game crashes on boot"
    assert second.count("[Solved]") == 1
    assert "[Duplicate]" not in second


def test_strips_stacked_prefixes_case_insensitively():
    assert strip_managed_prefixes("[solved]  [KNOWN ISSUE] lag spikes", PREFIXES) == "lag spikes"


def test_keeps_unmanaged_brackets():
    result = apply_title_prefix("[Help!] Can't log in", "[Known issue]", PREFIXES)
    assert result == "[Known issue] [Help!] Can't log in"


def test_empty_title_becomes_prefix():
    assert apply_title_prefix("   ", "[Solved]", PREFIXES) == "[Solved]"


def test_long_title_capped_and_still_idempotent():
    title = "x" * 120
    once = apply_title_prefix(title, "[Wrong channel]", PREFIXES)
    assert len(once) == 100
    assert once.startswith("[Wrong channel] ")
    assert apply_title_prefix(once, "[Wrong channel]", PREFIXES) == once
