from datetime import datetime, timezone

from fm_chat.adapters.tokens_approx import ApproxTokenCounter
from fm_chat.domain.models import Turn


def _turn(i, text):
    return Turn(id=f"t{i}", role="user" if i % 2 == 0 else "assistant", text=text,
                created_at=datetime.now(timezone.utc))


def test_approx_counter_scales_word_count():
    c = ApproxTokenCounter()
    assert c.count_text("") == 0
    assert c.count_text("   \n\t ") == 0
    assert c.count_text("one") == 1
    assert c.count_text("a b c") == 4
    assert c.count_text("w " * 5) == 7
    assert c.count_text("w " * 10) == 13
    assert c.count_text("w " * 20) == 26


def test_approx_counter_is_deterministic():
    c = ApproxTokenCounter()
    text = "The quick brown fox jumps over the lazy dog"
    assert c.count_text(text) == c.count_text(text)


def test_count_turns_uses_concatenated_text():
    c = ApproxTokenCounter()
    turns = [_turn(i, "one two three") for i in range(4)]
    assert c.count_turns(turns) == c.count_text(" ".join(t.text for t in turns))
    assert c.count_turns([]) == 0
