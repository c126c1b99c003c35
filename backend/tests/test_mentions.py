"""Tests for the comment mention tokenizer."""

from uuid import uuid4

from taskhub.utils.mentions import MentionToken, iter_mentions, parse_mentions


def test_username_and_user_id_tokens():
    user_id = uuid4()
    tokens = list(iter_mentions(f"ping @[alice] and @[user:{user_id}] please"))

    assert tokens == [MentionToken(username="alice"), MentionToken(user_id=user_id)]


def test_bare_at_word_is_not_a_mention():
    assert list(iter_mentions("email @alice or alice@example.com")) == []


def test_empty_brackets_are_skipped():
    assert list(iter_mentions("@[] then @[bob]")) == [MentionToken(username="bob")]


def test_unclosed_bracket_stops_scanning():
    assert list(iter_mentions("@[alice] @[bob")) == [MentionToken(username="alice")]


def test_malformed_user_id_is_dropped():
    assert list(iter_mentions("@[user:not-a-uuid] @[carol]")) == [MentionToken(username="carol")]


def test_identifier_may_contain_spaces_and_symbols():
    assert list(iter_mentions("@[Jane Doe!]")) == [MentionToken(username="Jane Doe!")]


def test_tokens_are_produced_lazily():
    tokens = iter_mentions("@[a] @[b]")

    assert next(tokens) == MentionToken(username="a")
    assert next(tokens) == MentionToken(username="b")


def test_parse_mentions_deduplicates():
    user_id = uuid4()
    usernames, user_ids = parse_mentions(
        f"@[alice] @[alice] @[user:{user_id}] @[user:{user_id}]"
    )

    assert usernames == {"alice"}
    assert user_ids == {user_id}


def test_parse_mentions_without_mentions():
    assert parse_mentions("no mentions here") == (set(), set())
