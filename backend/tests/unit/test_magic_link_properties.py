"""Property-based tests for token signing and HTML to text conversion.

Uses Hypothesis to check properties that must hold for ANY input, not just
hand-crafted examples. These complement test_tokens.py and
test_mail_templates.py.
"""

from hypothesis import assume, given, settings
from hypothesis import strategies as st
from pydantic import SecretStr

from magic_link.core.tokens import TokenCodec
from magic_link.services.mail_templates import html_to_plain_text
from tests.conftest import TEST_LINK_SECRET

_CODEC = TokenCodec(SecretStr(TEST_LINK_SECRET))

# =============================================================================
# Strategies
# =============================================================================

user_ids = st.integers(min_value=1, max_value=2**31 - 1)
timestamps = st.integers(min_value=0, max_value=2**40)
nonces = st.text(
    alphabet=st.characters(exclude_categories=("Cs",)),
    min_size=1,
    max_size=64,
)

# Markup fragments exercising every conversion rule. Entity-escaped angle
# brackets are left out: their decoded form is markup again.
markup_fragments = st.sampled_from(
    [
        "<p>",
        "</p>",
        "<br>",
        "<br />",
        "<div>",
        "</div>",
        "<b>",
        "<!-- c -->",
        "&amp;",
        "&nbsp;",
        "&#13;",
        "\n",
        "\r\n",
        "\t",
        "  ",
        "<",
        ">",
        "&",
        "Hello",
        "link",
        "x",
    ]
)
markup = st.lists(markup_fragments, max_size=40).map("".join)

# Plain text without entities
unicode_text = st.text(
    alphabet=st.characters(exclude_categories=("Cs",), exclude_characters="&"),
    max_size=300,
)

word_lists = st.lists(
    st.from_regex(r"[a-z0-9]{1,8}", fullmatch=True), min_size=1, max_size=10
)


# =============================================================================
# TokenCodec
# =============================================================================


@given(user_id=user_ids, expires_at=timestamps, nonce=nonces, age=st.integers(0, 10**6))
@settings(max_examples=200)
def test_signed_token_verifies_until_expiry(user_id, expires_at, nonce, age):
    """verify(sign(t), now <= expires_at) is always True."""
    now = expires_at - age
    signature = _CODEC.sign(user_id, expires_at, nonce)
    assert _CODEC.verify(user_id, expires_at, nonce, signature, now)


@given(user_id=user_ids, expires_at=timestamps, nonce=nonces, late=st.integers(1, 10**6))
def test_expired_token_never_verifies(user_id, expires_at, nonce, late):
    signature = _CODEC.sign(user_id, expires_at, nonce)
    assert not _CODEC.verify(user_id, expires_at, nonce, signature, expires_at + late)


@given(
    user_id=user_ids,
    other_user_id=user_ids,
    expires_at=timestamps,
    other_expires_at=timestamps,
    nonce=nonces,
    other_nonce=nonces,
)
def test_mutating_any_field_breaks_signature(
    user_id, other_user_id, expires_at, other_expires_at, nonce, other_nonce
):
    """A signature never transfers to a different user, expiry or nonce."""
    signature = _CODEC.sign(user_id, expires_at, nonce)
    now = 0

    if other_user_id != user_id:
        assert not _CODEC.verify(other_user_id, expires_at, nonce, signature, now)
    if other_expires_at != expires_at:
        assert not _CODEC.verify(user_id, other_expires_at, nonce, signature, now)
    if other_nonce != nonce:
        assert not _CODEC.verify(user_id, expires_at, other_nonce, signature, now)


@given(user_id=user_ids, expires_at=timestamps, nonce=nonces)
def test_signature_is_url_safe(user_id, expires_at, nonce):
    signature = _CODEC.sign(user_id, expires_at, nonce)
    assume(signature)
    assert set(signature) <= set(
        "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_"
    )


# =============================================================================
# html_to_plain_text
# =============================================================================


@given(text=markup)
@settings(max_examples=300)
def test_plain_text_is_idempotent_on_markup(text):
    once = html_to_plain_text(text)
    assert html_to_plain_text(once) == once


@given(text=unicode_text)
@settings(max_examples=300)
def test_plain_text_is_idempotent_on_arbitrary_text(text):
    once = html_to_plain_text(text)
    assert html_to_plain_text(once) == once


@given(text=markup)
def test_plain_text_has_no_blank_line_runs(text):
    result = html_to_plain_text(text)
    assert "\n\n\n" not in result
    assert "  " not in result
    assert result == result.strip()


@given(words=word_lists)
def test_escaped_comparisons_survive(words):
    """&lt; and &gt; between words decode once and are never stripped."""
    markup = "<p>" + " &lt; ".join(words) + " &gt; end</p>"
    assert html_to_plain_text(markup) == " < ".join(words) + " > end"
