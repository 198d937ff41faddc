"""
test_identity.py — Identity key properties

Run:
  pytest tests/test_identity.py -v
"""

import unittest

import pytest

from datareuse.identity import (
    LIST_TAG,
    NULL_KEY,
    SCALAR_TAG,
    IdentityResolver,
    ScalarPolicy,
    frame_token,
    is_scalar,
)


class TestScalarKeysTyped(unittest.TestCase):

    def setUp(self):
        self.resolver = IdentityResolver()

    def test_scalar_keys_carry_tag(self):
        self.assertTrue(self.resolver.scalar_key("x").startswith(SCALAR_TAG))

    def test_types_are_distinguished(self):
        keys = {self.resolver.scalar_key(v) for v in (1, 1.0, True, "1", b"1", 1 + 0j)}
        self.assertEqual(len(keys), 6)

    def test_signed_zero_is_distinguished(self):
        self.assertNotEqual(self.resolver.scalar_key(0.0), self.resolver.scalar_key(-0.0))

    def test_equal_content_equal_key(self):
        a = "".join(["ho", "tel"])
        b = "".join(["hot", "el"])
        self.assertIsNot(a, b)
        self.assertEqual(self.resolver.scalar_key(a), self.resolver.scalar_key(b))

    def test_huge_int(self):
        big = 10 ** 5000
        self.assertNotEqual(self.resolver.scalar_key(big), self.resolver.scalar_key(big + 1))

    def test_lone_surrogate(self):
        self.assertNotEqual(self.resolver.scalar_key("\ud800"), self.resolver.scalar_key("\ud801"))


class TestScalarKeysTextual(unittest.TestCase):

    def setUp(self):
        self.resolver = IdentityResolver(scalar_policy=ScalarPolicy.TEXTUAL)

    def test_number_and_text_collapse(self):
        self.assertEqual(self.resolver.scalar_key(1), self.resolver.scalar_key("1"))
        self.assertEqual(self.resolver.scalar_key("1"), self.resolver.scalar_key(b"1"))

    def test_policy_accepts_string_value(self):
        self.assertIs(IdentityResolver(scalar_policy="textual").scalar_policy, ScalarPolicy.TEXTUAL)

    def test_float_rendering_still_differs(self):
        self.assertNotEqual(self.resolver.scalar_key(1), self.resolver.scalar_key(1.0))


class TestCompoundKeys(unittest.TestCase):

    def test_compound_key_is_tag_plus_digest(self):
        key = IdentityResolver().compound_key(LIST_TAG, [b"a", b"b"])
        self.assertTrue(key.startswith(LIST_TAG))
        self.assertEqual(len(key), len(LIST_TAG) + 32)

    def test_chunking_does_not_matter(self):
        resolver = IdentityResolver()
        self.assertEqual(
            resolver.compound_key(LIST_TAG, [b"ab", b"c"]),
            resolver.compound_key(LIST_TAG, [b"a", b"bc"]),
        )

    def test_digest_is_configurable(self):
        key = IdentityResolver(digest="md5").compound_key(LIST_TAG, [b"x"])
        self.assertEqual(len(key), len(LIST_TAG) + 16)

    def test_unknown_digest_rejected(self):
        with self.assertRaises(ValueError):
            IdentityResolver(digest="no-such-digest")

    def test_frame_token_prefixes_length(self):
        self.assertEqual(frame_token(b"abc"), b"3:abc")
        self.assertNotEqual(frame_token(b"a:b"), frame_token(b"a") + frame_token(b"b"))

    def test_key_of_none_is_null_key(self):
        self.assertEqual(IdentityResolver().key_of(None), NULL_KEY)


@pytest.mark.parametrize("value, expected", [
    ("s", True), (b"b", True), (1, True), (1.5, True), (True, True), (2j, True),
    (None, False), ([], False), ({}, False), (frozenset(), False),
])
def test_is_scalar(value, expected):
    assert is_scalar(value) is expected


def test_scalar_subclasses_are_not_scalars():
    class Name(str):
        pass

    assert not is_scalar(Name("x"))


if __name__ == "__main__":
    unittest.main()
