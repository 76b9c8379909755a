"""Tests for flag sets and their validations."""

import pytest

from gradecurve.libs.grading.errors import ConsistencyError, FlagError
from gradecurve.libs.grading.flag_set import (
    DEFAULT_RULESET,
    FlagRuleset,
    FlagSet,
    check_has_type,
)

SMALL_RULESET = FlagRuleset(valid_flags="aAXiIrR")


class TestFlagSetAdd:
    """Tests for adding flags with case exclusivity."""

    def test_add_single_flags(self):
        """Test that each character becomes a flag."""
        fs = FlagSet('1', 'issue')
        fs.add("ai")
        assert fs.flags == {'a', 'i'}

    def test_uppercase_replaces_lowercase(self):
        """Test that adding I after i leaves only I."""
        fs = FlagSet('1', 'issue')
        fs.add("ai")
        fs.add("I")
        assert fs.flags == {'a', 'I'}

    def test_lowercase_ignored_after_uppercase(self):
        """Test that adding i after I leaves only I."""
        fs = FlagSet('1', 'issue')
        fs.add("aI")
        fs.add("i")
        assert fs.flags == {'a', 'I'}

    def test_same_line_order_independent(self):
        """Test that both cases in one string resolve to uppercase."""
        first = FlagSet('1', 'issue')
        first.add("aiI")
        second = FlagSet('1', 'issue')
        second.add("aIi")
        assert first == second
        assert first.flags == {'a', 'I'}

    def test_add_is_idempotent(self):
        """Test that repeated flags are stored once."""
        fs = FlagSet('1', 'issue')
        fs.add("aii")
        fs.add("i")
        assert len(fs) == 2

    def test_str_uses_ruleset_order(self):
        """Test that flags render in alphabet order."""
        fs = FlagSet('1', 'issue')
        fs.add("Rai")
        assert str(fs) == "aiR"
        assert list(fs) == ['a', 'i', 'R']

    def test_contains_and_include(self):
        """Test membership checks."""
        fs = FlagSet('1', 'issue')
        fs.add("aR")
        assert 'R' in fs
        assert fs.include('a')
        assert not fs.include('r')


class TestFlagSetType:
    """Tests for the answer type marker."""

    def test_type_lowercase(self):
        """Test that the a marker is the type."""
        fs = FlagSet('1', 'issue')
        fs.add("aIR")
        assert fs.type == 'a'

    def test_type_updates_after_add(self):
        """Test that the type reflects later additions."""
        fs = FlagSet('1', 'issue')
        fs.add("ai")
        assert fs.type == 'a'
        fs.add("A")
        assert fs.type == 'A'

    def test_type_none_when_missing(self):
        """Test that a set without a marker has no type."""
        fs = FlagSet('1', 'issue')
        fs.add("i")
        assert fs.type is None


class TestFlagSetValidation:
    """Tests for the validation rules run after parsing."""

    def test_valid_set_passes(self):
        """Test that a well-formed set passes every validation."""
        fs = FlagSet('1', 'issue', SMALL_RULESET)
        fs.add("aIR")
        fs.run_tests()

    def test_missing_type_fails(self):
        """Test that a set with no type marker fails."""
        fs = FlagSet('1', 'issue', SMALL_RULESET)
        fs.add("iR")
        with pytest.raises(FlagError, match="no type"):
            fs.run_tests()

    def test_multiple_types_fail(self):
        """Test that a set with two type markers fails."""
        fs = FlagSet('1', 'issue', SMALL_RULESET)
        fs.add("aX")
        with pytest.raises(FlagError, match="multiple types"):
            fs.run_tests()

    def test_unknown_flag_fails(self):
        """Test that flags outside the alphabet fail."""
        fs = FlagSet('1', 'issue', SMALL_RULESET)
        fs.add("ab")
        with pytest.raises(FlagError, match="unknown flags b"):
            fs.run_tests()

    def test_default_ruleset_allows_b(self):
        """Test that the default alphabet differs from a custom one."""
        fs = FlagSet('1', 'issue', DEFAULT_RULESET)
        fs.add("ab")
        fs.run_tests()

    def test_custom_validations(self):
        """Test that only the given validations run, in order."""
        seen = []

        def record(flag_set):
            seen.append(str(flag_set))

        fs = FlagSet('1', 'issue', SMALL_RULESET, validations=[record, check_has_type])
        fs.add("zz")
        with pytest.raises(FlagError):
            fs.run_tests()
        assert seen == ['z']


class TestFlagSetConsider:
    """Tests for marking flag sets as used by scoring."""

    def test_consider_once(self):
        """Test that a set can be considered once."""
        fs = FlagSet('1', 'issue')
        assert not fs.considered
        fs.consider()
        assert fs.considered

    def test_consider_twice_fails(self):
        """Test that considering a set twice is a consistency error."""
        fs = FlagSet('1', 'issue')
        fs.consider()
        with pytest.raises(ConsistencyError):
            fs.consider()

    def test_copy_empty(self):
        """Test that an empty copy keeps identity but no flags."""
        fs = FlagSet('1', 'issue', SMALL_RULESET)
        fs.add("aI")
        copy = fs.copy_empty()
        assert copy.exam_id == '1'
        assert copy.issue == 'issue'
        assert copy.ruleset is SMALL_RULESET
        assert len(copy) == 0
