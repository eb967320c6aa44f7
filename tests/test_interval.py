import pytest
from lrgraph.core.interval import Interval, Strand, InvalidIntervalError, validate_limits


class TestStrand:
    def test_from_symbol(self):
        assert Strand.from_symbol('+') == Strand.FORWARD
        assert Strand.from_symbol('-') == Strand.REVERSE
        assert Strand.from_symbol(None) == Strand.FORWARD
        assert Strand.from_symbol(Strand.REVERSE) == Strand.REVERSE

    @pytest.mark.parametrize('symbol', ['?', '.', 7])
    def test_unknown_symbol(self, symbol):
        with pytest.raises(ValueError):
            Strand.from_symbol(symbol)

    def test_from_bool(self):
        # Reverse-complement flags map onto strands
        assert Strand.from_symbol(True) == Strand.REVERSE
        assert Strand.from_symbol(False) == Strand.FORWARD

    def test_str(self):
        assert str(Strand.FORWARD) == '+'
        assert str(Strand.REVERSE) == '-'
        assert Strand.REVERSE.is_reverse
        assert not Strand.FORWARD.is_reverse


class TestInterval:
    def test_basic(self):
        i = Interval(10, 20, '+')
        assert i.start == 10
        assert i.end == 20
        assert len(i) == 10
        assert repr(i) == '10:20(+)'
        assert Interval(10, 20) == i

    def test_equality_and_hash(self):
        assert Interval(1, 5) == Interval(1, 5)
        assert Interval(1, 5, '+') != Interval(1, 5, '-')
        assert len({Interval(1, 5), Interval(1, 5)}) == 1

    def test_overlap(self):
        assert Interval(0, 10).overlap(Interval(5, 20)) == 5
        assert Interval(0, 10).overlap(Interval(10, 20)) == 0
        assert Interval(0, 10).overlap(Interval(30, 40)) == 0

    def test_predicted_extents_may_overshoot(self):
        i = Interval(-50, 450)
        assert len(i) == 500
        assert not i.within(1000)
        assert Interval(0, 1000).within(1000)


class TestValidateLimits:
    def test_valid(self):
        assert validate_limits(100, 0, 100) == 100

    @pytest.mark.parametrize('start,end', [(20, 10), (-1, 10), (0, 101)])
    def test_invalid(self, start, end):
        with pytest.raises(InvalidIntervalError):
            validate_limits(100, start, end)

    def test_is_value_error(self):
        with pytest.raises(ValueError):
            validate_limits(10, 5, 2)

    def test_empty_interval(self):
        assert validate_limits(100, 10, 10) == 100
        assert validate_limits(0, 0, 0) == 0
