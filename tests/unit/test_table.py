"""Unit tests for lookup table construction."""

import numpy as np
import pytest

from ndvi_qamask.bitdefs import DEFAULT_KEEP_PREDICATE, QA_NODATA, Classification
from ndvi_qamask.errors import ConfigurationError
from ndvi_qamask.logic.bits import decode, interpret
from ndvi_qamask.logic.table import (
    NODATA_INDEX,
    TABLE_SIZE,
    build_lookup_table,
    normalize_predicate,
)


class TestDefaultTable:
    """Tests against the table for the default predicate."""

    def test_clear_code_kept(self, default_table):
        """Code 2 matches (0,1,0,0,0,0) and is kept."""
        assert default_table[2] is Classification.KEEP

    def test_zero_discarded(self, default_table):
        """Code 0 fails the clear-bit check."""
        assert default_table[0] is Classification.DISCARD

    @pytest.mark.parametrize("code", [1, 4, 8, 16, 32, 34, 3])
    def test_contaminated_codes_discarded(self, default_table, code):
        """Fill, water, shadow, snow and cloud codes are discarded."""
        assert default_table[code] is Classification.DISCARD

    def test_high_bits_ignored(self, default_table):
        """Only bits 0-5 take part in the decision."""
        assert default_table[2 | (3 << 6) | (3 << 8) | (1 << 10) | (1 << 15)] is Classification.KEEP

    @pytest.mark.parametrize("code", [QA_NODATA, None, float("nan"), 70000, 2.5])
    def test_nodata_and_invalid_codes_discarded(self, default_table, code):
        """NoData and anything outside the domain is never kept."""
        assert default_table[code] is Classification.DISCARD

    def test_table_size(self, default_table):
        """The table covers 65536 codes plus one NoData entry."""
        assert len(default_table) == TABLE_SIZE == 65537
        assert not default_table.keep[NODATA_INDEX]

    def test_kept_codes_have_expected_low_bits(self, default_table):
        """Every kept code has bits 0-5 equal to 0b000010."""
        kept = default_table.kept_codes()
        assert len(kept) == 65536 // 64
        assert np.all((kept & 0b111111) == 0b000010)
        assert default_table.keep_fraction() == pytest.approx(1 / 64)

    def test_agrees_with_scalar_interpretation(self, default_table):
        """The vectorised build matches decode/interpret code by code."""
        rng = np.random.default_rng(7)
        for code in rng.integers(0, 65536, size=500):
            flags = interpret(decode(int(code)))
            expected = flags.low_bits() == DEFAULT_KEEP_PREDICATE
            assert (default_table[int(code)] is Classification.KEEP) == expected

    def test_table_is_read_only(self, default_table):
        """The shared table cannot be mutated."""
        with pytest.raises(ValueError):
            default_table.keep[2] = False


class TestBuildLookupTable:
    """Tests for build_lookup_table()."""

    def test_deterministic(self):
        """Two builds for the same predicate are identical."""
        first = build_lookup_table()
        second = build_lookup_table()
        np.testing.assert_array_equal(first.keep, second.keep)

    def test_parallel_build_matches_serial(self, default_table):
        """Chunked parallel classification gives the same table."""
        parallel = build_lookup_table(n_jobs=2, n_chunks=7)
        np.testing.assert_array_equal(parallel.keep, default_table.keep)

    def test_default_build_uses_all_cores(self, default_table):
        """The all-cores default gives the same table as a single worker."""
        serial = build_lookup_table(n_jobs=1)
        np.testing.assert_array_equal(serial.keep, default_table.keep)

    def test_custom_predicate(self):
        """A different predicate produces an independent table."""
        fill_only = build_lookup_table((1, 0, 0, 0, 0, 0))
        assert fill_only[1] is Classification.KEEP
        assert fill_only[2] is Classification.DISCARD
        assert fill_only.predicate == (1, 0, 0, 0, 0, 0)

    def test_predicate_recorded(self, default_table):
        """The table remembers which predicate built it."""
        assert default_table.predicate == DEFAULT_KEEP_PREDICATE


class TestNormalizePredicate:
    """Tests for keep predicate validation."""

    def test_accepts_list(self):
        """A list of six 0/1 values becomes a tuple."""
        assert normalize_predicate([0, 1, 0, 0, 0, 0]) == (0, 1, 0, 0, 0, 0)

    @pytest.mark.parametrize("predicate", [
        [0, 1, 0, 0, 0],
        [0, 1, 0, 0, 0, 0, 0],
        [0, 2, 0, 0, 0, 0],
        ["a", 1, 0, 0, 0, 0],
        None,
    ])
    def test_invalid_predicates_rejected(self, predicate):
        """Wrong length, non-binary or non-numeric values raise."""
        with pytest.raises(ConfigurationError):
            normalize_predicate(predicate)
