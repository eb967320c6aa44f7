import pytest
from lrgraph.containers.alignments import Cigar, CigarOp
from lrgraph.engines.pairwise import AffineGapAligner


class TestAffineGapAligner:
    def test_identical(self):
        aln = AffineGapAligner().align('ACGTACGTAC', 'ACGTACGTAC')
        assert aln.score == 10
        assert str(aln.cigar) == '10M'
        assert aln.subject_aligned == aln.query_aligned == 'ACGTACGTAC'

    def test_mismatch(self):
        aln = AffineGapAligner().align('ACGTACGTAC', 'ACGTTCGTAC')
        assert aln.score == 8
        assert str(aln.cigar) == '10M'

    def test_insertion(self):
        aln = AffineGapAligner().align('ACGTACGT', 'ACGTGACGT')
        assert str(aln.cigar) == '4M1I4M'
        assert aln.subject_aligned == 'ACGT-ACGT'
        assert aln.query_aligned == 'ACGTGACGT'
        assert aln.score == 8 - 2

    def test_deletion(self):
        aln = AffineGapAligner().align('ACGTGACGT', 'ACGTACGT')
        assert str(aln.cigar) == '4M1D4M'
        assert aln.query_aligned == 'ACGT-ACGT'

    def test_affine_gap_kept_together(self):
        # One gap of 4 costs 2 + 3, four gaps of 1 would cost 8
        aln = AffineGapAligner().align('AACCGGTTTTAACCGG', 'AACCGGAACCGG')
        assert str(aln.cigar).count('D') == 1
        assert aln.cigar.target_length == 16
        assert aln.cigar.query_length == 12

    def test_end_gaps(self):
        aln = AffineGapAligner().align('GGGACGTACGT', 'ACGTACGT')
        assert str(aln.cigar) == '3D8M'
        assert aln.score == 8 - 4

    def test_empty_query(self):
        aln = AffineGapAligner().align('ACGT', '')
        assert str(aln.cigar) == '4D'
        assert aln.score == -5

    def test_case_insensitive(self):
        assert str(AffineGapAligner().align('acgtac', 'ACGTAC').cigar) == '6M'

    def test_lengths_consumed(self):
        aln = AffineGapAligner().align('ACGTTTGCAAGT', 'ACGTGCAAAGTC')
        assert aln.cigar.target_length == 12
        assert aln.cigar.query_length == 12
        assert len(aln.subject_aligned) == len(aln.query_aligned)
        assert aln.subject_aligned.replace('-', '') == 'ACGTTTGCAAGT'
        assert aln.query_aligned.replace('-', '') == 'ACGTGCAAAGTC'

    def test_negative_penalties(self):
        with pytest.raises(ValueError):
            AffineGapAligner(gap_open=-2)


class TestCigar:
    def test_make_merges(self):
        c = Cigar.make([(CigarOp.M, 10), (CigarOp.M, 5), (CigarOp.I, 0), (CigarOp.D, 2), ('D', 1)])
        assert str(c) == '15M3D'
        assert c.runs == ((CigarOp.M, 15), (CigarOp.D, 3))

    def test_parse(self):
        c = Cigar.parse('5S100M2I3D')
        assert c == '5S100M2I3D'
        assert c.query_length == 107
        assert c.target_length == 103

    def test_parse_invalid(self):
        with pytest.raises(ValueError):
            Cigar.parse('5S10Q')

    def test_empty(self):
        assert str(Cigar.make([])) == '*'
        assert len(Cigar.parse('*')) == 0
