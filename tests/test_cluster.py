import numpy as np
import pytest
from lrgraph.containers.cluster import AnchorCluster, ClusterStateError, Hit, as_hit_arrays
from lrgraph.core.interval import Interval, Strand
from lrgraph.core.kmers import extract_dna_kmer_codes
from lrgraph.engines.cluster import AnchorClusterer, ClustererConfig


class TestHitArrays:
    def test_from_hits(self):
        q, s, w = as_hit_arrays([Hit(1, 10), Hit(2, 20, 0.5)])
        np.testing.assert_array_equal(q, [1, 2])
        np.testing.assert_array_equal(s, [10, 20])
        np.testing.assert_array_equal(w, [1.0, 0.5])

    def test_from_array(self):
        q, s, w = as_hit_arrays(np.array([[1, 10], [2, 20]]))
        np.testing.assert_array_equal(s, [10, 20])
        np.testing.assert_array_equal(w, [1.0, 1.0])

    def test_empty(self):
        q, s, w = as_hit_arrays([])
        assert len(q) == len(s) == len(w) == 0

    def test_bad_shape(self):
        with pytest.raises(ValueError):
            as_hit_arrays(np.zeros((3, 4)))


class TestAnchorClusterStats:
    def test_query_after_subject(self):
        c = AnchorCluster(0, 1, 500, 1000, [0, 20, 40], [600, 620, 640])
        assert c.subject_predicted == Interval(600, 1100, '+')
        assert c.query_predicted == Interval(-600, 400, '+')
        assert c.subject_evidence == Interval(600, 655, '+')
        assert c.query_evidence == Interval(0, 55, '+')
        assert c.num_different_kmers == 3
        assert c.weighted_count == 3.0
        assert c.subject_start_sd == 0.0
        assert c.predicted_overlap == 400

    def test_embedded(self):
        c = AnchorCluster(0, 1, 500, 1000, [0, 100], [200, 300])
        assert c.subject_predicted.within(1000)
        assert c.predicted_overlap == 500

    def test_query_before_subject(self):
        c = AnchorCluster(0, 1, 500, 1000, [200, 300], [100, 200])
        assert c.subject_predicted == Interval(-100, 400, '+')
        assert c.predicted_overlap == 400

    def test_spanning(self):
        c = AnchorCluster(0, 1, 1000, 500, [200, 300], [100, 200])
        assert c.subject_predicted == Interval(-100, 900, '+')
        assert c.predicted_overlap == 500

    def test_evidence_clipped_to_length(self):
        c = AnchorCluster(0, 1, 500, 100, [0, 10], [80, 90])
        assert c.subject_evidence.end == 100

    def test_one_hit_per_query_position(self):
        c = AnchorCluster(0, 1, 500, 1000, [10, 0, 10], [15, 5, 17])
        q, s, _ = c.hits
        np.testing.assert_array_equal(q, [0, 10])
        np.testing.assert_array_equal(s, [5, 15])

    def test_offset_sd(self):
        c = AnchorCluster(0, 1, 500, 1000, [0, 100], [100, 210])
        assert c.subject_start_sd == pytest.approx(5.0)
        assert c.predicted_overlap_sd == pytest.approx(5.0)

    def test_strand(self):
        c = AnchorCluster(0, 1, 500, 1000, [0], [0], strand=True)
        assert c.strand == Strand.REVERSE
        assert c.reverse

    def test_empty_cluster(self):
        c = AnchorCluster(0, 1, 500, 1000, [], [])
        with pytest.raises(ClusterStateError):
            c.summarize()


class TestAnchorClusterLifecycle:
    def test_summarize_idempotent(self):
        c = AnchorCluster(0, 1, 500, 1000, [0, 20], [600, 620])
        first = c.summarize()
        assert c.summarized
        assert c.summarize() is first

    def test_dispose_keeps_statistics(self):
        c = AnchorCluster(0, 1, 500, 1000, [0, 20], [600, 620])
        c.dispose_hits()
        assert len(c) == 0
        assert c.predicted_overlap == 400
        with pytest.raises(ClusterStateError):
            _ = c.hits

    def test_complete_missing_hits(self, random_dna):
        subject = random_dna(1000)
        query = subject[200:700]
        c = AnchorCluster(0, 1, 500, 1000, [0, 100, 200], [200, 300, 400])
        added = c.complete_missing_hits(extract_dna_kmer_codes(subject, 15), extract_dna_kmer_codes(query, 15))
        assert added == 198
        q, s, _ = c.hits
        np.testing.assert_array_equal(q, np.arange(201))
        np.testing.assert_array_equal(s - q, np.full(201, 200))
        assert c.num_different_kmers == 201

    def test_complete_rejects_far_candidates(self):
        c = AnchorCluster(0, 1, 500, 1000, [0, 100], [0, 100], max_jitter=50)
        assert c.complete_missing_hits({150: 7}, {50: 7}) == 0

    def test_complete_rejects_non_collinear(self):
        c = AnchorCluster(0, 1, 500, 1000, [0, 100], [0, 60], max_jitter=50)
        assert c.complete_missing_hits({70: 7}, {50: 7}) == 0
        assert c.complete_missing_hits({45: 7}, {50: 7}) == 1

    def test_complete_keeps_added_hits_ordered(self):
        c = AnchorCluster(0, 1, 500, 1000, [0, 100], [0, 100], max_jitter=50)
        assert c.complete_missing_hits({60: 7, 30: 8}, {40: 7, 41: 8}) == 1
        q, s, _ = c.hits
        np.testing.assert_array_equal(q, [0, 40, 100])
        np.testing.assert_array_equal(s, [0, 60, 100])
        assert np.all(np.diff(s) >= 0)

    def test_complete_added_hits_in_separate_gaps(self):
        c = AnchorCluster(0, 1, 500, 1000, [0, 50, 100], [0, 50, 100], max_jitter=50)
        assert c.complete_missing_hits({45: 7, 55: 8}, {20: 7, 80: 8}) == 2
        np.testing.assert_array_equal(c.hits[1], [0, 45, 50, 55, 100])

    def test_complete_after_summarize(self):
        c = AnchorCluster(0, 1, 500, 1000, [0, 100], [0, 100])
        c.summarize()
        with pytest.raises(ClusterStateError):
            c.complete_missing_hits({50: 7}, {50: 7})


class TestSimulateAlignment:
    def test_contiguous(self):
        c = AnchorCluster(0, 1, 500, 1000, [0, 15, 30], [100, 115, 130])
        assert c.simulate_alignment() == (45, 45)

    def test_gap_credit(self):
        c = AnchorCluster(0, 1, 500, 1000, [0, 45], [0, 50])
        assert c.simulate_alignment() == (55, 30)

    def test_long_gap_not_credited(self):
        c = AnchorCluster(0, 1, 5000, 5000, [0, 3000], [0, 3000])
        assert c.simulate_alignment() == (30, 30)

    def test_capped_at_query_length(self):
        c = AnchorCluster(0, 1, 40, 1000, [0, 15, 30], [100, 115, 130])
        assert c.simulate_alignment()[0] == 40

    def test_weights(self):
        c = AnchorCluster(0, 1, 500, 1000, [0, 15], [0, 15], weights=[1.0, 0.2])
        assert c.simulate_alignment() == (30, 18)


class TestClustererConfig:
    def test_jitter(self):
        config = ClustererConfig()
        assert config.jitter(400) == 50
        assert config.jitter(2000) == 100
        assert ClustererConfig(max_jitter=10).jitter(2000) == 10

    @pytest.mark.parametrize('kwargs', [{'max_jitter': -1}, {'min_jitter': -5}, {'jitter_fraction': 2},
                                        {'min_cluster_hits': 0}])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            ClustererConfig(**kwargs)


class TestAnchorClusterer:
    def test_empty(self):
        assert AnchorClusterer().cluster([], query_length=100, subject_length=100) == []

    def test_separates_diagonals(self):
        hits = [(q, q + 100) for q in range(0, 100, 10)] + [(q, q + 500) for q in range(0, 50, 10)]
        clusters = AnchorClusterer().cluster(hits, query_idx=3, subject_idx=1, query_length=400,
                                             subject_length=1000)
        assert len(clusters) == 2
        assert [c.num_different_kmers for c in clusters] == [10, 5]
        assert clusters[0].subject_predicted.start == 100
        assert clusters[1].subject_predicted.start == 500
        assert clusters[0].query_idx == 3 and clusters[0].subject_idx == 1

    def test_single_linkage(self):
        hits = [(0, 100), (10, 140), (20, 190)]
        clusters = AnchorClusterer().cluster(hits, query_length=400, subject_length=1000)
        assert len(clusters) == 1

    def test_one_hit_per_query_position(self):
        hits = [(10, 110), (10, 115), (20, 121), (30, 131)]
        (cluster,) = AnchorClusterer().cluster(hits, query_length=400, subject_length=1000)
        q, s, _ = cluster.hits
        np.testing.assert_array_equal(q, [10, 20, 30])
        np.testing.assert_array_equal(s, [110, 121, 131])

    def test_collinear(self):
        hits = [(0, 100), (10, 110), (20, 105), (30, 130)]
        (cluster,) = AnchorClusterer().cluster(hits, query_length=400, subject_length=1000)
        q, s, _ = cluster.hits
        assert len(q) == 3
        assert np.all(np.diff(s) >= 0)
        assert np.all(np.diff(q) > 0)

    def test_min_cluster_hits(self):
        hits = [(q, q + 100) for q in range(0, 100, 10)] + [(0, 900), (10, 910)]
        clusters = AnchorClusterer(ClustererConfig(min_cluster_hits=3)).cluster(hits, query_length=400,
                                                                                subject_length=1000)
        assert len(clusters) == 1

    def test_weights_and_strand(self):
        hits = np.array([[0, 100, 0.5], [10, 110, 0.25]])
        (cluster,) = AnchorClusterer().cluster(hits, query_length=400, subject_length=1000, strand='-')
        assert cluster.weighted_count == pytest.approx(0.75)
        assert cluster.reverse
