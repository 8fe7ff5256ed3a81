"""Tests for detection-to-tracker association."""

from facemanager.core.contracts import Rectangle
from facemanager.tracking.association import associate, mutual_centroid_match


FACE = Rectangle(100, 100, 149, 149)
TRACKED = FACE.padded(10, 20)


class TestMutualCentroidMatch:
    def test_reflexive(self):
        for r in (FACE, TRACKED, Rectangle(0, 0, 0, 0), Rectangle(5, 5, 6, 100)):
            assert mutual_centroid_match(r, r)

    def test_face_inside_padded_tracker(self):
        assert mutual_centroid_match(FACE, TRACKED)
        assert mutual_centroid_match(TRACKED, FACE)

    def test_requires_both_centroids(self):
        # Tracker centre (125, 125) falls inside the big box, but the big
        # box's centre (300, 300) is outside the tracker
        big = Rectangle(0, 0, 600, 600)
        assert big.contains(*TRACKED.center)
        assert not mutual_centroid_match(big, TRACKED)
        assert not mutual_centroid_match(TRACKED, big)

    def test_disjoint(self):
        assert not mutual_centroid_match(FACE, Rectangle(300, 300, 349, 349))

    def test_centroid_on_edge_matches(self):
        a = Rectangle(0, 0, 10, 10)      # centre (5, 5)
        b = Rectangle(5, 5, 15, 15)      # centre (10, 10)
        assert mutual_centroid_match(a, b)


class TestAssociate:
    def test_no_trackers_everything_novel(self):
        result = associate([FACE], {})
        assert result.novel == [FACE]
        assert result.matches == {}
        assert result.unconfirmed == set()

    def test_match(self):
        moved = Rectangle(104, 102, 153, 151)
        result = associate([moved], {1: TRACKED})
        assert result.matches == {1: moved}
        assert result.matched_ids == {1}
        assert result.novel == []
        assert result.unconfirmed == set()

    def test_unconfirmed(self):
        other = Rectangle(400, 300, 449, 349)
        result = associate([FACE], {1: TRACKED, 2: other.padded(10, 20)})
        assert result.matches == {1: FACE}
        assert result.unconfirmed == {2}

    def test_no_detections(self):
        result = associate([], {1: TRACKED, 2: FACE})
        assert result.unconfirmed == {1, 2}
        assert result.novel == []

    def test_duplicate_keeps_first_in_order(self):
        second = Rectangle(104, 104, 153, 153).padded(10, 20)
        detection = Rectangle(102, 102, 151, 151)
        assert mutual_centroid_match(detection, TRACKED)
        assert mutual_centroid_match(detection, second)

        result = associate([detection], {1: TRACKED, 2: second})
        assert result.matches == {1: detection}
        assert result.duplicates == [(1, 2)]
        # Both count as matched, neither is unconfirmed
        assert result.matched_ids == {1, 2}
        assert result.unconfirmed == set()

    def test_first_detection_wins_tracker(self):
        a = Rectangle(100, 100, 149, 149)
        b = Rectangle(101, 101, 150, 150)
        result = associate([a, b], {1: TRACKED})
        assert result.matches == {1: a}
        assert result.novel == []
