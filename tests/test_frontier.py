"""
Tests for the URL frontier.

Covers:
  1. add() de-duplication across queued / in-flight / visited
  2. next_batch() bounds and batch sizes
  3. has_more() as the termination predicate
  4. state disjointness under random operation sequences
"""

import random

import pytest

from doc_crawler.frontier import UrlFrontier, UrlState


# ====================================================================
# 1. add()
# ====================================================================

class TestAdd:

    def test_add_queues_new_url(self):
        f = UrlFrontier()
        assert f.add("https://x.test/documentation/a") is True
        assert f.state_of("https://x.test/documentation/a") == UrlState.QUEUED
        assert f.queued_count == 1

    def test_add_is_idempotent(self):
        f = UrlFrontier()
        f.add("a")
        assert f.add("a") is False
        assert f.queued_count == 1

    def test_add_in_flight_is_noop(self):
        f = UrlFrontier()
        f.add("a")
        assert f.next_batch(1) == ["a"]
        assert f.add("a") is False
        assert f.queued_count == 0
        assert f.state_of("a") == UrlState.IN_FLIGHT

    def test_add_visited_is_noop(self):
        f = UrlFrontier()
        f.add("a")
        f.next_batch(1)
        f.mark_visited("a")
        assert f.add("a") is False
        assert f.state_of("a") == UrlState.VISITED
        assert not f.has_more()

    def test_urls_are_not_normalized(self):
        """Case and query differences make distinct URLs."""
        f = UrlFrontier()
        f.add("https://x.test/Documentation/a")
        f.add("https://x.test/documentation/a")
        f.add("https://x.test/documentation/a?x=1")
        assert f.queued_count == 3

    def test_add_many_counts_only_new(self):
        f = UrlFrontier()
        f.add("a")
        assert f.add_many(["a", "b", "b", "c"]) == 2
        assert f.queued_count == 3


# ====================================================================
# 2. next_batch()
# ====================================================================

class TestNextBatch:

    def test_batches_of_5_5_2(self):
        """12 queued URLs with size 5 come out as 5, 5, 2."""
        f = UrlFrontier()
        f.add_many(f"u{i}" for i in range(12))
        sizes = []
        while True:
            batch = f.next_batch(5)
            if not batch:
                break
            sizes.append(len(batch))
        assert sizes == [5, 5, 2]

    def test_empty_frontier_returns_empty(self):
        assert UrlFrontier().next_batch(5) == []

    def test_non_positive_size_returns_empty(self):
        f = UrlFrontier()
        f.add("a")
        assert f.next_batch(0) == []
        assert f.queued_count == 1

    def test_never_returns_in_flight_url_twice(self):
        f = UrlFrontier()
        f.add_many(["a", "b", "c"])
        first = f.next_batch(2)
        f.add_many(first)
        second = f.next_batch(5)
        assert set(first).isdisjoint(second)
        assert second == ["c"]

    def test_fifo_order(self):
        f = UrlFrontier()
        f.add_many(["c", "a", "b"])
        assert f.next_batch(3) == ["c", "a", "b"]


# ====================================================================
# 3. has_more()
# ====================================================================

class TestHasMore:

    def test_in_flight_keeps_crawl_alive(self):
        """An empty queue is not the end while fetches are in flight."""
        f = UrlFrontier()
        f.add("a")
        f.next_batch(1)
        assert f.queued_count == 0
        assert f.has_more() is True
        f.mark_visited("a")
        assert f.has_more() is False

    def test_mark_visited_moves_state(self):
        f = UrlFrontier()
        f.add("a")
        f.next_batch(1)
        f.mark_visited("a")
        assert f.in_flight_count == 0
        assert f.visited() == {"a"}

    def test_termination_on_cyclic_graph(self):
        graph = {"a": ["b", "c"], "b": ["a", "d"], "c": ["a"], "d": ["b", "d"]}
        f = UrlFrontier()
        f.add("a")
        rounds = 0
        while f.has_more():
            rounds += 1
            assert rounds < 50
            for url in f.next_batch(2):
                f.add_many(graph[url])
                f.mark_visited(url)
        assert f.visited() == {"a", "b", "c", "d"}


# ====================================================================
# 4. Invariants under random sequences
# ====================================================================

class TestInvariants:

    @pytest.mark.parametrize("seed", [1, 7, 42, 1234])
    def test_states_stay_disjoint(self, seed):
        rng = random.Random(seed)
        f = UrlFrontier()
        universe = [f"u{i}" for i in range(30)]
        handed_out = set()
        in_flight = []

        for _ in range(500):
            op = rng.choice(("add", "batch", "visit"))
            if op == "add":
                f.add(rng.choice(universe))
            elif op == "batch":
                batch = f.next_batch(rng.randint(1, 6))
                assert len(set(batch)) == len(batch)
                assert handed_out.isdisjoint(batch)
                handed_out.update(batch)
                in_flight.extend(batch)
            elif in_flight:
                f.mark_visited(in_flight.pop(rng.randrange(len(in_flight))))

            states = [f.state_of(u) for u in universe]
            known = [s for s in states if s is not None]
            assert len(known) == len(f)
            assert f.queued_count + f.in_flight_count + f.visited_count == len(f)
