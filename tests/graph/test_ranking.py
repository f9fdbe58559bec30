"""Tests for PageRank entity ranking."""

import numpy as np
import pytest
from factories import belongs_to, entity

from metricgraph.errors import RankingDivergedError
from metricgraph.graph.builder import build_entity_graph
from metricgraph.graph.ranking import rank_entities, transition_matrix


@pytest.fixture
def chain_graph():
    """LineItem -> Order -> Customer."""
    return build_entity_graph(
        [entity("Customer"), entity("Order"), entity("LineItem")],
        {
            "Order": [belongs_to("customer", "Customer")],
            "LineItem": [belongs_to("order", "Order")],
        },
    )


class TestTransitionMatrix:
    """Tests for transition_matrix()."""

    def test_rows_are_stochastic_or_zero(self, chain_graph):
        matrix = transition_matrix(chain_graph)
        row_sums = matrix.sum(axis=1)

        names = chain_graph.entity_names
        assert row_sums[names.index("Order")] == pytest.approx(1.0)
        assert row_sums[names.index("LineItem")] == pytest.approx(1.0)
        # Dangling entity keeps an all-zero row
        assert row_sums[names.index("Customer")] == 0.0

    def test_parallel_edges_weigh_more(self):
        """Two edges to one target and one to another split mass 2:1."""
        graph = build_entity_graph(
            [entity("Transfer"), entity("Account"), entity("Currency")],
            {
                "Transfer": [
                    belongs_to("source_account", "Account"),
                    belongs_to("target_account", "Account"),
                    belongs_to("currency", "Currency"),
                ]
            },
        )
        matrix = transition_matrix(graph)
        names = graph.entity_names
        row = matrix[names.index("Transfer")]

        assert row[names.index("Account")] == pytest.approx(2 / 3)
        assert row[names.index("Currency")] == pytest.approx(1 / 3)


class TestRankEntities:
    """Tests for rank_entities()."""

    def test_ranks_sum_to_one(self, chain_graph):
        ranks = rank_entities(chain_graph)
        assert sum(ranks.values()) == pytest.approx(1.0, abs=1e-4)

    def test_single_isolated_entity(self):
        graph = build_entity_graph([entity("Lonely")], {})
        assert rank_entities(graph) == {"Lonely": 1.0}

    def test_referenced_entities_rank_higher(self, chain_graph):
        """Mass flows along belongs-to edges towards the referenced entity."""
        ranks = rank_entities(chain_graph)
        assert ranks["Customer"] > ranks["Order"] > ranks["LineItem"]

    def test_hub_outranks_leaves(self):
        graph = build_entity_graph(
            [entity("Customer"), entity("Order"), entity("Invoice"), entity("Ticket")],
            {
                "Order": [belongs_to("customer", "Customer")],
                "Invoice": [belongs_to("customer", "Customer")],
                "Ticket": [belongs_to("customer", "Customer")],
            },
        )
        ranks = rank_entities(graph)

        assert max(ranks, key=ranks.get) == "Customer"
        assert ranks["Order"] == pytest.approx(ranks["Invoice"])

    def test_matches_closed_form(self, chain_graph):
        """Fixed point of r = alpha * P^T r + (1 - alpha) / n, normalized."""
        n = len(chain_graph)
        alpha = 0.5
        p = transition_matrix(chain_graph)
        expected = np.linalg.solve(np.eye(n) - alpha * p.T, np.full(n, (1 - alpha) / n))
        expected = expected / expected.sum()

        ranks = rank_entities(chain_graph, alpha=alpha)
        for name, value in zip(chain_graph.entity_names, expected, strict=True):
            assert ranks[name] == pytest.approx(value, abs=1e-4)

    def test_deterministic(self, chain_graph):
        assert rank_entities(chain_graph) == rank_entities(chain_graph)

    def test_empty_graph_diverges(self):
        with pytest.raises(RankingDivergedError):
            rank_entities(build_entity_graph([], {}))

    def test_no_convergence_within_cap(self, chain_graph):
        with pytest.raises(RankingDivergedError, match="did not converge"):
            rank_entities(chain_graph, tolerance=0.0, max_iterations=3)

    def test_nan_is_reported(self, chain_graph):
        with pytest.raises(RankingDivergedError, match="NaN"):
            rank_entities(chain_graph, alpha=float("nan"))
